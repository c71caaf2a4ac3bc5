"""Webhook publisher for the final digest text."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request

from news_digest.errors import DeliveryError
from news_digest.models import PublishAck

logger = logging.getLogger(__name__)

_NOT_CONFIGURED = "Webhook URL not configured. Skipping publish."
_MAX_BODY_LEN = 500


class WebhookPublisher:
    """POST messages to an incoming webhook as ``{"text": message}``.

    With no URL configured every publish is a logged no-op, which keeps
    local development working without a live messaging endpoint. Failed
    deliveries are never retried.
    """

    def __init__(self, url: str | None = None, *, url_env: str | None = None, timeout: float = 10.0) -> None:
        self._url = url or None
        self._url_env = url_env
        self._timeout = timeout

    @property
    def url(self) -> str | None:
        """The configured URL, falling back to the environment variable."""
        if self._url:
            return self._url
        if self._url_env:
            return os.environ.get(self._url_env) or None
        return None

    def publish(self, message: str) -> PublishAck:
        url = self.url
        if url is None:
            logger.info(_NOT_CONFIGURED)
            return PublishAck(delivered=False, detail=_NOT_CONFIGURED)

        payload = json.dumps({"text": message}).encode()
        try:
            req = urllib.request.Request(
                url,
                data=payload,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                status = resp.status
                body = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace") if exc.fp is not None else ""
            logger.error("Webhook rejected message: %s %s", exc.code, body[:_MAX_BODY_LEN])
            raise DeliveryError(exc.code, body[:_MAX_BODY_LEN] or str(exc.reason)) from exc
        except (urllib.error.URLError, OSError, ValueError) as exc:
            logger.error("Webhook unreachable: %s", exc)
            raise DeliveryError(None, str(exc)) from exc

        if not 200 <= status < 300:
            raise DeliveryError(status, body[:_MAX_BODY_LEN])
        logger.info("Posted %d characters to webhook (status %d)", len(message), status)
        return PublishAck(delivered=True, status_code=status, detail="Successfully posted message to webhook.")
