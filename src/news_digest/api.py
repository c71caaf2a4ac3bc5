"""FastAPI HTTP API consumed by the review UI."""

import logging
from typing import Any

from news_digest import __version__
from news_digest.errors import DigestError, InvalidCronExpression, PipelineError, SourceNotFound
from news_digest.orchestrator import Orchestrator
from news_digest.scheduler import Scheduler

logger = logging.getLogger(__name__)


def create_app(orchestrator: Orchestrator, scheduler: Scheduler) -> Any:
    """Create and return the FastAPI application.

    Handlers are synchronous: FastAPI runs them on its worker thread pool,
    so a pipeline run never blocks the event loop.

    Args:
        orchestrator: Pipeline entry points and the shared database.
        scheduler: Owner of the cron timer.

    Returns:
        A FastAPI application instance.
    """
    from fastapi import Body, FastAPI, Response  # noqa: PLC0415
    from fastapi.responses import JSONResponse  # noqa: PLC0415

    app = FastAPI(title="News Digest Agent", version=__version__)
    db = orchestrator.db

    @app.get("/api/health")
    def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok", "version": __version__})

    # ------------------------------------------------------------------
    # ETL
    # ------------------------------------------------------------------

    @app.post("/api/etl/generate-summary")
    def api_generate_summary() -> JSONResponse:
        try:
            draft = orchestrator.generate_summary()
        except DigestError as exc:
            logger.error("[ETL Generate Summary Error] %s", exc)
            return _error_response(exc)
        except Exception as exc:
            logger.exception("[ETL Generate Summary Error] Unexpected failure")
            return _error_response(exc)
        return JSONResponse(draft.model_dump())

    @app.post("/api/etl/post-summary")
    def api_post_summary(payload: dict[str, Any] | None = Body(default=None)) -> JSONResponse:
        summary = (payload or {}).get("summary")
        if not isinstance(summary, str) or not summary:
            return JSONResponse({"error": "Summary must be a non-empty string."}, status_code=400)
        try:
            result = orchestrator.post_summary(summary)
        except DigestError as exc:
            logger.error("[ETL Post Summary Error] %s", exc)
            return _error_response(exc)
        except Exception as exc:
            logger.exception("[ETL Post Summary Error] Unexpected failure")
            return _error_response(exc)
        return JSONResponse({"message": result["message"].model_dump(), "summary": summary})

    @app.post("/api/etl/run-full-process")
    def api_run_full_process() -> JSONResponse:
        try:
            result = orchestrator.run_full_process(mode="manual")
        except DigestError as exc:
            logger.error("[ETL Full Process Error] %s", exc)
            return _error_response(exc)
        except Exception as exc:
            logger.exception("[ETL Full Process Error] Unexpected failure")
            return _error_response(exc)
        return JSONResponse(result.model_dump())

    @app.get("/api/runs")
    def api_runs(limit: int = 20) -> JSONResponse:
        return JSONResponse([_serialize_row(r) for r in orchestrator.get_recent_runs(limit=limit)])

    # ------------------------------------------------------------------
    # News sources
    # ------------------------------------------------------------------

    @app.get("/api/news-sources")
    def api_list_sources() -> JSONResponse:
        return JSONResponse([s.model_dump() for s in db.list_sources()])

    @app.post("/api/news-sources")
    def api_add_source(payload: dict[str, Any] | None = Body(default=None)) -> JSONResponse:
        body = payload or {}
        name, url = body.get("name"), body.get("url")
        if not isinstance(name, str) or not name or not isinstance(url, str) or not url:
            return JSONResponse({"error": "Name and URL are required."}, status_code=400)
        source = db.add_source(name, url)
        return JSONResponse(source.model_dump(), status_code=201)

    @app.delete("/api/news-sources/{source_id}")
    def api_delete_source(source_id: str) -> Response:
        try:
            db.delete_source(source_id)
        except SourceNotFound:
            return JSONResponse({"error": "News source not found."}, status_code=404)
        return Response(status_code=204)

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    @app.get("/api/schedule")
    def api_get_schedule() -> JSONResponse:
        return JSONResponse(_schedule_payload(scheduler))

    @app.post("/api/schedule")
    def api_set_schedule(payload: dict[str, Any] | None = Body(default=None)) -> JSONResponse:
        body = payload or {}
        cron, enabled = body.get("cron", ""), body.get("isEnabled")
        if not isinstance(enabled, bool):
            return JSONResponse({"error": "isEnabled must be a boolean."}, status_code=400)
        if enabled and not isinstance(cron, str):
            return JSONResponse({"error": "cron must be a string when enabled."}, status_code=400)
        try:
            scheduler.reconfigure(cron if isinstance(cron, str) else "", enabled)
        except InvalidCronExpression as exc:
            return JSONResponse({"error": f"Failed to update schedule: {exc}"}, status_code=400)
        return JSONResponse(_schedule_payload(scheduler))

    return app


def _error_response(exc: Exception) -> Any:
    """Render a failed phase as a 500 with any partial artifacts."""
    from fastapi.responses import JSONResponse  # noqa: PLC0415

    content: dict[str, Any] = {"error": str(exc)}
    if isinstance(exc, PipelineError) and exc.partial is not None:
        content.update(exc.partial.model_dump())
    return JSONResponse(content, status_code=500)


def _schedule_payload(scheduler: Scheduler) -> dict[str, Any]:
    schedule = scheduler.get_schedule()
    next_run = scheduler.next_run_at
    return {
        "cron": schedule.cron,
        "isEnabled": schedule.enabled,
        "nextRunAt": next_run.isoformat() if next_run is not None else None,
    }


def _serialize_row(row: dict[str, object]) -> dict[str, Any]:
    """Convert a DB row dict to JSON-serializable form."""
    return {k: str(v) if not isinstance(v, (int, float, bool, str, type(None))) else v for k, v in row.items()}
