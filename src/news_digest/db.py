"""SQLite store for feed sources, the schedule and the pipeline run log."""

import sqlite3
import threading
import uuid
from pathlib import Path

from news_digest.errors import SourceNotFound
from news_digest.models import ScheduleConfig
from news_digest.news.models import FeedSource


class Database:
    """SQLite database shared by the API, CLI and scheduler.

    One connection is shared across threads (API worker pool and the
    scheduler timer), so every statement runs under ``_lock``.
    """

    def __init__(self, path: Path) -> None:
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS news_sources (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    url TEXT NOT NULL
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schedule (
                    singleton INTEGER PRIMARY KEY CHECK (singleton = 1),
                    cron TEXT NOT NULL DEFAULT '',
                    enabled INTEGER NOT NULL DEFAULT 0
                )
            """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS pipeline_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
                    mode TEXT NOT NULL,
                    status TEXT NOT NULL,
                    item_count INTEGER NOT NULL DEFAULT 0,
                    message TEXT,
                    error TEXT
                )
            """)
            self._conn.commit()

    # ------------------------------------------------------------------
    # News sources
    # ------------------------------------------------------------------

    def list_sources(self) -> list[FeedSource]:
        """Return all sources in insertion order."""
        with self._lock:
            rows = self._conn.execute("SELECT id, name, url FROM news_sources ORDER BY seq").fetchall()
        return [FeedSource(**dict(row)) for row in rows]

    def add_source(self, name: str, url: str) -> FeedSource:
        """Insert a source with a fresh id and return it."""
        source = FeedSource(id=uuid.uuid4().hex, name=name, url=url)
        with self._lock:
            self._conn.execute(
                "INSERT INTO news_sources (id, name, url) VALUES (?, ?, ?)",
                (source.id, source.name, source.url),
            )
            self._conn.commit()
        return source

    def delete_source(self, source_id: str) -> None:
        """Delete a source by id, raising ``SourceNotFound`` if absent."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM news_sources WHERE id = ?", (source_id,))
            self._conn.commit()
        if cursor.rowcount == 0:
            raise SourceNotFound(source_id)

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    def get_schedule(self) -> ScheduleConfig:
        """Return the persisted schedule, or the disabled default."""
        with self._lock:
            row = self._conn.execute("SELECT cron, enabled FROM schedule WHERE singleton = 1").fetchone()
        if row is None:
            return ScheduleConfig()
        return ScheduleConfig(cron=row["cron"], enabled=bool(row["enabled"]))

    def set_schedule(self, schedule: ScheduleConfig) -> None:
        """Replace the singleton schedule record."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO schedule (singleton, cron, enabled) VALUES (1, ?, ?)"
                " ON CONFLICT(singleton) DO UPDATE SET cron = excluded.cron, enabled = excluded.enabled",
                (schedule.cron, int(schedule.enabled)),
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Pipeline run log
    # ------------------------------------------------------------------

    def record_run(
        self,
        *,
        mode: str,
        status: str,
        item_count: int = 0,
        message: str | None = None,
        error: str | None = None,
    ) -> None:
        """Append a pipeline run to the log."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO pipeline_runs (mode, status, item_count, message, error) VALUES (?, ?, ?, ?, ?)",
                (mode, status, item_count, message, error),
            )
            self._conn.commit()

    def get_runs(self, *, mode: str | None = None, limit: int = 20) -> list[dict[str, object]]:
        """Retrieve run log entries, most recent first."""
        query = "SELECT * FROM pipeline_runs"
        params: tuple[str | int, ...] = ()
        if mode:
            query += " WHERE mode = ?"
            params = (mode,)
        query += " ORDER BY id DESC LIMIT ?"
        params = (*params, limit)
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()
