"""CLI entry point for news-digest."""

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import click
import typer

from news_digest import __version__
from news_digest.config import AppConfig, load_config
from news_digest.errors import DigestError
from news_digest.monitoring.logging import setup_logging
from news_digest.orchestrator import Orchestrator
from news_digest.scheduler import Scheduler, validate_schedule

logger = logging.getLogger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"news-digest {__version__}")
        raise typer.Exit()


app = typer.Typer(name="news-digest", help="News Digest: feed-to-webhook pipeline driven by an LLM")
schedule_app = typer.Typer(help="Show or change the cron schedule")
sources_app = typer.Typer(help="Manage feed sources")
app.add_typer(schedule_app, name="schedule")
app.add_typer(sources_app, name="sources")


@app.callback()
def main(
    version: Annotated[
        bool, typer.Option("--version", "-V", help="Show version and exit", callback=_version_callback, is_eager=True)
    ] = False,
) -> None:
    """News Digest: feed-to-webhook pipeline driven by an LLM."""


DEFAULT_CONFIG = Path("config.yaml")

ConfigOption = Annotated[Path, typer.Option("--config", "-c", help="Path to config.yaml")]
DbOption = Annotated[Path | None, typer.Option("--db", help="Path to SQLite database (overrides config)")]


def _load_config(config_path: Path) -> AppConfig:
    """Load config from file, warning if the file does not exist."""
    if config_path.exists():
        return load_config(config_path)
    logger.warning("Config file %s not found, using defaults", config_path)
    return AppConfig()


def _build_orchestrator(config_path: Path, db_path: Path | None) -> tuple[AppConfig, Orchestrator]:
    """Load config, set up logging and create an Orchestrator."""
    cfg = _load_config(config_path)
    setup_logging(cfg.monitoring)
    return cfg, Orchestrator(config=cfg, db_path=db_path or Path(cfg.db_path))


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


@app.command()
def serve(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
    host: Annotated[str | None, typer.Option("--host", help="API bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", help="API port")] = None,
) -> None:
    """Start the HTTP API and the cron scheduler."""
    cfg, orch = _build_orchestrator(config, db)
    resolved_host = host if host is not None else cfg.monitoring.api_host
    resolved_port = port if port is not None else cfg.monitoring.api_port

    import uvicorn  # noqa: PLC0415

    from news_digest.api import create_app  # noqa: PLC0415

    scheduler = Scheduler(orch.db, lambda: orch.run_full_process(mode="scheduled"))
    scheduler.initialize()
    try:
        typer.echo(f"API starting on http://{resolved_host}:{resolved_port}")
        uvicorn.run(create_app(orch, scheduler), host=resolved_host, port=resolved_port, log_level="info")
    finally:
        scheduler.shutdown()
        orch.close()


@app.command()
def generate(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """Generate a digest and review it before publishing."""
    _, orch = _build_orchestrator(config, db)
    try:
        while True:
            try:
                draft = orch.generate_summary()
            except DigestError as exc:
                _fail(exc)
            typer.echo(f"Extracted {len(draft.extract)} items.\n")
            message = draft.transform.description
            while True:
                typer.echo(message)
                choice = typer.prompt("\n[p]ublish, [e]dit, [r]egenerate, [q]uit", default="q").strip().lower()
                if choice.startswith("e"):
                    edited = click.edit(message)
                    if edited and edited.strip():
                        message = edited.strip()
                    continue
                break
            if choice.startswith("r"):
                continue
            if choice.startswith("p"):
                try:
                    ack = orch.post_summary(message)["message"]
                except DigestError as exc:
                    _fail(exc)
                typer.echo(ack.detail)
            else:
                typer.echo("Discarded draft; nothing was published.")
            return
    finally:
        orch.close()


@app.command()
def post(
    message: Annotated[str, typer.Argument(help="Message text to publish")],
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """Publish a message to the configured webhook."""
    _, orch = _build_orchestrator(config, db)
    try:
        ack = orch.post_summary(message)["message"]
        typer.echo(ack.detail)
    except DigestError as exc:
        _fail(exc)
    finally:
        orch.close()


@app.command()
def run(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """Run the full pipeline once without review."""
    _, orch = _build_orchestrator(config, db)
    try:
        result = orch.run_full_process(mode="manual")
        typer.echo(f"Items: {len(result.extracted)}, published: {result.published}")
    except DigestError as exc:
        _fail(exc)
    finally:
        orch.close()


@schedule_app.command("show")
def schedule_show(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """Show the persisted schedule."""
    _, orch = _build_orchestrator(config, db)
    try:
        current = orch.db.get_schedule()
        state = "enabled" if current.enabled else "disabled"
        typer.echo(f"Cron: {current.cron or '(none)'} [{state}]")
    finally:
        orch.close()


@schedule_app.command("set")
def schedule_set(
    cron: Annotated[str, typer.Argument(help='Five-field cron expression, e.g. "0 9 * * *"')] = "",
    enable: Annotated[bool, typer.Option("--enable/--disable", help="Enable or disable the schedule")] = True,
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """Persist a new schedule (picked up by `serve` at startup)."""
    _, orch = _build_orchestrator(config, db)
    try:
        saved = validate_schedule(cron, enable)
        orch.db.set_schedule(saved)
        state = "enabled" if saved.enabled else "disabled"
        typer.echo(f"Schedule saved: {saved.cron or '(none)'} [{state}]")
    except DigestError as exc:
        _fail(exc)
    finally:
        orch.close()


@sources_app.command("list")
def sources_list(
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """List feed sources."""
    _, orch = _build_orchestrator(config, db)
    try:
        sources = orch.db.list_sources()
        if not sources:
            typer.echo("No news sources configured.")
        for source in sources:
            typer.echo(f"{source.id}  {source.name}  {source.url}")
    finally:
        orch.close()


@sources_app.command("add")
def sources_add(
    name: Annotated[str, typer.Argument(help="Display name")],
    url: Annotated[str, typer.Argument(help="Feed URL")],
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """Add a feed source."""
    _, orch = _build_orchestrator(config, db)
    try:
        source = orch.db.add_source(name, url)
        typer.echo(f"Added {source.name} ({source.id})")
    finally:
        orch.close()


@sources_app.command("remove")
def sources_remove(
    source_id: Annotated[str, typer.Argument(help="Source id")],
    config: ConfigOption = DEFAULT_CONFIG,
    db: DbOption = None,
) -> None:
    """Remove a feed source."""
    _, orch = _build_orchestrator(config, db)
    try:
        orch.db.delete_source(source_id)
        typer.echo(f"Removed {source_id}")
    except DigestError as exc:
        _fail(exc)
    finally:
        orch.close()
