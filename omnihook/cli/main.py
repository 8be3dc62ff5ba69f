"""
omnihook CLI main module.

Serving the webhook API plus the operator actions on the record store.
"""

import asyncio
import subprocess
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

import typer

from omnihook.core.config.settings import settings
from omnihook.core.errors import IngestionError
from omnihook.core.gateway import WebhookGateway
from omnihook.core.logging.logger import setup_app_logging
from omnihook.database.session_manager import SessionManager
from omnihook.realtime.publisher import create_publisher
from omnihook.services.dead_letter import DeadLetterStore

app = typer.Typer(help="omnihook multi-platform webhook ingestion CLI")

T = TypeVar("T")

APP_FACTORY = "omnihook.core.omnihook_app:create_app"


def _session_manager() -> SessionManager:
    return SessionManager(
        settings.database_url,
        max_retries=settings.storage_max_retries,
        base_delay=settings.storage_base_delay,
        max_delay=settings.storage_max_delay,
        echo=settings.db_echo,
    )


def _run_with_database(action: Callable[[SessionManager], Awaitable[T]]) -> T:
    """Run an async action against an initialized session manager."""

    async def runner() -> T:
        session_manager = _session_manager()
        await session_manager.initialize()
        try:
            return await action(session_manager)
        finally:
            await session_manager.cleanup()

    return asyncio.run(runner())


@app.command()
def serve(
    host: str = typer.Option(settings.host, "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(settings.port, "--port", "-p", help="Port to bind to"),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of worker processes"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """
    Run the webhook server.

    Examples:
        omnihook serve
        omnihook serve --port 8080 --workers 4
    """
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        APP_FACTORY,
        "--factory",
        "--host",
        host,
        "--port",
        str(port),
    ]
    if reload:
        cmd.append("--reload")
    else:
        cmd.extend(["--workers", str(workers)])

    typer.echo("Starting omnihook server...")
    typer.echo(f"Server: http://{host}:{port}")
    typer.echo(f"Webhooks: http://{host}:{port}/webhooks/{{platform}}")
    typer.echo("Press CTRL+C to stop")
    typer.echo()

    try:
        subprocess.run(cmd, check=True)
    except subprocess.CalledProcessError as e:
        typer.echo(f"Server failed to start (exit code: {e.returncode})", err=True)
        typer.echo(f"Check DATABASE_URL and that port {port} is free", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        typer.echo("Server stopped")


@app.command("init-db")
def init_db():
    """Create the omnihook tables in DATABASE_URL."""
    setup_app_logging()

    async def create(session_manager: SessionManager) -> None:
        await session_manager.create_tables()

    try:
        _run_with_database(create)
    except ConnectionError as e:
        typer.echo(f"Database unavailable: {e}", err=True)
        raise typer.Exit(1)
    typer.echo("Tables created")


@app.command("dead-letters")
def dead_letters(
    platform: str | None = typer.Option(None, "--platform", help="Only this platform"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum entries to show"),
    include_resolved: bool = typer.Option(
        False, "--all", help="Include entries already resolved by a replay"
    ),
):
    """
    List dead-lettered events, newest first.

    Examples:
        omnihook dead-letters
        omnihook dead-letters --platform line --all
    """

    async def fetch(session_manager: SessionManager) -> list[Any]:
        store = DeadLetterStore(session_manager)
        return await store.list(
            limit=limit, platform=platform, include_resolved=include_resolved
        )

    entries = _run_with_database(fetch)
    if not entries:
        typer.echo("No dead-lettered events")
        return

    for entry in entries:
        state = "resolved" if entry.resolved_at else "open"
        retry = " retryable" if entry.retryable else ""
        typer.echo(
            f"{entry.id}  {entry.created_at:%Y-%m-%d %H:%M:%S}  {entry.platform:<9} "
            f"{entry.error_code}{retry} [{state}, replays={entry.replay_count}]"
        )
        typer.echo(f"    {entry.error_message}")


@app.command()
def replay(
    dead_letter_id: str = typer.Argument(..., help="Dead-letter entry id"),
):
    """
    Re-run a dead-lettered event through the pipeline.

    The entry is marked resolved only when every event it held succeeds.
    """
    setup_app_logging()

    try:
        entry_id = UUID(dead_letter_id)
    except ValueError:
        typer.echo(f"Not a valid id: {dead_letter_id}", err=True)
        raise typer.Exit(2)

    async def run_replay(session_manager: SessionManager) -> dict[str, Any]:
        publisher = create_publisher(settings)
        gateway = WebhookGateway(session_manager, publisher=publisher)
        try:
            result = await gateway.replay_dead_letter(entry_id)
            await gateway.tracker.drain(timeout=10)
            return result.to_dict()
        finally:
            await publisher.close()

    try:
        result = _run_with_database(run_replay)
    except LookupError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)
    except IngestionError as e:
        typer.echo(f"Replay failed: {e.message}", err=True)
        raise typer.Exit(1)

    typer.echo(
        f"Replayed {result['received']} event(s): processed={result['processed']} "
        f"duplicates={result['duplicates']} ignored={result['ignored']} "
        f"failed={result['failed']}"
    )
    if result["failed"]:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
