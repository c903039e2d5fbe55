"""
Activity stream CLI.

Tails a live event stream from the terminal:

    activity-stream tail https://ops.example/api/gastown/feed/stream --type work_changed
    activity-stream config
"""

import asyncio
import json
from typing import Any, Optional

import httpx
import typer
from rich.console import Console
from rich.table import Table

from activity_stream.components.resilience.reconnection import ReconnectionConfig
from activity_stream.components.core.constants import WILDCARD_TOPIC
from activity_stream.components.events.types import StreamEvent
from activity_stream.connection_manager import StreamConnectionManager
from activity_stream.shared.config.logging import get_logger, setup_logging
from activity_stream.shared.config.settings import settings

logger = get_logger(__name__)

app = typer.Typer(
    name="activity-stream",
    help="Resilient activity event stream client",
    add_completion=False,
)
console = Console()


# =============================================================================
# Snapshot fetcher
# =============================================================================


class SnapshotFetcher:
    """
    Fetches a complete state snapshot when the stream says resumption is stale.

    Only one fetch runs at a time; a refresh signal during a fetch is ignored.
    """

    def __init__(self, url: str, timeout: float = settings.snapshot_timeout) -> None:
        self._url = url
        self._timeout = timeout
        self._task: asyncio.Task[None] | None = None

    def request(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self._fetch())

    async def fetch(self) -> Any:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(self._url)
            response.raise_for_status()
            return response.json()

    async def _fetch(self) -> None:
        try:
            snapshot = await self.fetch()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Snapshot fetch failed", url=self._url, error=str(e))
            console.print(f"[red]✗ Snapshot fetch failed: {e}[/red]")
            return
        size = len(snapshot) if isinstance(snapshot, (list, dict)) else 1
        console.print(f"[green]✓ Snapshot refreshed ({size} entries)[/green]")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()


# =============================================================================
# Commands
# =============================================================================


def _print_event(event: StreamEvent, as_json: bool) -> None:
    if as_json:
        print(json.dumps(event.to_dict()), flush=True)
        return
    data = json.dumps(event.data, default=str)
    console.print(
        f"[dim]{event.timestamp}[/dim] [cyan]{event.type}[/cyan] {data}",
        highlight=False,
    )


async def _tail(
    url: str,
    event_types: list[str],
    last_event_id: str | None,
    snapshot_url: str,
    as_json: bool,
) -> int:
    manager = StreamConnectionManager(
        url,
        ReconnectionConfig.from_settings(settings),
        last_event_id=last_event_id,
    )
    fetcher = SnapshotFetcher(snapshot_url) if snapshot_url else None
    failed = asyncio.Event()

    for topic in event_types or [WILDCARD_TOPIC]:
        manager.subscribe(topic, lambda event: _print_event(event, as_json))

    manager.on_connect(lambda: console.print(f"[green]● Connected[/green] [dim]{url}[/dim]"))
    manager.on_disconnect(lambda: console.print("[yellow]● Disconnected, reconnecting...[/yellow]"))

    def on_error(error: BaseException) -> None:
        console.print(f"[red]✗ {error}[/red]")
        failed.set()

    def on_full_refresh() -> None:
        console.print("[magenta]● Outage exceeded refresh threshold, local state is stale[/magenta]")
        if fetcher is not None:
            fetcher.request()

    manager.on_error(on_error)
    manager.on_full_refresh(on_full_refresh)

    manager.connect()
    try:
        await failed.wait()
        return 1
    finally:
        manager.destroy()
        if fetcher is not None:
            fetcher.cancel()
        logger.debug("Tail finished", **manager.get_stats())


@app.command()
def tail(
    url: Optional[str] = typer.Argument(None, help="Stream URL (defaults to STREAM_URL)"),
    event_type: Optional[list[str]] = typer.Option(
        None, "--type", "-t", help="Only show these event types (repeatable)"
    ),
    last_event_id: Optional[str] = typer.Option(
        None, "--last-event-id", help="Resume after this event id"
    ),
    snapshot_url: Optional[str] = typer.Option(
        None, "--snapshot-url", help="Snapshot to re-fetch when the outage is too long"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print events as JSON lines"),
):
    """Tail a live activity stream until interrupted."""
    setup_logging()
    stream_url = url or settings.stream_url
    try:
        code = asyncio.run(
            _tail(
                stream_url,
                event_type or [],
                last_event_id,
                snapshot_url or settings.snapshot_url,
                as_json,
            )
        )
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")
        code = 0
    raise typer.Exit(code)


@app.command()
def config():
    """Show effective stream settings."""
    table = Table(title="Stream Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.model_dump().items():
        if name.startswith(("stream_", "snapshot_")) or name in ("environment", "debug"):
            table.add_row(name, str(value))

    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
