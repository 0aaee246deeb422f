"""Main CLI application."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from rich.console import Console

from bridgebus import __version__
from bridgebus.core.models.config import Settings

if TYPE_CHECKING:
    from bridgebus.core.events.models import EventMeta

# Create main app
app = typer.Typer(
    name="bridgebus",
    help="Typed cross-process event bus",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]bridgebus[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """bridgebus - typed cross-process event bus."""
    pass


def _load_settings(config: Path | None) -> Settings:
    if config is None:
        return Settings()
    try:
        return Settings.from_yaml(config)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def _peer_url(url: str, peer_id: str) -> str:
    return f"{url.rstrip('/')}/ws/events/{peer_id}"


@app.command()
def serve(
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Port to listen on"),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", "-h", help="Host to bind to"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file path"),
    ] = None,
    reload: Annotated[
        bool,
        typer.Option("--reload", help="Enable auto-reload for development"),
    ] = False,
) -> None:
    """Start the event bus host.

    Sandboxed peers connect to ws://HOST:PORT/ws/events/PEER_ID.
    """
    import uvicorn

    from bridgebus.api import create_app
    from bridgebus.core.logging import configure_logging

    settings = _load_settings(config)
    host = host or settings.server.host
    port = port or settings.server.port
    configure_logging(settings.logging)

    console.print("[bold green]Starting bridgebus host[/bold green]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Bridge: ws://{host}:{port}/ws/events/<peer_id>")
    console.print()

    if reload:
        # Reload needs an import string; settings then come from the environment
        uvicorn.run("bridgebus.api:create_app", host=host, port=port, reload=True, factory=True)
    else:
        uvicorn.run(create_app(settings), host=host, port=port)


@app.command()
def listen(
    event_types: Annotated[
        list[str],
        typer.Argument(help="Event types to print (e.g. settings:changed)"),
    ],
    url: Annotated[
        str,
        typer.Option("--url", "-u", help="Host base URL"),
    ] = "ws://127.0.0.1:8765",
    peer_id: Annotated[
        str,
        typer.Option("--peer-id", help="Peer id announced to the host"),
    ] = "cli",
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Config file path"),
    ] = None,
) -> None:
    """Connect as a sandboxed peer and print matching events."""
    settings = _load_settings(config)
    try:
        asyncio.run(_run_listen(settings, url, peer_id, event_types))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


@app.command()
def emit(
    event_type: Annotated[
        str,
        typer.Argument(help="Event type to emit"),
    ],
    payload: Annotated[
        str | None,
        typer.Option("--payload", "-d", help="JSON payload"),
    ] = None,
    url: Annotated[
        str,
        typer.Option("--url", "-u", help="Host base URL"),
    ] = "ws://127.0.0.1:8765",
    peer_id: Annotated[
        str,
        typer.Option("--peer-id", help="Peer id used for the connection"),
    ] = "cli",
) -> None:
    """Connect as a sandboxed peer and emit a single event."""
    try:
        data = json.loads(payload) if payload is not None else None
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON payload: {e}[/red]")
        raise typer.Exit(1) from e

    ok = asyncio.run(_run_emit(Settings(), url, peer_id, event_type, data))
    if not ok:
        raise typer.Exit(1)


@app.command("config")
def config_command(
    action: Annotated[
        str,
        typer.Argument(help="Action: show, validate, init"),
    ],
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Config file"),
    ] = None,
) -> None:
    """Manage configuration."""
    if action == "show":
        cfg = Settings()
        if file and file.exists():
            cfg = Settings.from_yaml(file)

        console.print("[bold]Current Configuration:[/bold]")
        console.print_json(data=cfg.to_dict())

    elif action == "validate":
        if file is None:
            console.print("[red]--file is required for validate[/red]")
            raise typer.Exit(1)
        try:
            Settings.from_yaml(file)
        except Exception as e:
            console.print(f"[red]Config validation failed: {e}[/red]")
            raise typer.Exit(1) from e
        console.print(f"[green]Config file {file} is valid![/green]")

    elif action == "init":
        output_path = file or Path("./config/bridgebus.yaml")
        Settings().to_yaml(output_path)
        console.print(f"[green]Config initialized at {output_path}[/green]")

    else:
        console.print(f"[red]Unknown action: {action}[/red]")
        raise typer.Exit(1)


async def _run_listen(settings: Settings, url: str, peer_id: str, event_types: list[str]) -> None:
    from bridgebus.bridge.frontend import FrontendEventBus
    from bridgebus.bridge.websocket_client import WebSocketClientChannel

    bridge = settings.frontend_bridge.model_copy(update={"peer_id": peer_id})
    bus = FrontendEventBus(WebSocketClientChannel(_peer_url(url, peer_id)), settings.frontend, bridge)

    def printer(event_type: str) -> Callable[[Any, EventMeta], None]:
        def show(payload: Any, meta: EventMeta) -> None:
            console.print(
                f"[cyan]{event_type}[/cyan] [dim]{meta.source.value} {meta.correlation_id}[/dim]"
            )
            if payload is not None:
                console.print_json(data=payload)

        return show

    for event_type in event_types:
        bus.on(event_type, printer(event_type))

    await bus.initialize()
    if not bus.is_bridged:
        console.print(f"[red]Could not connect to {url}[/red]")
        return

    console.print(f"[green]Listening as {peer_id}[/green] (Ctrl+C to stop)")
    try:
        await asyncio.Event().wait()
    finally:
        await bus.shutdown()


async def _run_emit(
    settings: Settings,
    url: str,
    peer_id: str,
    event_type: str,
    payload: Any,
) -> bool:
    from bridgebus.bridge.frontend import FrontendEventBus
    from bridgebus.bridge.websocket_client import WebSocketClientChannel

    bridge = settings.frontend_bridge.model_copy(update={"peer_id": peer_id})
    bus = FrontendEventBus(WebSocketClientChannel(_peer_url(url, peer_id)), settings.frontend, bridge)
    await bus.initialize()
    if not bus.is_bridged:
        console.print(f"[red]Could not connect to {url}[/red]")
        await bus.shutdown()
        return False

    event = await bus.emit(event_type, payload)
    await bus.shutdown()
    console.print(f"[green]Emitted {event.type}[/green] [dim]{event.meta.correlation_id}[/dim]")
    return True


def main() -> None:
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
