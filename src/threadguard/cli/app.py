"""Root CLI application: render, thread inspection, config and the preview server."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from threadguard.cli.config_cmd import config_app
from threadguard.cli.thread import thread_app
from threadguard.core.config import load_config
from threadguard.core.models import ContentKind, ThemeMode
from threadguard.render.body import render_body
from threadguard.utils.proxy import ImageProxy

console = Console()
app = typer.Typer(
    name="threadguard",
    help="Conversation-view core: sanitize untrusted mail bodies and inspect threads.",
    no_args_is_help=True,
)

# Register sub-command groups
app.add_typer(thread_app)
app.add_typer(config_app)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


@app.command()
def render(
    path: Optional[Path] = typer.Argument(None, help="Message body file (stdin when omitted)"),
    theme: Optional[ThemeMode] = typer.Option(None, help="Color theme for theme placeholders"),
    plain: bool = typer.Option(False, "--plain", help="Treat the body as plain text"),
) -> None:
    """Sanitize one message body and print the safe markup."""
    cfg = load_config()
    if path is not None:
        if not path.exists():
            console.print(f"[red]File not found:[/red] {path}")
            raise typer.Exit(1)
        body = path.read_text(encoding="utf-8", errors="replace")
    else:
        body = sys.stdin.read()

    kind = ContentKind.PLAIN if plain else ContentKind.HTML
    html = render_body(
        body,
        kind,
        theme or cfg.render.default_theme,
        image_proxy=ImageProxy(cfg.proxy.image_proxy_url),
    )
    typer.echo(html)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to listen on"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the thread preview server."""
    import uvicorn

    console.print("\n[bold]threadguard preview[/bold]")
    console.print(f"Starting at [cyan]http://{host}:{port}[/cyan]\n")
    uvicorn.run(
        "threadguard.web.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )
