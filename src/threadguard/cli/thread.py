"""Thread inspection CLI commands."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from threadguard.client.mail_api import MailApiClient
from threadguard.core.config import load_config
from threadguard.core.errors import MailApiError
from threadguard.thread.view import ConversationView
from threadguard.utils.text import clean_html, truncate

console = Console()
thread_app = typer.Typer(name="thread", help="Inspect conversation threads.")


async def _load(thread_id: str) -> ConversationView:
    cfg = load_config()
    async with MailApiClient(cfg.api) as client:
        view = ConversationView(client, identity=cfg.identity.address, theme=cfg.render.default_theme)
        await view.load(thread_id)
        await view.drain()
    return view


@thread_app.command("show")
def show_thread(thread_id: str = typer.Argument(..., help="Thread id")) -> None:
    """List the messages of a thread, oldest first."""
    try:
        view = asyncio.run(_load(thread_id))
    except MailApiError as exc:
        console.print(f"[red]Could not load thread:[/red] {exc}")
        raise typer.Exit(1)

    if not view.messages:
        console.print("[dim]Thread is empty.[/dim]")
        return

    table = Table(title=f"Thread {thread_id}")
    table.add_column("Sent", style="dim")
    table.add_column("From", style="cyan")
    table.add_column("IQ", justify="right")
    table.add_column("Subject", style="white")
    table.add_column("Preview", style="white")

    for m in view.messages:
        iq = view.iq_for(m)
        marker = "[bold]*[/bold] " if m.id in view.expanded else ""
        table.add_row(
            m.sent_at.strftime("%Y-%m-%d %H:%M"),
            m.sender,
            str(iq) if iq is not None else "[dim]-[/dim]",
            f"{marker}{m.subject}",
            truncate(clean_html(m.body).replace("\n", " "), 60),
        )

    console.print(table)
