"""Configuration inspection CLI commands."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from threadguard.core.config import load_config

console = Console()
config_app = typer.Typer(name="config", help="Configuration inspection.")


@config_app.command("show")
def show_config(
    path: Optional[str] = typer.Option(None, "--file", "-f", help="YAML file to load instead of config/default.yaml"),
) -> None:
    """Print the effective configuration."""
    cfg = load_config(path)

    table = Table(title="threadguard configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("api.base_url", cfg.api.base_url)
    table.add_row("api.session_token", "[green]set[/green]" if cfg.api.session_token else "[dim]not set[/dim]")
    table.add_row("api.timeout", f"{cfg.api.timeout:g}s")
    table.add_row("identity.address", cfg.identity.address or "[red]not set[/red] (sending disabled)")
    table.add_row("proxy.image_proxy_url", cfg.proxy.image_proxy_url)
    table.add_row("verification.timeout_seconds", f"{cfg.verification.timeout_seconds:g}")
    table.add_row("render.default_theme", cfg.render.default_theme.value)
    table.add_row("send.default_subject", cfg.send.default_subject)

    console.print(table)
