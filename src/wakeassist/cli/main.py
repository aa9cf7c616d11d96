"""WakeAssist CLI — run the device loop and manage its configuration."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wakeassist.config import WakeAssistConfig, get_config
from wakeassist.connectivity import ProbeConnectivity, StaticConnectivity
from wakeassist.hardware.simulated import SimulatedHardware
from wakeassist.logging import setup_logging
from wakeassist.runtime import DeviceRuntime, resolve_credentials
from wakeassist.storage import (
    FileCredentialStore,
    InvalidCredentialsError,
    clear_credentials,
    make_credentials,
    save_credentials,
)

app = typer.Typer(
    name="wakeassist",
    help="WakeAssist — remote escalating alarm",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()


def _store(config: WakeAssistConfig) -> FileCredentialStore:
    return FileCredentialStore(config.credentials_path)


@app.command()
def run(
    offline: bool = typer.Option(
        False,
        "--offline",
        help="Skip the network probe and treat the link as down",
    ),
    log_format: str = typer.Option("", "--log-format", help="Override log format: json or console"),
) -> None:
    """Run the device loop with simulated hardware."""
    config = get_config()
    setup_logging(level=config.log_level, fmt=log_format or config.log_format)

    connectivity = (
        StaticConnectivity(connected=False, label="offline")
        if offline
        else ProbeConnectivity(config.connectivity)
    )
    runtime = DeviceRuntime(
        config=config,
        hardware=SimulatedHardware(),
        connectivity=connectivity,
        store=_store(config),
    )

    console.print(Panel("🔔 Starting WakeAssist...", border_style="blue"))
    try:
        asyncio.run(runtime.run())
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")


@app.command()
def setup(
    bot_token: str = typer.Option(..., "--token", "-t", prompt=True, hide_input=True, help="Bot token"),
    user_id: str = typer.Option(..., "--user-id", "-u", prompt=True, help="Operator chat id"),
) -> None:
    """Validate and store the bot token and authorized operator id."""
    config = get_config()
    try:
        credentials = make_credentials(bot_token, user_id)
    except InvalidCredentialsError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(1)

    save_credentials(_store(config), credentials)
    console.print(
        f"[green]✓[/green] Saved credentials for user {credentials.authorized_user_id} "
        f"to {config.credentials_path}"
    )


@app.command()
def reset(
    force: bool = typer.Option(False, "--force", help="Do not ask for confirmation"),
) -> None:
    """Remove stored credentials."""
    config = get_config()
    if not force and not typer.confirm("Remove the stored bot token and operator id?"):
        raise typer.Exit(0)
    clear_credentials(_store(config))
    console.print("[green]✓[/green] Credentials cleared")


@app.command(name="config")
def show_config() -> None:
    """Show the effective configuration."""
    config = get_config()
    credentials = resolve_credentials(config, _store(config))

    table = Table(title="🔔 WakeAssist Config", show_header=False, border_style="blue")
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Credentials file", config.credentials_path)
    if credentials is None:
        table.add_row("Telegram", "[yellow]not configured[/yellow]")
    else:
        table.add_row("Bot token", credentials.masked_token())
        table.add_row("Operator id", str(credentials.authorized_user_id))
    table.add_row("Poll interval", f"{config.telegram.poll_interval_s:g}s")
    table.add_row("Wake cooldown", f"{config.telegram.wake_cooldown_s:g}s")
    table.add_row(
        "Stages",
        f"{config.alarm.triggered_delay_s:g}s / {config.alarm.warning_duration_s:g}s"
        f" / {config.alarm.alert_duration_s:g}s",
    )
    table.add_row("Safety timeout", f"{config.alarm.safety_timeout_s:g}s")
    table.add_row("Health check", f"every {config.alarm.health_check_interval_s:g}s")

    console.print()
    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Show WakeAssist version."""
    from wakeassist import __version__

    console.print(f"🔔 WakeAssist v{__version__}")


if __name__ == "__main__":
    app()
