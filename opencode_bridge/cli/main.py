"""Main CLI entry point for the OpenCode chat bridge."""

from pathlib import Path

import typer
from rich.console import Console

from opencode_bridge.cli.commands.projects import projects_command
from opencode_bridge.cli.commands.serve import bot_command, serve_command
from opencode_bridge.cli.commands.sessions import clear_command, sessions_command

app = typer.Typer(
    name="opencode-bridge",
    help="OpenCode Chat Bridge - drive OpenCode agent sessions from chat",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()

ConfigOption = typer.Option(None, "-c", "--config", help="YAML config file")


@app.command("serve")
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default BRIDGE_HOST)"),
    port: int = typer.Option(None, "--port", help="Bind port (default BRIDGE_PORT)"),
    config: Path = ConfigOption,
) -> None:
    """Run the HTTP control API (and the Telegram bot if configured)."""
    serve_command(host, port, config)


@app.command("bot")
def bot(config: Path = ConfigOption) -> None:
    """Run the Telegram bot only."""
    bot_command(config)


@app.command("sessions")
def sessions(
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
    config: Path = ConfigOption,
) -> None:
    """List persisted sessions."""
    sessions_command(json_flag, config)


@app.command("clear")
def clear(
    conversation_id: str = typer.Argument(..., help="Conversation ID"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation"),
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
    config: Path = ConfigOption,
) -> None:
    """Delete a persisted session."""
    clear_command(conversation_id, yes, json_flag, config)


@app.command("projects")
def projects(
    json_flag: bool = typer.Option(False, "--json", help="Output as JSON"),
    config: Path = ConfigOption,
) -> None:
    """List available projects."""
    projects_command(json_flag, config)


def main() -> None:
    """Entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(130)
