"""Rich renderings of bridge state for the terminal."""

from pathlib import Path
from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table

from opencode_bridge.sessions.models import SessionSnapshot, SessionStatus

_STATUS_STYLES = {
    SessionStatus.IDLE: "green",
    SessionStatus.BUSY: "cyan",
    SessionStatus.STARTING: "cyan",
    SessionStatus.ERROR: "red",
    SessionStatus.TERMINATED: "dim",
    SessionStatus.UNINITIALIZED: "dim",
}


def format_success(console: Console, message: str) -> None:
    console.print(f"[green]{message}[/green]")


def format_error(console: Console, message: str, hint: Optional[str] = None) -> None:
    """Print an error line, plus a hint line when one is given."""
    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(f"[yellow]Hint:[/yellow] {hint}")


def format_warning(console: Console, message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {message}")


def format_sessions_table(console: Console, records: Iterable[SessionSnapshot]) -> None:
    """Render stored session records, most recent first as given."""
    table = Table(title="Stored Sessions")
    for column in ("Conversation", "Owner", "Project", "Agent Session", "Status", "Last Activity"):
        table.add_column(column)
    for record in records:
        style = _STATUS_STYLES[record.status]
        table.add_row(
            record.conversation_id,
            record.owner_user_id or "-",
            record.project_path,
            record.agent_session_id or "-",
            f"[{style}]{record.status.value}[/{style}]",
            record.last_activity_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


def format_projects(console: Console, projects_dir: Path, names: Iterable[str]) -> None:
    table = Table(title=f"Projects in {projects_dir}")
    table.add_column("Name")
    table.add_column("Path", style="dim")
    for name in names:
        table.add_row(name, str(projects_dir / name))
    console.print(table)
