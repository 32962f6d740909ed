"""Inspect and clear persisted session records."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from opencode_bridge.cli.commands._config import load_or_exit
from opencode_bridge.cli.output import format_error, format_sessions_table, format_success, format_warning, json_output
from opencode_bridge.sessions.models import SessionSnapshot
from opencode_bridge.state import DatabaseManager, SessionRecordRepository

console = Console()


async def _list_records(db_path: Path) -> list[SessionSnapshot]:
    db = DatabaseManager(db_path)
    await db.initialize()
    async with db.connection() as conn:
        return await SessionRecordRepository(conn).list_all()


async def _delete_record(db_path: Path, conversation_id: str) -> bool:
    db = DatabaseManager(db_path)
    await db.initialize()
    async with db.connection() as conn:
        return await SessionRecordRepository(conn).delete(conversation_id)


def sessions_command(json_flag: bool, config_file: Optional[Path]) -> None:
    """List persisted session records."""
    config = load_or_exit(console, config_file)
    try:
        records = asyncio.run(_list_records(config.db_path))
    except Exception as e:
        format_error(console, f"Failed to read sessions: {e}")
        raise typer.Exit(code=1)

    if json_flag:
        json_output(console, {"count": len(records), "sessions": [r.to_dict() for r in records]})
        return
    if not records:
        console.print("No stored sessions.")
        return
    format_sessions_table(console, records)


def clear_command(conversation_id: str, yes: bool, json_flag: bool, config_file: Optional[Path]) -> None:
    """Delete a conversation's stored session record."""
    config = load_or_exit(console, config_file)
    if not yes:
        format_warning(console, f"Will delete the stored session for {conversation_id}")
        if not typer.confirm("Continue?"):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(code=0)
    try:
        cleared = asyncio.run(_delete_record(config.db_path, conversation_id))
    except Exception as e:
        format_error(console, f"Failed to clear session: {e}")
        raise typer.Exit(code=1)

    if json_flag:
        json_output(console, {"conversation_id": conversation_id, "cleared": cleared})
        return
    if cleared:
        format_success(console, f"Cleared session {conversation_id}")
    else:
        format_error(console, f"No stored session for {conversation_id}")
        raise typer.Exit(code=1)
