"""Run the bridge: HTTP control API or Telegram bot only."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console

from opencode_bridge.adapters.telegram import TelegramAdapter
from opencode_bridge.agent.client import OpenCodeClient
from opencode_bridge.cli.commands._config import load_or_exit
from opencode_bridge.cli.output import format_error
from opencode_bridge.config import BridgeConfig
from opencode_bridge.server.app import create_app
from opencode_bridge.sessions.manager import SessionManager
from opencode_bridge.state.database import DatabaseManager

console = Console()
logger = logging.getLogger(__name__)


def serve_command(host: Optional[str], port: Optional[int], config_file: Optional[Path]) -> None:
    """Serve the HTTP API; the Telegram bot runs alongside when configured."""
    config = load_or_exit(console, config_file)
    if not config.http.enabled:
        format_error(
            console, "HTTP API is disabled (BRIDGE_API_ENABLED=false)",
            hint="Use 'opencode-bridge bot' to run the Telegram bot only",
        )
        raise typer.Exit(code=1)
    app = create_app(config)
    uvicorn.run(
        app,
        host=host or config.http.host,
        port=port or config.http.port,
        log_level=config.log_level.lower(),
    )


async def _run_bot(config: BridgeConfig) -> None:
    db = DatabaseManager(config.db_path)
    await db.initialize()
    client = OpenCodeClient(config.agent.base_url, timeout=config.agent.request_timeout)
    manager = SessionManager(client, db, config.sessions)
    manager.start_reaper()
    adapter = TelegramAdapter(config, manager)
    try:
        await adapter.run_forever()
    finally:
        await manager.shutdown()
        await client.aclose()
        await db.close()


def bot_command(config_file: Optional[Path]) -> None:
    """Run the Telegram bot without the HTTP API."""
    config = load_or_exit(console, config_file)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    if not config.telegram.bot_token:
        format_error(console, "TELEGRAM_BOT_TOKEN is not set", hint="Export it or add it to --config")
        raise typer.Exit(code=1)
    logger.info("OpenCode server: %s, projects: %s", config.agent.base_url, config.sessions.projects_dir)
    asyncio.run(_run_bot(config))
