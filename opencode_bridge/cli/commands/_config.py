"""Shared configuration loading for CLI commands."""
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from opencode_bridge.cli.output import format_error
from opencode_bridge.config import BridgeConfig, load_config
from opencode_bridge.errors import ConfigError


def load_or_exit(console: Console, config_file: Optional[Path]) -> BridgeConfig:
    """Load configuration, exiting with code 1 on invalid settings."""
    try:
        return load_config(config_file)
    except ConfigError as e:
        format_error(console, e.message, hint="Check your environment or --config file")
        raise typer.Exit(code=1)
