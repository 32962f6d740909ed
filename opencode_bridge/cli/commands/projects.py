"""List project directories available to /switch."""

from pathlib import Path
from typing import Optional

from rich.console import Console

from opencode_bridge.cli.commands._config import load_or_exit
from opencode_bridge.cli.output import format_projects, json_output
from opencode_bridge.projects import list_projects

console = Console()


def projects_command(json_flag: bool, config_file: Optional[Path]) -> None:
    config = load_or_exit(console, config_file)
    projects_dir = config.sessions.projects_dir
    projects = list_projects(projects_dir)
    if json_flag:
        json_output(console, {"projects_dir": str(projects_dir), "projects": projects})
        return
    if not projects:
        console.print(f"No projects found in {projects_dir}")
        return
    format_projects(console, projects_dir, projects)
