"""Project directory discovery under the configured projects root."""
import logging
from pathlib import Path

from opencode_bridge.errors import InvalidProjectError

logger = logging.getLogger(__name__)


def list_projects(projects_dir: Path) -> list[str]:
    """Names of the visible subdirectories of ``projects_dir``, sorted."""
    root = Path(projects_dir).expanduser()
    if not root.is_dir():
        logger.warning("Projects directory %s does not exist", root)
        return []
    return sorted(
        entry.name for entry in root.iterdir()
        if entry.is_dir() and not entry.name.startswith(".")
    )


def resolve_project(projects_dir: Path, name_or_path: str) -> Path:
    """Turn a project name or path into an existing directory under the root.

    Relative values are taken from ``projects_dir``; absolute values must
    still point inside it.

    Raises:
        InvalidProjectError: The name is empty, escapes the projects root,
            or does not name a directory.
    """
    value = name_or_path.strip()
    if not value:
        raise InvalidProjectError("Project name is required")
    root = Path(projects_dir).expanduser().resolve()
    candidate = (root / Path(value).expanduser()).resolve()
    if candidate != root and root not in candidate.parents:
        raise InvalidProjectError(f"Project {value!r} is outside {root}")
    if not candidate.is_dir():
        raise InvalidProjectError(
            f"Project not found: {value}", details={"path": str(candidate)},
        )
    return candidate
