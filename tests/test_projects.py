"""Tests for project discovery and resolution."""
from pathlib import Path

import pytest

from opencode_bridge.errors import InvalidProjectError
from opencode_bridge.projects import list_projects, resolve_project


class TestListProjects:

    def test_sorted_visible_directories(self, projects_dir: Path) -> None:
        (projects_dir / ".cache").mkdir()
        (projects_dir / "notes.txt").write_text("not a project")
        (projects_dir / "aardvark").mkdir()
        assert list_projects(projects_dir) == ["aardvark", "alpha", "beta"]

    def test_missing_root(self, tmp_path: Path) -> None:
        assert list_projects(tmp_path / "nowhere") == []


class TestResolveProject:

    def test_by_name(self, projects_dir: Path) -> None:
        assert resolve_project(projects_dir, "beta") == (projects_dir / "beta").resolve()

    def test_absolute_path_inside_root(self, projects_dir: Path) -> None:
        beta = (projects_dir / "beta").resolve()
        assert resolve_project(projects_dir, str(beta)) == beta

    def test_absolute_path_outside_root(self, tmp_path: Path, projects_dir: Path) -> None:
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        with pytest.raises(InvalidProjectError, match="is outside"):
            resolve_project(projects_dir, str(elsewhere))

    @pytest.mark.parametrize("value", ["", "   ", "gamma", "../outside", "alpha/../../x"])
    def test_rejected(self, projects_dir: Path, value: str) -> None:
        with pytest.raises(InvalidProjectError):
            resolve_project(projects_dir, value)

    def test_file_is_not_a_project(self, projects_dir: Path) -> None:
        (projects_dir / "readme.md").write_text("hi")
        with pytest.raises(InvalidProjectError, match="Project not found"):
            resolve_project(projects_dir, "readme.md")
