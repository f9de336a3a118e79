"""Pytest configuration and fixtures for skills installer tests."""

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import structlog

from skills_installer.core.config import SkillsConfig

SkillFactory = Callable[..., Path]


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo any structlog configuration a CLI test applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def config(tmp_path: Path) -> SkillsConfig:
    """Config rooted in a temporary project and home directory."""
    project_root = tmp_path / "project"
    home = tmp_path / "home"
    project_root.mkdir()
    home.mkdir()
    return SkillsConfig(
        project_root=project_root,
        home=home,
        lock_timeout=2.0,
        lock_initial_delay=0.01,
        lock_max_delay=0.05,
    )


@pytest.fixture
def source_root(tmp_path: Path) -> Path:
    """Directory standing in for a fetched source tree."""
    root = tmp_path / "source"
    root.mkdir()
    return root


@pytest.fixture
def make_skill(source_root: Path) -> SkillFactory:
    """Create a package directory (with SKILL.md) inside the source tree."""

    def _make(
        name: str,
        files: dict[str, str] | None = None,
        *,
        subdir: str = "skills",
        frontmatter_name: str | None = None,
    ) -> Path:
        directory = source_root / subdir / name
        directory.mkdir(parents=True)
        declared = frontmatter_name if frontmatter_name is not None else name
        (directory / "SKILL.md").write_text(
            f"---\nname: {declared}\ndescription: Test skill {name}\n---\n\n# {name}\n",
            encoding="utf-8",
        )
        for relative, content in (files or {}).items():
            path = directory / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return directory

    return _make
