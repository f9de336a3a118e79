"""Package discovery within a fetched source tree.

Every directory containing a SKILL.md file is one package. Its name comes
from the `name:` frontmatter key, falling back to the directory name.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from skills_installer.core.constants import DISCOVERY_SKIP_DIRS, SKILL_FILENAME

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DiscoveredSkill:
    """A package found in a source tree.

    Attributes:
        name: Package name (frontmatter `name`, or the directory name)
        path: Absolute package directory
        relative_path: Directory relative to the searched source root
        description: Frontmatter `description`, if any
        frontmatter: All parsed frontmatter keys
    """

    name: str
    path: Path
    relative_path: str
    description: str = ""
    frontmatter: dict[str, Any] = field(default_factory=dict)


def discover_skills(root: Path, subpath: str | None = None) -> list[DiscoveredSkill]:
    """Find packages under root (optionally only below root/subpath).

    Args:
        root: Root of the fetched source tree
        subpath: Optional subdirectory to restrict the search to; callers
            validate it with validate_relative_path first

    Returns:
        Discovered packages sorted by relative path
    """
    search_dir = root / subpath if subpath else root
    if not search_dir.is_dir():
        logger.info("discovery.missing_dir", path=str(search_dir))
        return []

    skills: list[DiscoveredSkill] = []
    for skill_file in _find_skill_files(search_dir):
        try:
            content = skill_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("discovery.unreadable", path=str(skill_file), error=str(exc))
            continue

        frontmatter, _ = parse_frontmatter(content)
        directory = skill_file.parent
        name = frontmatter.get("name")
        description = frontmatter.get("description")
        skills.append(
            DiscoveredSkill(
                name=name if isinstance(name, str) and name else directory.name,
                path=directory,
                relative_path=directory.relative_to(root).as_posix(),
                description=description.strip() if isinstance(description, str) else "",
                frontmatter=frontmatter,
            )
        )

    return sorted(skills, key=lambda skill: skill.relative_path)


def parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split a leading `---` YAML block from the body.

    The block runs from a first line of `---` to the next line of `---` and
    is loaded with `yaml.safe_load`. Anything other than a mapping, or YAML
    that fails to parse, yields an empty frontmatter.

    Returns:
        (frontmatter mapping, body)
    """
    lines = content.splitlines(keepends=True)
    if not lines or lines[0].strip() != "---":
        return {}, content

    for index, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            break
    else:
        return {}, content

    raw = "".join(lines[1:index])
    body = "".join(lines[index + 1 :])

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        logger.warning("discovery.frontmatter_invalid", error=str(exc))
        return {}, body

    return (data if isinstance(data, dict) else {}), body


def _find_skill_files(search_dir: Path) -> list[Path]:
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(search_dir):
        dirnames[:] = sorted(d for d in dirnames if d not in DISCOVERY_SKIP_DIRS)
        if SKILL_FILENAME in filenames:
            found.append(Path(dirpath) / SKILL_FILENAME)
    return found
