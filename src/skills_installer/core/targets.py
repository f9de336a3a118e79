"""Canonical install locations for each supported agent.

| Agent       | Scope   | Install root                                 |
|-------------|---------|----------------------------------------------|
| roo         | project | .roo/skills                                  |
| roo         | user    | ~/.roo/skills                                |
| copilot     | project | .github/skills if it exists, else .agents/skills |
| copilot     | user    | ~/.copilot/skills                            |
| claude-code | project | .codex/skills                                |
| claude-code | user    | ~/.codex/skills                              |
"""

from __future__ import annotations

import os
from pathlib import Path

from skills_installer.core.config import Scope, SkillsConfig
from skills_installer.core.constants import SUPPORTED_AGENTS

__all__ = [
    "get_install_path",
    "get_install_root",
    "get_scan_roots",
    "is_managed_root_allowed",
    "is_within_root",
    "parse_agent_selection",
]

_AGENT_DIRS: dict[str, dict[str, tuple[str, ...]]] = {
    "roo": {"project": (".roo", "skills"), "user": (".roo", "skills")},
    "copilot": {"project": (".agents", "skills"), "user": (".copilot", "skills")},
    "claude-code": {"project": (".codex", "skills"), "user": (".codex", "skills")},
}

_COPILOT_COMPAT_DIR = (".github", "skills")


def get_install_root(agent: str, scope: Scope, config: SkillsConfig) -> Path:
    """Return the directory packages for an agent/scope are installed into.

    Raises:
        ValueError: If the agent or scope is not supported
    """
    if agent not in _AGENT_DIRS:
        raise ValueError(f"Unsupported agent: {agent}")
    base = config.base_dir(scope)

    # Compatibility: reuse .github/skills when a project already has it
    if agent == "copilot" and scope == "project":
        compat = base.joinpath(*_COPILOT_COMPAT_DIR)
        if compat.is_dir():
            return compat

    return base.joinpath(*_AGENT_DIRS[agent][scope])


def get_install_path(
    agent: str, scope: Scope, package_name: str, config: SkillsConfig
) -> Path:
    """Return the managed root a package would be installed at."""
    return get_install_root(agent, scope, config) / package_name


def get_scan_roots(agent: str, scope: Scope, config: SkillsConfig) -> list[Path]:
    """Return every root a managed install for agent/scope may live under."""
    if agent == "copilot" and scope == "project":
        base = config.base_dir(scope)
        return [
            base.joinpath(*_AGENT_DIRS["copilot"]["project"]),
            base.joinpath(*_COPILOT_COMPAT_DIR),
        ]
    return [get_install_root(agent, scope, config)]


def parse_agent_selection(selection: str | None) -> tuple[list[str], list[str]]:
    """Parse a comma-separated agent list.

    Args:
        selection: e.g. "roo, Copilot"; None or blank selects every agent

    Returns:
        (known agents in input order without duplicates, unknown names)
    """
    if selection is None or not selection.strip():
        return list(SUPPORTED_AGENTS), []

    agents: list[str] = []
    invalid: list[str] = []
    for raw in selection.split(","):
        name = raw.strip().lower()
        if not name:
            continue
        if name in SUPPORTED_AGENTS:
            if name not in agents:
                agents.append(name)
        else:
            invalid.append(raw.strip())
    return agents, invalid


def is_within_root(path: Path, root: Path) -> bool:
    """Return True if path is strictly below root (never root itself)."""
    resolved_path = Path(os.path.realpath(path))
    resolved_root = Path(os.path.realpath(root))
    return resolved_path != resolved_root and resolved_path.is_relative_to(
        resolved_root
    )


def is_managed_root_allowed(
    managed_root: Path, agent: str, scope: Scope, config: SkillsConfig
) -> bool:
    """Check that a record's managed root lies under one of its scan roots.

    Evaluated at mutation time, so a record whose target convention changed
    between versions can never authorize a delete outside the install roots.
    """
    if agent not in _AGENT_DIRS or scope not in ("project", "user"):
        return False
    if not Path(managed_root).is_absolute():
        return False
    return any(
        is_within_root(managed_root, root)
        for root in get_scan_roots(agent, scope, config)
    )
