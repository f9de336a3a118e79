"""Runtime configuration for the skills installer.

Configuration is an explicit value passed to the components that need it.
`SkillsConfig.from_env()` is the only place environment variables are read.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skills_installer.core.constants import (
    DEFAULT_LOCK_INITIAL_DELAY,
    DEFAULT_LOCK_MAX_DELAY,
    DEFAULT_LOCK_STALE_AFTER,
    DEFAULT_LOCK_TIMEOUT,
    LOCK_SUFFIX,
    MANIFEST_FILENAME,
)

__all__ = ["Scope", "SkillsConfig"]

Scope = Literal["project", "user"]


@dataclass(frozen=True)
class SkillsConfig:
    """Filesystem roots and lock tuning for one invocation.

    Attributes:
        project_root: Base directory for project-scope installs and manifest
        home: Base directory for user-scope installs and manifest
        lock_timeout: Seconds to wait for the manifest lock before failing
        lock_stale_after: Age in seconds after which a lock is reclaimed
        lock_initial_delay: First backoff delay between lock attempts
        lock_max_delay: Cap for a single backoff delay
        audit_log_path: Optional JSONL file receiving audit events
        audit_log_dir: Optional extra directory audit logs may live in
    """

    project_root: Path = field(default_factory=Path.cwd)
    home: Path = field(default_factory=Path.home)
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    lock_stale_after: float = DEFAULT_LOCK_STALE_AFTER
    lock_initial_delay: float = DEFAULT_LOCK_INITIAL_DELAY
    lock_max_delay: float = DEFAULT_LOCK_MAX_DELAY
    audit_log_path: Path | None = None
    audit_log_dir: Path | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SkillsConfig:
        """Build a config from SKILLS_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ

        project_root = env.get("SKILLS_PROJECT_ROOT")
        home = env.get("SKILLS_HOME")
        audit_log = env.get("SKILLS_AUDIT_LOG")
        audit_dir = env.get("SKILLS_AUDIT_LOG_DIR")

        return cls(
            project_root=Path(project_root).expanduser() if project_root else Path.cwd(),
            home=Path(home).expanduser() if home else Path.home(),
            lock_timeout=_float_env(env, "SKILLS_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT),
            lock_stale_after=_float_env(
                env, "SKILLS_LOCK_STALE_AFTER", DEFAULT_LOCK_STALE_AFTER
            ),
            audit_log_path=Path(audit_log) if audit_log else None,
            audit_log_dir=Path(audit_dir) if audit_dir else None,
        )

    def manifest_path(self, scope: Scope) -> Path:
        """Return the manifest file path for a scope."""
        if scope == "project":
            return self.project_root / MANIFEST_FILENAME
        if scope == "user":
            return self.home / ".config" / "skills" / MANIFEST_FILENAME
        raise ValueError(f"Invalid scope: {scope}")

    def lock_path(self, scope: Scope) -> Path:
        """Return the lock file path guarding a scope's manifest."""
        manifest = self.manifest_path(scope)
        return manifest.with_name(manifest.name + LOCK_SUFFIX)

    def base_dir(self, scope: Scope) -> Path:
        """Return the directory install roots are relative to."""
        if scope == "project":
            return self.project_root.absolute()
        if scope == "user":
            return self.home.absolute()
        raise ValueError(f"Invalid scope: {scope}")


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value
