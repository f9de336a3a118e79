"""Staged, atomically published package installs.

A package is copied into a private staging directory beside its target,
validated there, and published with a single rename. Until that rename the
target is untouched; afterwards the new content is fully visible. An
existing target is moved aside to a backup rather than deleted, so the
caller can restore it if the surrounding batch is rolled back.
"""

import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import structlog

from skills_installer.core.errors import ValidationError
from skills_installer.core.validate import find_blocked_files
from skills_installer.fs.paths import (
    create_staging_dir,
    get_backup_path,
    list_files,
    missing_parents,
    prune_empty_dirs,
    remove_tree_best_effort,
    restore_backup,
)
from skills_installer.utils.debug import debug

__all__ = ["StagedInstallOutcome", "install_staged"]

logger = structlog.get_logger(__name__)


@dataclass
class StagedInstallOutcome:
    """Result of installing one package directory.

    Attributes:
        backup_path: Where the previous target content was moved, if the
            install replaced an existing target. The caller either restores
            it (rollback) or deletes it (commit).
        created_dirs: Parent directories this install created, deepest
            first; a rollback removes them again while they are empty.
    """

    source: Path
    target: Path
    status: Literal["installed", "failed"]
    files_copied: int = 0
    reason: str | None = None
    blocked_files: list[str] = field(default_factory=list)
    staging_dir: Path | None = None
    backup_path: Path | None = None
    created_dirs: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "installed"


def install_staged(source: Path, target: Path) -> StagedInstallOutcome:
    """Copy a package tree to target through a validated staging directory.

    Steps: enumerate the source (symlinks rejected), copy it into a fresh
    staging directory, re-check every staged file against the blocked
    file-type denylist, move any existing target aside to a backup, then
    rename the staging directory into place.

    Args:
        source: Package directory to install
        target: Final install path (fully replaced, never merged)

    Returns:
        StagedInstallOutcome; on failure the target is unchanged, the
        staging directory has been removed where possible, and parent
        directories this call created are removed again if still empty
    """
    source = Path(source)
    target = Path(target)

    if not source.is_dir():
        return _failed(source, target, f"source is not a directory: {source}")

    created_dirs = missing_parents(target)
    staging: Path | None = None
    published = False
    try:
        list_files(source)

        staging = create_staging_dir(target)
        shutil.copytree(source, staging, symlinks=True, dirs_exist_ok=True)

        staged_files = list_files(staging)
        blocked = find_blocked_files(
            str(path.relative_to(staging)) for path in staged_files
        )
        if blocked:
            return _failed(
                source,
                target,
                f"Blocked file types found: {', '.join(blocked)}",
                blocked_files=blocked,
                staging_dir=staging,
            )

        backup = _move_aside(target)
        try:
            os.replace(staging, target)
        except OSError:
            if backup is not None:
                restore_backup(backup, target)
            raise
        published = True
        debug(f"Published {staging} -> {target} ({len(staged_files)} files)")

        return StagedInstallOutcome(
            source=source,
            target=target,
            status="installed",
            files_copied=len(staged_files),
            staging_dir=staging,
            backup_path=backup,
            created_dirs=created_dirs,
        )

    except ValidationError as exc:
        return _failed(source, target, str(exc), staging_dir=staging)
    except OSError as exc:
        return _failed(source, target, f"install failed: {exc}", staging_dir=staging)
    finally:
        if staging is not None and staging.exists():
            remove_tree_best_effort(staging, event="staging.cleanup_failed")
        if not published:
            prune_empty_dirs(created_dirs)


def _move_aside(target: Path) -> Path | None:
    if not (target.exists() or target.is_symlink()):
        return None
    backup = get_backup_path(target)
    os.replace(target, backup)
    debug(f"Moved existing target {target} -> {backup}")
    return backup


def _failed(
    source: Path,
    target: Path,
    reason: str,
    *,
    blocked_files: list[str] | None = None,
    staging_dir: Path | None = None,
) -> StagedInstallOutcome:
    logger.info(
        "install.step_failed", source=str(source), target=str(target), reason=reason
    )
    return StagedInstallOutcome(
        source=source,
        target=target,
        status="failed",
        reason=reason,
        blocked_files=blocked_files or [],
        staging_dir=staging_dir,
    )
