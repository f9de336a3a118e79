"""Path utilities for staged installs.

This module provides tree enumeration, staging and backup naming, and
best-effort removal helpers shared by the installer and its rollback path.
"""

import os
import shutil
import tempfile
import uuid
from pathlib import Path

import structlog

from skills_installer.core.errors import ValidationError
from skills_installer.utils.debug import debug

logger = structlog.get_logger(__name__)

STAGING_MARKER = ".staging-"
BACKUP_MARKER = ".backup-"


def list_files(root: Path) -> list[Path]:
    """Recursively list regular files below root, sorted by POSIX path.

    Symbolic links are rejected outright: their targets are never
    validated, so following them could escape the package tree.

    Args:
        root: Directory to enumerate

    Returns:
        Absolute paths of every file below root

    Raises:
        ValidationError: If a symbolic link is found
        OSError: If a directory cannot be read
    """
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        for name in dirnames + filenames:
            entry = current / name
            if entry.is_symlink():
                raise ValidationError(
                    [f"Symlinks not allowed in packages: {entry.relative_to(root)}"]
                )
        files.extend(current / name for name in filenames)
    return sorted(files, key=lambda path: path.as_posix())


def ensure_parent_dir(path: Path) -> None:
    """Ensure parent directory exists for a path.

    Raises:
        OSError: If parent directory cannot be created
    """
    parent = path.parent
    if not parent.exists():
        parent.mkdir(parents=True, exist_ok=True)


def create_staging_dir(target: Path) -> Path:
    """Create a uniquely named staging directory beside the target.

    Staging next to the target keeps both on one filesystem, so the final
    publish is a single atomic rename.
    """
    ensure_parent_dir(target)
    staging = tempfile.mkdtemp(
        prefix=f".{target.name}{STAGING_MARKER}", dir=str(target.parent)
    )
    debug(f"Created staging directory {staging}")
    return Path(staging)


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree.

    Raises:
        OSError: If removal fails
    """
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def remove_tree_best_effort(path: Path, *, event: str = "fs.remove_failed") -> bool:
    """Remove path recursively, logging instead of raising on failure.

    Args:
        path: File or directory to remove; missing paths are a success
        event: Log event name used when removal fails

    Returns:
        True if nothing remains at path
    """
    if not path.exists() and not path.is_symlink():
        return True
    try:
        remove_path(path)
    except OSError as exc:
        logger.warning(event, path=str(path), error=str(exc))
        # Partial removal is still progress; take whatever is left
        shutil.rmtree(path, ignore_errors=True)
    return not path.exists() and not path.is_symlink()


def get_backup_path(target: Path) -> Path:
    """Generate a unique backup path beside the target.

    The leading dot and marker keep backups distinct from package names,
    which may not start with '.'.
    """
    unique_id = uuid.uuid4().hex[:8]
    return target.parent / f".{target.name}{BACKUP_MARKER}{unique_id}"


def restore_backup(backup: Path, target: Path) -> bool:
    """Move a backup back into place, replacing whatever is at target.

    Failures are logged, never raised.

    Returns:
        True if the backup is at target again
    """
    if not remove_tree_best_effort(target, event="fs.restore_clear_failed"):
        logger.warning("fs.restore_failed", target=str(target), backup=str(backup))
        return False
    try:
        os.replace(backup, target)
    except OSError as exc:
        logger.warning(
            "fs.restore_failed", target=str(target), backup=str(backup), error=str(exc)
        )
        return False
    debug(f"Restored {backup} -> {target}")
    return True


def missing_parents(path: Path) -> list[Path]:
    """Return the ancestors of path that do not exist yet, deepest first."""
    missing: list[Path] = []
    parent = path.parent
    while parent != parent.parent and not parent.exists():
        missing.append(parent)
        parent = parent.parent
    return missing


def prune_empty_dirs(directories: list[Path]) -> None:
    """Remove directories in order while they are empty."""
    for directory in directories:
        try:
            directory.rmdir()
        except OSError:
            debug(f"Kept directory {directory}")
            return
