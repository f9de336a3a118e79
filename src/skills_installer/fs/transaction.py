"""All-or-nothing batches of staged installs.

One package may go to several agent directories. The batch runs in order,
stops at the first failure and rolls back every target it already
published, so the caller sees either every step committed or none. A target
that replaced earlier content is restored from its backup; the backups of a
committed batch stay on disk until the caller discards them.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from skills_installer.core.errors import TransactionError
from skills_installer.fs.paths import (
    prune_empty_dirs,
    remove_tree_best_effort,
    restore_backup,
)
from skills_installer.fs.staging import StagedInstallOutcome, install_staged

__all__ = [
    "InstallStep",
    "TransactionResult",
    "execute_transaction",
    "rollback_targets",
]

logger = structlog.get_logger(__name__)

Installer = Callable[[Path, Path], StagedInstallOutcome]


@dataclass(frozen=True)
class InstallStep:
    """One (source directory, target path) pair in a batch."""

    source: Path
    target: Path


@dataclass
class TransactionResult:
    """Summary of a batch.

    Attributes:
        success: True if every step committed
        committed: Targets published and still in place
        outcomes: Per-step outcomes, in execution order
        errors: Failure descriptions
        rolled_back: Targets removed or restored because a later step failed
        backups: Previous content of committed targets, keyed by target
        created_dirs: Parent directories created by committed steps, in
            step order
    """

    success: bool
    committed: list[Path] = field(default_factory=list)
    outcomes: list[StagedInstallOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    rolled_back: list[Path] = field(default_factory=list)
    backups: dict[Path, Path] = field(default_factory=dict)
    created_dirs: list[list[Path]] = field(default_factory=list)

    @property
    def files_copied(self) -> int:
        return sum(outcome.files_copied for outcome in self.outcomes if outcome.success)

    def raise_for_failure(self) -> None:
        """Raise TransactionError if the batch failed."""
        if not self.success:
            raise TransactionError(self.errors, self.rolled_back)

    def discard_backups(self) -> None:
        """Delete the previous content of committed targets."""
        for backup in self.backups.values():
            remove_tree_best_effort(backup, event="transaction.backup_cleanup_failed")
        self.backups.clear()


def execute_transaction(
    steps: Sequence[InstallStep], installer: Installer = install_staged
) -> TransactionResult:
    """Run install steps in order as a single unit.

    Args:
        steps: Steps to run; an empty sequence is a trivial success
        installer: Per-step installer (defaults to install_staged)

    Returns:
        TransactionResult. On failure `committed` is empty and every
        earlier target has been removed or restored to its previous
        content. On success `backups` holds the replaced content.
    """
    committed: list[Path] = []
    backups: dict[Path, Path] = {}
    created_dirs: list[list[Path]] = []
    outcomes: list[StagedInstallOutcome] = []

    for step in steps:
        try:
            outcome = installer(step.source, step.target)
        except Exception as exc:
            outcome = StagedInstallOutcome(
                source=step.source,
                target=step.target,
                status="failed",
                reason=f"unexpected error: {exc}",
            )
        outcomes.append(outcome)

        if outcome.success:
            committed.append(step.target)
            if outcome.backup_path is not None:
                backups[step.target] = outcome.backup_path
            created_dirs.append(outcome.created_dirs)
            continue

        error = f"Failed to install to {step.target}: {outcome.reason or 'unknown error'}"
        rolled_back = rollback_targets(committed, backups, created_dirs)
        logger.warning(
            "transaction.failed",
            failed_target=str(step.target),
            step=len(outcomes),
            total_steps=len(steps),
            rolled_back=len(rolled_back),
        )
        return TransactionResult(
            success=False,
            committed=[],
            outcomes=outcomes,
            errors=[error],
            rolled_back=rolled_back,
        )

    return TransactionResult(
        success=True,
        committed=committed,
        outcomes=outcomes,
        backups=backups,
        created_dirs=created_dirs,
    )


def rollback_targets(
    targets: Iterable[Path],
    backups: Mapping[Path, Path] | None = None,
    created_dirs: Sequence[Sequence[Path]] = (),
) -> list[Path]:
    """Undo published targets, newest first.

    A target with a backup gets its previous content back; any other
    target is force-removed. Directories listed in created_dirs are then
    removed while empty. Failures are logged and skipped; this never
    raises, so it is safe to call while handling another error.

    Returns:
        Targets that were removed or restored
    """
    backups = backups or {}
    undone: list[Path] = []
    for target in reversed(list(targets)):
        backup = backups.get(target)
        if backup is not None:
            restored = restore_backup(backup, target)
        else:
            restored = remove_tree_best_effort(target, event="transaction.rollback_failed")
        if restored:
            undone.append(target)
    for directories in reversed(created_dirs):
        prune_empty_dirs(list(directories))
    return undone
