"""Filesystem operations for staged installs and transactional batches.

This module provides the staged installer (copy, validate, atomic publish)
and the transaction coordinator that rolls a batch back as a unit.
"""

from skills_installer.fs.staging import StagedInstallOutcome, install_staged
from skills_installer.fs.transaction import (
    InstallStep,
    TransactionResult,
    execute_transaction,
    rollback_targets,
)

__all__ = [
    "InstallStep",
    "StagedInstallOutcome",
    "TransactionResult",
    "execute_transaction",
    "install_staged",
    "rollback_targets",
]
