"""Custom exceptions for the skills installer.

This module defines typed exceptions used throughout the application for
error handling and CLI/JSON responses.
"""

from pathlib import Path
from typing import Any


class SkillsError(Exception):
    """Base exception for all skills installer errors.

    All custom exceptions should inherit from this base class to allow
    for broad exception handling at the command boundary.
    """

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON output."""
        return {"error": "skills_error", "message": str(self)}


class ValidationError(SkillsError):
    """Raised when a name, path, file type or record fails validation.

    Always detected before any mutation, so it is safe to retry with
    corrected input.

    Attributes:
        errors: Every violation found, not just the first
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "validation failed")

    def to_dict(self) -> dict[str, Any]:
        return {"error": "validation_error", "errors": self.errors}

    def __repr__(self) -> str:
        return f"ValidationError(errors={self.errors!r})"


class LockTimeoutError(SkillsError):
    """Raised when the manifest lock could not be acquired in time.

    Another invocation held the lock past the timeout. Nothing was
    mutated; retrying later is safe.

    Attributes:
        lock_path: Path of the contended lock file
        waited: Seconds spent waiting before giving up
    """

    def __init__(self, lock_path: Path, waited: float) -> None:
        self.lock_path = lock_path
        self.waited = waited
        super().__init__(
            f"Timed out after {waited:.2f}s waiting for lock {lock_path}. "
            "Another skills command may be running; retry later."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "lock_timeout",
            "lock_path": str(self.lock_path),
            "waited": round(self.waited, 3),
        }

    def __repr__(self) -> str:
        return f"LockTimeoutError(lock_path={self.lock_path!r}, waited={self.waited})"


class SchemaVersionError(SkillsError):
    """Raised when a manifest was written by a newer version of the tool.

    Unlike ordinary corruption this is never downgraded to an empty
    manifest: doing so would silently discard the newer tool's records.

    Attributes:
        found: Schema version found in the manifest
        supported: Highest schema version this build understands
    """

    def __init__(self, found: int, supported: int) -> None:
        self.found = found
        self.supported = supported
        super().__init__(
            f"Manifest schema version {found} is newer than supported "
            f"version {supported}. Upgrade the skills tool."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "schema_version",
            "found": self.found,
            "supported": self.supported,
        }

    def __repr__(self) -> str:
        return f"SchemaVersionError(found={self.found}, supported={self.supported})"


class TransactionError(SkillsError):
    """Raised when one or more install steps failed.

    Every step committed earlier in the same batch has already been
    removed when this is raised.

    Attributes:
        errors: Human-readable failure descriptions
        rolled_back: Targets removed during rollback
    """

    def __init__(self, errors: list[str], rolled_back: list[Path] | None = None) -> None:
        self.errors = list(errors)
        self.rolled_back = list(rolled_back or [])
        message = "Install transaction failed: " + "; ".join(self.errors)
        if self.rolled_back:
            message += f" (rolled back {len(self.rolled_back)} target(s))"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "transaction_failed",
            "errors": self.errors,
            "rolled_back": [str(path) for path in self.rolled_back],
        }


class PartialCommitError(SkillsError):
    """Raised when files were published but the manifest write failed.

    The published targets are removed, or restored to their previous
    content, before raising so the filesystem matches the previous
    manifest again.

    Attributes:
        cause: The manifest-side failure
        rolled_back: Targets removed or restored to regain consistency
    """

    def __init__(self, cause: BaseException, rolled_back: list[Path]) -> None:
        self.cause = cause
        self.rolled_back = list(rolled_back)
        super().__init__(
            f"Installed files could not be recorded in the manifest ({cause}); "
            f"rolled back {len(self.rolled_back)} target(s)"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "partial_commit",
            "cause": str(self.cause),
            "rolled_back": [str(path) for path in self.rolled_back],
        }
