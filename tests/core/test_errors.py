"""Tests for core custom exceptions.

Tests for typed exceptions raised by validation, locking, manifest
loading and install transactions.
"""

from pathlib import Path


def test_errors_import() -> None:
    """Test that errors module can be imported."""
    from skills_installer.core import errors

    assert errors is not None


def test_validation_error_keeps_every_message() -> None:
    """Test that ValidationError reports all violations."""
    from skills_installer.core.errors import SkillsError, ValidationError

    exc = ValidationError(["bad name", "bad path"])

    assert isinstance(exc, SkillsError)
    assert exc.errors == ["bad name", "bad path"]
    assert "bad name" in str(exc)
    assert "bad path" in str(exc)
    assert exc.to_dict() == {
        "error": "validation_error",
        "errors": ["bad name", "bad path"],
    }


def test_validation_error_empty_list() -> None:
    """Test that an empty error list still has a message."""
    from skills_installer.core.errors import ValidationError

    exc = ValidationError([])

    assert str(exc) == "validation failed"


def test_lock_timeout_error() -> None:
    """Test LockTimeoutError carries the lock path and wait time."""
    from skills_installer.core.errors import LockTimeoutError

    lock_path = Path("/tmp/project/.skills-manifest.json.lock")
    exc = LockTimeoutError(lock_path, 1.5)

    assert exc.lock_path == lock_path
    assert exc.waited == 1.5
    assert str(lock_path) in str(exc)
    assert "retry" in str(exc)
    payload = exc.to_dict()
    assert payload["error"] == "lock_timeout"
    assert payload["lock_path"] == str(lock_path)


def test_schema_version_error() -> None:
    """Test SchemaVersionError names both versions."""
    from skills_installer.core.errors import SchemaVersionError

    exc = SchemaVersionError(found=3, supported=1)

    assert exc.found == 3
    assert exc.supported == 1
    assert "3" in str(exc)
    assert "Upgrade" in str(exc)
    assert exc.to_dict() == {"error": "schema_version", "found": 3, "supported": 1}
    assert repr(exc) == "SchemaVersionError(found=3, supported=1)"


def test_transaction_error_mentions_rollback() -> None:
    """Test TransactionError summarizes failures and rolled back targets."""
    from skills_installer.core.errors import TransactionError

    exc = TransactionError(
        ["Failed to install to /x/b: boom"], rolled_back=[Path("/x/a")]
    )

    assert exc.errors == ["Failed to install to /x/b: boom"]
    assert exc.rolled_back == [Path("/x/a")]
    assert "boom" in str(exc)
    assert "rolled back 1" in str(exc)
    assert exc.to_dict()["error"] == "transaction_failed"


def test_partial_commit_error_wraps_cause() -> None:
    """Test PartialCommitError keeps the underlying failure."""
    from skills_installer.core.errors import PartialCommitError

    cause = OSError("disk full")
    exc = PartialCommitError(cause, [Path("/x/a"), Path("/x/b")])

    assert exc.cause is cause
    assert "disk full" in str(exc)
    assert "rolled back 2" in str(exc)
    payload = exc.to_dict()
    assert payload["error"] == "partial_commit"
    assert payload["rolled_back"] == ["/x/a", "/x/b"]


def test_all_errors_share_base_class() -> None:
    """Test that every custom error can be caught as SkillsError."""
    from skills_installer.core.errors import (
        LockTimeoutError,
        PartialCommitError,
        SchemaVersionError,
        SkillsError,
        TransactionError,
        ValidationError,
    )

    for cls in (
        LockTimeoutError,
        PartialCommitError,
        SchemaVersionError,
        TransactionError,
        ValidationError,
    ):
        assert issubclass(cls, SkillsError)
