"""Validation gate for package names, relative paths and file types.

All functions here are pure: they never touch the filesystem. The installer
runs them before any mutation so a rejected input leaves no trace.
"""

import posixpath
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import PurePosixPath, PureWindowsPath
from urllib.parse import unquote

from skills_installer.core.constants import (
    BLOCKED_EXTENSIONS,
    MAX_NAME_LENGTH,
    NAME_ALLOWED_CHARS,
)
from skills_installer.core.errors import ValidationError

# Guards against pathological nesting like %25252e
_MAX_DECODE_ROUNDS = 5


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation check.

    Attributes:
        errors: Every violation found; empty when the input is valid
    """

    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise ValidationError if any violation was found."""
        if self.errors:
            raise ValidationError(self.errors)


def validate_name(name: str) -> ValidationResult:
    """Check that a package name is safe to use as a directory name.

    Names are 1-128 characters of lowercase ASCII letters, digits, '-' and
    '_', must not start with '-' or '_', and must not be '.' or '..'.

    Args:
        name: Candidate package name

    Returns:
        ValidationResult listing all violations
    """
    if not name:
        return ValidationResult(["Package name is required"])

    errors: list[str] = []

    if len(name) > MAX_NAME_LENGTH:
        errors.append(f"Package name must be {MAX_NAME_LENGTH} characters or fewer")

    if any(char not in NAME_ALLOWED_CHARS for char in name):
        errors.append(
            f'Package name "{name}" contains invalid characters. Use only '
            "lowercase letters, numbers, hyphens, and underscores."
        )

    if name[0] in "-_":
        errors.append("Package name must not start with a hyphen or underscore")

    if name in (".", ".."):
        errors.append('Package name must not be "." or ".."')

    return ValidationResult(errors)


def validate_relative_path(path: str) -> ValidationResult:
    """Check that a path stays inside the directory it is relative to.

    Percent-encoding is decoded before any traversal check. Both the raw and
    the normalized segment lists are inspected, because normalization alone
    can fold a climb through a parent directory into an innocent-looking
    result.

    Args:
        path: Candidate relative path (e.g. a source subpath)

    Returns:
        ValidationResult listing all violations
    """
    if not path:
        return ValidationResult(["Path must not be empty"])

    errors: list[str] = []
    decoded = _fully_unquote(path)

    if "\x00" in path or "\x00" in decoded:
        errors.append(f"Path contains a NUL byte: {path!r}")

    if _is_absolute(path) or _is_absolute(decoded):
        errors.append(f'Absolute paths not allowed: "{path}"')

    if _has_parent_segment(path) or _has_parent_segment(decoded):
        errors.append(f'Path traversal detected: "{path}"')

    return ValidationResult(errors)


def is_blocked_file_type(filename: str) -> bool:
    """Return True if the file name ends with a denylisted extension.

    The match is a case-insensitive suffix comparison. It stops careless
    payloads such as bundled executables; it is not a security boundary
    and an unlisted extension always passes.
    """
    lower = filename.lower()
    return any(lower.endswith(ext) for ext in BLOCKED_EXTENSIONS)


def find_blocked_files(filenames: Iterable[str]) -> list[str]:
    """Return the subset of file names with a blocked extension."""
    return [name for name in filenames if is_blocked_file_type(name)]


def _fully_unquote(value: str) -> str:
    decoded = value
    for _ in range(_MAX_DECODE_ROUNDS):
        next_value = unquote(decoded)
        if next_value == decoded:
            break
        decoded = next_value
    return decoded


def _is_absolute(value: str) -> bool:
    unified = value.replace("\\", "/")
    if unified.startswith("/"):
        return True
    return PurePosixPath(value).is_absolute() or bool(PureWindowsPath(value).drive)


def _has_parent_segment(value: str) -> bool:
    unified = value.replace("\\", "/")
    if ".." in unified.split("/"):
        return True
    normalized = posixpath.normpath(unified)
    return ".." in normalized.split("/")
