"""Tests for the validation gate (names, relative paths, file types)."""

import pytest

from skills_installer.core.errors import ValidationError
from skills_installer.core.validate import (
    find_blocked_files,
    is_blocked_file_type,
    validate_name,
    validate_relative_path,
)


class TestValidateName:
    """Test package name validation."""

    @pytest.mark.parametrize(
        "name", ["my-skill_v2", "a", "skill", "0day", "a" * 128]
    )
    def test_valid_names(self, name: str) -> None:
        """Test that well-formed names pass."""
        result = validate_name(name)
        assert result.valid, result.errors

    def test_empty_name(self) -> None:
        """Test that an empty name is rejected with a single message."""
        result = validate_name("")
        assert result.errors == ["Package name is required"]

    def test_too_long(self) -> None:
        """Test the 128 character limit."""
        result = validate_name("a" * 129)
        assert not result.valid
        assert any("128 characters" in error for error in result.errors)

    def test_uppercase_rejected(self) -> None:
        """Test that uppercase letters are invalid characters."""
        result = validate_name("UPPER")
        assert not result.valid
        assert any("invalid characters" in error for error in result.errors)

    @pytest.mark.parametrize("name", ["-bad", "_bad"])
    def test_leading_separator_rejected(self, name: str) -> None:
        """Test that names may not start with '-' or '_'."""
        result = validate_name(name)
        assert any("must not start" in error for error in result.errors)

    @pytest.mark.parametrize("name", [".", ".."])
    def test_dot_names_rejected(self, name: str) -> None:
        """Test that '.' and '..' are rejected."""
        result = validate_name(name)
        assert not result.valid
        assert any('"." or ".."' in error for error in result.errors)

    @pytest.mark.parametrize("name", ["a/b", "a\\b", "a:b", "a b", "ski\x00ll"])
    def test_separators_rejected(self, name: str) -> None:
        """Test that path separators and key separators never pass."""
        assert not validate_name(name).valid

    def test_reports_all_violations(self) -> None:
        """Test that every violation is listed, not just the first."""
        result = validate_name("-" + "A" * 200)
        assert len(result.errors) == 3

    def test_raise_for_errors(self) -> None:
        """Test conversion of a failed result into ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_name("..").raise_for_errors()
        assert exc_info.value.errors

        validate_name("ok").raise_for_errors()


class TestValidateRelativePath:
    """Test relative path validation."""

    @pytest.mark.parametrize(
        "path", ["skills/a", "a", "skills/nested/deep", "./skills", "a..b/c"]
    )
    def test_valid_paths(self, path: str) -> None:
        """Test that paths staying inside the base directory pass."""
        result = validate_relative_path(path)
        assert result.valid, result.errors

    @pytest.mark.parametrize(
        "path",
        [
            "a/../../etc/passwd",
            "..",
            "../sibling",
            "skills/../..",
            "..\\windows",
        ],
    )
    def test_traversal_rejected(self, path: str) -> None:
        """Test that parent-directory segments are rejected."""
        result = validate_relative_path(path)
        assert any("traversal" in error for error in result.errors)

    @pytest.mark.parametrize("path", ["/etc/passwd", "\\\\server\\share", "C:\\Windows"])
    def test_absolute_rejected(self, path: str) -> None:
        """Test that POSIX, UNC and drive-letter paths are rejected."""
        result = validate_relative_path(path)
        assert any("Absolute" in error for error in result.errors)

    @pytest.mark.parametrize(
        "path", ["%2e%2e/etc", "%2E%2E%2Fetc", "%252e%252e/etc", "a/%2e%2e/%2e%2e/b"]
    )
    def test_encoded_traversal_rejected(self, path: str) -> None:
        """Test that percent-encoded traversal is decoded before checking."""
        result = validate_relative_path(path)
        assert not result.valid

    def test_encoded_absolute_rejected(self) -> None:
        """Test that an encoded leading slash is caught."""
        result = validate_relative_path("%2Fetc%2Fpasswd")
        assert any("Absolute" in error for error in result.errors)

    def test_nul_byte_rejected(self) -> None:
        """Test that NUL bytes (raw or encoded) are rejected."""
        assert not validate_relative_path("skills\x00/a").valid
        assert not validate_relative_path("skills%00/a").valid

    def test_empty_rejected(self) -> None:
        """Test that an empty path is rejected."""
        assert validate_relative_path("").errors == ["Path must not be empty"]


class TestBlockedFileTypes:
    """Test the blocked file-type denylist."""

    @pytest.mark.parametrize(
        "filename",
        ["payload.exe", "lib.DLL", "install.sh", "tool.PS1", "bundle.js.map", "x/y/z.so"],
    )
    def test_blocked(self, filename: str) -> None:
        """Test that denylisted suffixes match case-insensitively."""
        assert is_blocked_file_type(filename)

    @pytest.mark.parametrize(
        "filename", ["SKILL.md", "helper.py", "data.json", "notes.txt", "shell.md"]
    )
    def test_allowed(self, filename: str) -> None:
        """Test that ordinary files pass."""
        assert not is_blocked_file_type(filename)

    def test_find_blocked_files(self) -> None:
        """Test filtering a list down to the blocked entries."""
        names = ["SKILL.md", "bin/tool.exe", "scripts/run.sh", "README.md"]
        assert find_blocked_files(names) == ["bin/tool.exe", "scripts/run.sh"]
