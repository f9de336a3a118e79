"""Tests for the debug utility module.

The debug utility provides a single entrypoint for debug output that can be
toggled via the SKILLS_DEBUG environment variable.
"""

import importlib
from io import StringIO
from unittest.mock import patch

import pytest


def _reload_debug():  # type: ignore[no-untyped-def]
    from skills_installer.utils import debug as debug_module

    importlib.reload(debug_module)
    return debug_module.debug


def test_debug_import() -> None:
    """Test that debug utility can be imported."""
    from skills_installer.utils.debug import debug

    assert callable(debug)


def test_debug_disabled_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that debug output is disabled when SKILLS_DEBUG is not set."""
    monkeypatch.delenv("SKILLS_DEBUG", raising=False)
    debug = _reload_debug()

    with patch("sys.stderr", new=StringIO()) as fake_stderr:
        debug("This should not print")
        output = fake_stderr.getvalue()

    assert output == "", f"Expected no output, got: {output}"


@pytest.mark.parametrize("value", ["1", "true", "True", "YES"])
def test_debug_enabled_for_truthy_values(
    monkeypatch: pytest.MonkeyPatch, value: str
) -> None:
    """Test that debug writes to stderr for truthy SKILLS_DEBUG values."""
    monkeypatch.setenv("SKILLS_DEBUG", value)
    debug = _reload_debug()

    with patch("sys.stderr", new=StringIO()) as fake_stderr:
        debug(f"Testing {value}")
        output = fake_stderr.getvalue()

    monkeypatch.delenv("SKILLS_DEBUG")
    _reload_debug()

    assert f"Testing {value}" in output
    assert "[DEBUG]" in output


@pytest.mark.parametrize("value", ["0", "false", "no", ""])
def test_debug_disabled_for_falsy_values(
    monkeypatch: pytest.MonkeyPatch, value: str
) -> None:
    """Test that debug is disabled for falsy SKILLS_DEBUG values."""
    monkeypatch.setenv("SKILLS_DEBUG", value)
    debug = _reload_debug()

    with patch("sys.stderr", new=StringIO()) as fake_stderr:
        debug(f"Testing {value}")
        output = fake_stderr.getvalue()

    monkeypatch.delenv("SKILLS_DEBUG")
    _reload_debug()

    assert output == ""


def test_debug_does_not_touch_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    """Debug output must never mix into stdout (reserved for --json)."""
    monkeypatch.setenv("SKILLS_DEBUG", "1")
    debug = _reload_debug()

    with patch("sys.stdout", new=StringIO()) as fake_stdout, patch(
        "sys.stderr", new=StringIO()
    ):
        debug("First message")
        debug("Second message")
        output = fake_stdout.getvalue()

    monkeypatch.delenv("SKILLS_DEBUG")
    _reload_debug()

    assert output == ""
