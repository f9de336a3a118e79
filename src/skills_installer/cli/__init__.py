"""CLI entrypoints for the skills installer."""

from skills_installer.cli.app import app, run_cli

__all__ = ["app", "run_cli"]
