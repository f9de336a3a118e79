"""Audit events for install state changes.

Events are delivered to in-process listeners and, when an audit log path
is configured, appended to it in JSONL format:

    {"type": "skill.add", "timestamp": "...", "data": {...}}

Audit output never breaks a command: listener and write failures are
logged and dropped.
"""

import json
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import structlog

from skills_installer.core.config import SkillsConfig
from skills_installer.core.targets import is_within_root
from skills_installer.utils.debug import debug

AuditEventType = Literal[
    "skill.add",
    "skill.remove",
    "skill.update",
    "skill.check",
    "error",
]


@dataclass(frozen=True)
class AuditEvent:
    type: AuditEventType
    timestamp: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "timestamp": self.timestamp, "data": self.data}


AuditListener = Callable[[AuditEvent], None]


class AuditLog:
    """Dispatches audit events to listeners and an optional JSONL file."""

    def __init__(self, config: SkillsConfig, logger: Any = None) -> None:
        """Initialize audit log.

        Args:
            config: Supplies the audit log path and allowed directories
            logger: Optional structlog logger instance
        """
        self._logger = logger or structlog.get_logger(__name__)
        self._listeners: list[AuditListener] = []
        self._path = self._resolve_path(config)

    @property
    def path(self) -> Path | None:
        """Audit log file in use, or None if file output is disabled."""
        return self._path

    def add_listener(self, listener: AuditListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: AuditListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def emit(self, event_type: AuditEventType, data: dict[str, Any]) -> AuditEvent:
        """Record an event and return it."""
        event = AuditEvent(
            type=event_type,
            timestamp=datetime.now(UTC).isoformat(),
            data=data,
        )

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                self._logger.warning(
                    "audit.listener_failed", event_type=event_type, error=str(exc)
                )

        if self._path is not None:
            self._append(self._path, event)

        return event

    def _append(self, path: Path, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), ensure_ascii=False, separators=(",", ":"))
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as handle:
                handle.write(line + "\n")
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            self._logger.warning(
                "audit.write_failed", path=str(path), error=str(exc)
            )
            return
        debug(f"Appended audit event {event.type} to {path}")

    def _resolve_path(self, config: SkillsConfig) -> Path | None:
        """Accept the configured path only inside an allowed directory."""
        path = config.audit_log_path
        if path is None:
            return None

        if not path.is_absolute() or ".." in path.parts:
            self._logger.warning("audit.path_rejected", path=str(path))
            return None

        allowed = [config.home, Path(tempfile.gettempdir())]
        if config.audit_log_dir is not None and config.audit_log_dir.is_absolute():
            allowed.append(config.audit_log_dir)

        if not any(is_within_root(path, root) for root in allowed):
            self._logger.warning("audit.path_rejected", path=str(path))
            return None

        return path
