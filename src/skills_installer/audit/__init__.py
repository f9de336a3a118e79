"""Audit event emission."""

from skills_installer.audit.events import AuditEvent, AuditLog

__all__ = ["AuditEvent", "AuditLog"]
