"""Persistent install state: manifest schema, lock and store."""

from skills_installer.state.lock import ManifestLock
from skills_installer.state.schemas import (
    InstallRecord,
    Manifest,
    ManifestLoad,
    manifest_key,
    migrate_manifest,
)
from skills_installer.state.store import ManifestStore

__all__ = [
    "InstallRecord",
    "Manifest",
    "ManifestLoad",
    "ManifestLock",
    "ManifestStore",
    "manifest_key",
    "migrate_manifest",
]
