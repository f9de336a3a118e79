"""Durable, lock-guarded persistence of install manifests.

Writes go to a uniquely named temporary file in the manifest's directory,
are flushed and fsynced, then renamed over the manifest in one step, so a
reader sees either the old or the new file and never a partial one.

Every read-modify-write goes through `ManifestStore.mutate`, which holds
the scope's lock file for the whole cycle. Batch operations are a single
`mutate` call. Two racing mutations of the same key resolve to whichever
ran last under the lock.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

import pydantic
import structlog

from skills_installer.core.config import Scope, SkillsConfig
from skills_installer.core.constants import MANIFEST_SCHEMA_VERSION, SUPPORTED_AGENTS
from skills_installer.core.errors import ValidationError
from skills_installer.core.targets import is_managed_root_allowed
from skills_installer.core.validate import validate_name
from skills_installer.state.lock import ManifestLock
from skills_installer.state.schemas import (
    InstallRecord,
    Manifest,
    ManifestLoad,
    create_empty_manifest,
    migrate_manifest,
)
from skills_installer.utils.debug import debug

__all__ = ["ManifestStore"]

T = TypeVar("T")

logger = structlog.get_logger(__name__)


class ManifestStore:
    """Reads and writes the manifest for each scope.

    The store keeps no cache: every call loads from disk, so callers always
    hold their own copy and never a live reference shared with another
    operation.
    """

    def __init__(self, config: SkillsConfig) -> None:
        self.config = config

    def path_for(self, scope: Scope) -> Path:
        return self.config.manifest_path(scope)

    def lock_for(self, scope: Scope) -> ManifestLock:
        """Return a fresh (unacquired) lock for a scope's manifest."""
        return ManifestLock(
            self.config.lock_path(scope),
            timeout=self.config.lock_timeout,
            stale_after=self.config.lock_stale_after,
            initial_delay=self.config.lock_initial_delay,
            max_delay=self.config.lock_max_delay,
        )

    @contextmanager
    def locked(self, scope: Scope) -> Iterator[None]:
        """Hold the scope's manifest lock for the duration of the block."""
        with self.lock_for(scope):
            yield

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def load(self, scope: Scope) -> ManifestLoad:
        """Load a scope's manifest and report how it was obtained.

        A missing file yields status 'missing'. Unreadable JSON, failed
        structural validation or an older schema yields status 'reset' with
        an empty manifest and a logged diagnostic.

        Raises:
            SchemaVersionError: If the file was written by a newer tool
        """
        path = self.path_for(scope)

        if not path.exists():
            return ManifestLoad(
                status="missing", manifest=create_empty_manifest(), path=path
            )

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            return self._reset(path, f"unreadable manifest: {exc}")

        try:
            manifest = migrate_manifest(data)
        except pydantic.ValidationError as exc:
            return self._reset(
                path, f"invalid manifest structure ({exc.error_count()} error(s))"
            )

        found = data.get("schema_version") if isinstance(data, dict) else None
        if found != MANIFEST_SCHEMA_VERSION:
            return self._reset(
                path,
                f"unsupported schema_version {found!r}; starting from an empty manifest",
            )

        return ManifestLoad(status="loaded", manifest=manifest, path=path)

    def read(self, scope: Scope) -> Manifest:
        """Return the manifest for a scope (empty if missing or reset)."""
        return self.load(scope).manifest

    def write(self, scope: Scope, manifest: Manifest) -> None:
        """Persist a manifest atomically.

        Raises:
            OSError: If the temporary file cannot be written or renamed
        """
        path = self.path_for(scope)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(manifest.to_json())
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        debug(f"Wrote manifest {path} ({len(manifest.packages)} package(s))")

    def mutate(self, scope: Scope, fn: Callable[[Manifest], T]) -> T:
        """Run one locked read-modify-write cycle.

        `fn` receives a private copy of the manifest and edits it in place.
        The manifest is written only if `fn` returns normally.

        Raises:
            LockTimeoutError: If the lock could not be acquired
            SchemaVersionError: If the manifest is from a newer tool
        """
        with self.locked(scope):
            manifest = self.read(scope)
            result = fn(manifest)
            manifest.schema_version = MANIFEST_SCHEMA_VERSION
            self.write(scope, manifest)
            return result

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------

    def get(self, scope: Scope, key: str) -> InstallRecord | None:
        return self.read(scope).packages.get(key)

    def add(self, scope: Scope, record: InstallRecord) -> InstallRecord:
        return self.add_many(scope, [record])[0]

    def add_many(
        self, scope: Scope, records: Sequence[InstallRecord]
    ) -> list[InstallRecord]:
        """Insert or update records in a single locked cycle.

        Re-adding an existing key keeps its install_id and installed_at and
        takes everything else from the new record.

        Returns:
            The records as stored

        Raises:
            ValidationError: If a record is invalid for this scope; checked
                before the lock is taken
        """
        self.validate_records(scope, records)

        def apply(manifest: Manifest) -> list[InstallRecord]:
            stored: list[InstallRecord] = []
            for record in records:
                existing = manifest.packages.get(record.key)
                if existing is not None:
                    record = record.model_copy(
                        update={
                            "install_id": existing.install_id,
                            "installed_at": existing.installed_at,
                        }
                    )
                manifest.packages[record.key] = record
                stored.append(record)
            _check_unique_roots(manifest)
            return stored

        if not records:
            return []
        return self.mutate(scope, apply)

    def remove(self, scope: Scope, key: str) -> InstallRecord | None:
        removed = self.remove_many(scope, [key])
        return removed[0] if removed else None

    def remove_many(self, scope: Scope, keys: Iterable[str]) -> list[InstallRecord]:
        """Delete records in a single locked cycle.

        Unknown keys are ignored.

        Returns:
            The records that were present and removed
        """
        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return []

        def apply(manifest: Manifest) -> list[InstallRecord]:
            return [
                manifest.packages.pop(key)
                for key in wanted
                if key in manifest.packages
            ]

        return self.mutate(scope, apply)

    def validate_records(
        self, scope: Scope, records: Sequence[InstallRecord]
    ) -> None:
        """Check records against the mutation-time invariants.

        Raises:
            ValidationError: Listing every violation across all records
        """
        errors: list[str] = []
        roots: dict[Path, str] = {}

        for record in records:
            label = record.key
            if record.scope != scope:
                errors.append(
                    f"{label}: record scope {record.scope!r} does not match {scope!r}"
                )
            if record.agent not in SUPPORTED_AGENTS:
                errors.append(f"{label}: unsupported agent {record.agent!r}")
            errors.extend(
                f"{label}: {message}"
                for message in validate_name(record.package_name).errors
            )
            if not is_managed_root_allowed(
                record.managed_root, record.agent, record.scope, self.config
            ):
                errors.append(
                    f"{label}: managed_root {record.managed_root} is outside the "
                    f"install roots for {record.agent} ({record.scope})"
                )
            other = roots.setdefault(record.managed_root, label)
            if other != label:
                errors.append(
                    f"{label}: managed_root {record.managed_root} already used by {other}"
                )

        if errors:
            raise ValidationError(errors)

    def _reset(self, path: Path, reason: str) -> ManifestLoad:
        logger.warning("manifest.reset", path=str(path), reason=reason)
        return ManifestLoad(
            status="reset", manifest=create_empty_manifest(), path=path, reason=reason
        )


def _check_unique_roots(manifest: Manifest) -> None:
    owners: dict[Path, str] = {}
    errors: list[str] = []
    for key, record in manifest.packages.items():
        other = owners.setdefault(record.managed_root, key)
        if other != key:
            errors.append(
                f"{key}: managed_root {record.managed_root} already owned by {other}"
            )
    if errors:
        raise ValidationError(errors)
