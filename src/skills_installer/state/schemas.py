"""Pydantic schemas for the install manifest.

These schemas define the persisted install state:
- InstallRecord: one installed package for an (agent, scope, name) triple
- Manifest: the versioned set of records for one scope
- ManifestLoad: the outcome of reading a manifest from disk

All schemas use Pydantic v2 for validation and serialization.
"""

import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from skills_installer.core.constants import MANIFEST_SCHEMA_VERSION
from skills_installer.core.errors import SchemaVersionError


def manifest_key(agent: str, scope: str, package_name: str) -> str:
    """Build the composite manifest key ``agent:scope:package_name``.

    Collision-free because none of the three parts may contain ':' (agents
    and scopes are fixed vocabularies, names are validated).
    """
    return f"{agent}:{scope}:{package_name}"


def generate_install_id() -> str:
    """Return a fresh, never-reused install identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


class InstallRecord(BaseModel):
    """A single installed package.

    Attributes:
        install_id: Opaque identifier assigned at creation, never changed
        source_url: Canonical URL of the source repository
        resolved_ref: Branch or tag the user asked for, if any
        resolved_revision: Content pin (e.g. commit hash), stored verbatim
        source_subpath: Subdirectory of the source that was searched
        package_name: Validated package name
        package_relative_path: Package directory relative to the source root
        agent: Agent the package was installed for
        scope: 'project' or 'user'
        managed_root: Absolute path this record owns and may delete
        installed_at: First install time
        updated_at: Last install/update time
    """

    install_id: str = Field(default_factory=generate_install_id, min_length=1)
    source_url: str = Field(min_length=1)
    resolved_ref: str | None = None
    resolved_revision: str = Field(min_length=1)
    source_subpath: str | None = None
    package_name: str = Field(min_length=1)
    package_relative_path: str = ""
    agent: str = Field(min_length=1)
    scope: Literal["project", "user"]
    managed_root: Path
    installed_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}

    @property
    def key(self) -> str:
        return manifest_key(self.agent, self.scope, self.package_name)

    @field_validator("managed_root")
    @classmethod
    def validate_managed_root(cls, v: Path) -> Path:
        """Require an absolute managed root."""
        if not v.is_absolute():
            raise ValueError(f"managed_root must be absolute, got {v}")
        return v

    @field_serializer("managed_root")
    def serialize_managed_root(self, path: Path) -> str:
        """Serialize Path to string for JSON."""
        return str(path)


class Manifest(BaseModel):
    """All install records for one scope.

    Attributes:
        schema_version: Format version the file was written with
        packages: Records keyed by manifest_key(agent, scope, package_name)
    """

    schema_version: int = MANIFEST_SCHEMA_VERSION
    packages: dict[str, InstallRecord] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_keys(self) -> "Manifest":
        for key, record in self.packages.items():
            if key != record.key:
                raise ValueError(
                    f"packages[{key!r}] does not match its record key {record.key!r}"
                )
        return self

    def to_json(self) -> str:
        """Serialize for disk: indented JSON terminated by a newline."""
        return self.model_dump_json(indent=2) + "\n"


class ManifestLoad(BaseModel):
    """Result of loading a manifest.

    Attributes:
        status: 'loaded' (file parsed), 'missing' (no file yet) or 'reset'
            (file unusable; an empty manifest is returned instead)
        manifest: The manifest to work with
        path: File that was read
        reason: Diagnostic for a reset
    """

    status: Literal["loaded", "missing", "reset"]
    manifest: Manifest
    path: Path
    reason: str | None = None

    @field_serializer("path")
    def serialize_path(self, path: Path) -> str:
        """Serialize Path to string for JSON."""
        return str(path)


def create_empty_manifest() -> Manifest:
    return Manifest(schema_version=MANIFEST_SCHEMA_VERSION, packages={})


def migrate_manifest(raw: Any) -> Manifest:
    """Bring decoded manifest data to the current schema.

    - Current version: validated and passed through.
    - Missing, non-integer or older version: reset to an empty manifest
      (no in-place migrations exist yet).
    - Newer version: SchemaVersionError, never a silent reset.

    Args:
        raw: Arbitrary decoded JSON

    Returns:
        A Manifest at MANIFEST_SCHEMA_VERSION

    Raises:
        SchemaVersionError: If the data was written by a newer tool
        pydantic.ValidationError: If current-version data is malformed
    """
    if not isinstance(raw, dict):
        return create_empty_manifest()

    version = raw.get("schema_version")
    if isinstance(version, bool) or not isinstance(version, int):
        return create_empty_manifest()

    if version > MANIFEST_SCHEMA_VERSION:
        raise SchemaVersionError(found=version, supported=MANIFEST_SCHEMA_VERSION)

    if version < MANIFEST_SCHEMA_VERSION:
        return create_empty_manifest()

    return Manifest.model_validate(raw)
