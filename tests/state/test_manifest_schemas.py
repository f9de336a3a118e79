"""Tests for manifest schemas and schema-version migration."""

import json
from datetime import datetime
from pathlib import Path

import pydantic
import pytest

from skills_installer.core.constants import MANIFEST_SCHEMA_VERSION
from skills_installer.core.errors import SchemaVersionError
from skills_installer.state.schemas import (
    InstallRecord,
    Manifest,
    create_empty_manifest,
    manifest_key,
    migrate_manifest,
)


def _record(**overrides) -> InstallRecord:  # type: ignore[no-untyped-def]
    data = {
        "source_url": "https://github.com/example/skills",
        "resolved_revision": "abc123",
        "package_name": "alpha",
        "agent": "roo",
        "scope": "project",
        "managed_root": Path("/work/project/.roo/skills/alpha"),
    }
    data.update(overrides)
    return InstallRecord(**data)


class TestInstallRecord:
    """Test the InstallRecord model."""

    def test_key(self) -> None:
        """Test the composite manifest key."""
        record = _record()
        assert record.key == "roo:project:alpha"
        assert manifest_key("copilot", "user", "x") == "copilot:user:x"

    def test_defaults(self) -> None:
        """Test generated install id and timestamps."""
        first = _record()
        second = _record()

        assert first.install_id != second.install_id
        assert isinstance(first.installed_at, datetime)
        assert first.installed_at.tzinfo is not None
        assert first.resolved_ref is None
        assert first.source_subpath is None

    def test_requires_absolute_managed_root(self) -> None:
        """Test that relative managed roots are rejected."""
        with pytest.raises(pydantic.ValidationError):
            _record(managed_root=Path("relative/alpha"))

    def test_rejects_unknown_scope(self) -> None:
        """Test the scope vocabulary."""
        with pytest.raises(pydantic.ValidationError):
            _record(scope="system")

    def test_rejects_empty_revision(self) -> None:
        """Test that a revision is mandatory."""
        with pytest.raises(pydantic.ValidationError):
            _record(resolved_revision="")

    def test_frozen(self) -> None:
        """Test that records are immutable."""
        record = _record()
        with pytest.raises(pydantic.ValidationError):
            record.package_name = "beta"  # type: ignore[misc]

    def test_model_copy_keeps_identity(self) -> None:
        """Test that updates go through model_copy."""
        record = _record()
        updated = record.model_copy(update={"resolved_revision": "def456"})

        assert updated.install_id == record.install_id
        assert updated.resolved_revision == "def456"
        assert record.resolved_revision == "abc123"


class TestManifest:
    """Test the Manifest model."""

    def test_key_must_match_record(self) -> None:
        """Test that a mislabeled entry is rejected."""
        record = _record()
        with pytest.raises(pydantic.ValidationError):
            Manifest(packages={"copilot:project:alpha": record})

    def test_to_json(self) -> None:
        """Test the on-disk JSON shape."""
        record = _record()
        text = Manifest(packages={record.key: record}).to_json()

        assert text.endswith("\n")
        data = json.loads(text)
        assert data["schema_version"] == MANIFEST_SCHEMA_VERSION
        entry = data["packages"]["roo:project:alpha"]
        assert entry["managed_root"] == "/work/project/.roo/skills/alpha"
        assert entry["install_id"] == record.install_id

    def test_empty_manifest(self) -> None:
        """Test the empty manifest factory."""
        manifest = create_empty_manifest()
        assert manifest.schema_version == MANIFEST_SCHEMA_VERSION
        assert manifest.packages == {}


class TestMigrateManifest:
    """Test schema-version handling of decoded manifest data."""

    def test_current_version_passes(self) -> None:
        """Test that current data round-trips through migration."""
        record = _record()
        raw = json.loads(Manifest(packages={record.key: record}).to_json())

        manifest = migrate_manifest(raw)

        assert manifest.packages[record.key] == record

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            "manifest",
            {},
            {"schema_version": "1", "packages": {}},
            {"schema_version": True, "packages": {}},
            {"schema_version": 0, "packages": {"x": 1}},
        ],
    )
    def test_unusable_or_older_resets(self, raw: object) -> None:
        """Test that legacy or unversioned data becomes an empty manifest."""
        manifest = migrate_manifest(raw)
        assert manifest.packages == {}
        assert manifest.schema_version == MANIFEST_SCHEMA_VERSION

    def test_newer_version_raises(self) -> None:
        """Test that a newer schema is never silently discarded."""
        with pytest.raises(SchemaVersionError) as exc_info:
            migrate_manifest(
                {"schema_version": MANIFEST_SCHEMA_VERSION + 1, "packages": {}}
            )

        assert exc_info.value.found == MANIFEST_SCHEMA_VERSION + 1
        assert exc_info.value.supported == MANIFEST_SCHEMA_VERSION

    def test_malformed_current_version_raises(self) -> None:
        """Test that broken current-version data surfaces as a validation error."""
        with pytest.raises(pydantic.ValidationError):
            migrate_manifest(
                {"schema_version": MANIFEST_SCHEMA_VERSION, "packages": {"k": "v"}}
            )
