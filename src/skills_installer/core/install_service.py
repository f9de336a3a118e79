"""Install service orchestrating transactions, manifest updates and audit.

This module ties the staged installer, the transaction coordinator and the
manifest store together for the command surface (install, update, remove,
list, check), with structured logging and Rich console output.

Ordering contract for install and update:
1. Validate names, paths and records (nothing is touched on failure).
2. Publish every target in one transaction (rolled back on failure).
3. Record the results with one locked `add_many`. If that fails, the
   just-published targets are removed (replaced ones get their previous
   content back) and PartialCommitError is raised. Backups of replaced
   targets are deleted only after the manifest write succeeds.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import structlog
from rich.console import Console

from skills_installer.audit.events import AuditLog
from skills_installer.core.config import Scope, SkillsConfig
from skills_installer.core.constants import SUPPORTED_AGENTS
from skills_installer.core.discovery import DiscoveredSkill
from skills_installer.core.errors import (
    LockTimeoutError,
    PartialCommitError,
    SchemaVersionError,
    ValidationError,
)
from skills_installer.core.targets import get_install_path, is_managed_root_allowed
from skills_installer.core.validate import validate_name, validate_relative_path
from skills_installer.fs.paths import remove_path
from skills_installer.fs.transaction import (
    InstallStep,
    TransactionResult,
    execute_transaction,
    rollback_targets,
)
from skills_installer.state.schemas import InstallRecord, utc_now
from skills_installer.state.store import ManifestStore

__all__ = [
    "CheckResult",
    "InstallReport",
    "InstallService",
    "PendingUpdate",
    "RemovalPlanItem",
    "RemoveReport",
    "ResolvedSource",
]

CheckStatus = Literal["valid", "missing", "policy_violation"]


@dataclass(frozen=True)
class ResolvedSource:
    """A fetched source as handed over by the resolver/fetcher.

    Attributes:
        url: Canonical source URL
        revision: Content pin of the fetched tree (e.g. commit hash)
        ref: Requested branch or tag, if any
        subpath: Subdirectory the packages were discovered in, if any
    """

    url: str
    revision: str
    ref: str | None = None
    subpath: str | None = None


@dataclass(frozen=True)
class PendingUpdate:
    """An installed record plus the freshly fetched tree to reinstall from."""

    record: InstallRecord
    source_path: Path
    revision: str


@dataclass
class InstallReport:
    """Summary of a successful install or update."""

    records: list[InstallRecord]
    files_copied: int

    @property
    def targets(self) -> list[Path]:
        return [record.managed_root for record in self.records]


@dataclass(frozen=True)
class RemovalPlanItem:
    key: str
    package_name: str
    agent: str
    managed_root: Path


@dataclass
class RemoveReport:
    """Summary of a removal."""

    plan: list[RemovalPlanItem]
    removed: list[InstallRecord] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass(frozen=True)
class CheckResult:
    key: str
    package_name: str
    agent: str
    status: CheckStatus
    detail: str = ""


class InstallService:
    """Runs install-state operations for one configuration."""

    def __init__(
        self,
        config: SkillsConfig,
        store: ManifestStore | None = None,
        audit: AuditLog | None = None,
        logger: Any = None,
        ui: Console | None = None,
    ) -> None:
        """Initialize install service.

        Args:
            config: Filesystem roots and lock tuning
            store: Manifest store (defaults to one built from config)
            audit: Audit log (defaults to one built from config)
            logger: Optional structlog logger instance
            ui: Optional Rich console for output
        """
        self.config = config
        self.store = store or ManifestStore(config)
        self.audit = audit or AuditLog(config)
        self._logger = logger or structlog.get_logger()
        self._ui = ui or Console()

    # ------------------------------------------------------------------
    # Install / update
    # ------------------------------------------------------------------

    def install(
        self,
        source: ResolvedSource,
        skills: Sequence[DiscoveredSkill],
        agents: Sequence[str],
        scope: Scope,
    ) -> InstallReport:
        """Install every skill for every agent as one transaction.

        Raises:
            ValidationError: Bad name, path, agent or record; nothing touched
            TransactionError: A step failed; earlier steps were rolled back
            PartialCommitError: Published but not recorded; rolled back
        """
        errors = self._validate_request(source, skills, agents)
        if errors:
            raise ValidationError(errors)

        now = utc_now()
        records: list[InstallRecord] = []
        steps: list[InstallStep] = []
        for skill in skills:
            for agent in agents:
                target = get_install_path(agent, scope, skill.name, self.config)
                steps.append(InstallStep(source=skill.path, target=target))
                records.append(
                    InstallRecord(
                        source_url=source.url,
                        resolved_ref=source.ref,
                        resolved_revision=source.revision,
                        source_subpath=source.subpath,
                        package_name=skill.name,
                        package_relative_path=skill.relative_path,
                        agent=agent,
                        scope=scope,
                        managed_root=target,
                        installed_at=now,
                        updated_at=now,
                    )
                )

        bound_logger = self._logger.bind(
            operation="install",
            scope=scope,
            source_url=source.url,
            revision=source.revision,
        )
        stored, result = self._commit(scope, records, steps, bound_logger)

        for record in stored:
            self._ui.print(
                f"✅ [green]INSTALLED[/green] {record.package_name} → "
                f"{record.agent} ({scope})"
            )
        self.audit.emit(
            "skill.add",
            {
                "scope": scope,
                "source_url": source.url,
                "revision": source.revision,
                "installed": len(stored),
            },
        )
        return InstallReport(records=stored, files_copied=result.files_copied)

    def update(self, scope: Scope, pending: Sequence[PendingUpdate]) -> InstallReport:
        """Reinstall records from newly fetched trees as one transaction.

        Each record keeps its key and install_id; revision, managed root
        and updated_at are refreshed.

        Raises:
            ValidationError, TransactionError, PartialCommitError: As install
        """
        if not pending:
            return InstallReport(records=[], files_copied=0)

        unsupported = [
            f"Unsupported agent: {item.record.agent}"
            for item in pending
            if item.record.agent not in SUPPORTED_AGENTS
        ]
        if unsupported:
            raise ValidationError(unsupported)

        now = utc_now()
        records: list[InstallRecord] = []
        steps: list[InstallStep] = []
        for item in pending:
            record = item.record
            target = get_install_path(
                record.agent, record.scope, record.package_name, self.config
            )
            steps.append(InstallStep(source=item.source_path, target=target))
            records.append(
                record.model_copy(
                    update={
                        "resolved_revision": item.revision,
                        "managed_root": target,
                        "updated_at": now,
                    }
                )
            )

        bound_logger = self._logger.bind(operation="update", scope=scope)
        stored, result = self._commit(scope, records, steps, bound_logger)

        previous = {item.record.key: item.record for item in pending}
        for record in stored:
            old = previous[record.key].resolved_revision
            self._ui.print(
                f"⬆️ [green]UPDATED[/green] {record.package_name} ({record.agent}): "
                f"{old[:8]} → {record.resolved_revision[:8]}"
            )
        self.audit.emit("skill.update", {"scope": scope, "updated": len(stored)})
        return InstallReport(records=stored, files_copied=result.files_copied)

    def _commit(
        self,
        scope: Scope,
        records: list[InstallRecord],
        steps: list[InstallStep],
        bound_logger: Any,
    ) -> tuple[list[InstallRecord], TransactionResult]:
        self.store.validate_records(scope, records)

        with self._ui.status(f"Installing {len(steps)} target(s)..."):
            result = execute_transaction(steps)

        for outcome in result.outcomes:
            bound_logger.info(
                "install.step",
                target=str(outcome.target),
                status=outcome.status,
                files_copied=outcome.files_copied,
                reason=outcome.reason,
            )

        if not result.success:
            for error in result.errors:
                self._ui.print(f"❌ [red]FAILED[/red] {error}")
            self.audit.emit(
                "error",
                {"scope": scope, "errors": result.errors, "rolled_back": len(result.rolled_back)},
            )
            result.raise_for_failure()

        try:
            stored = self.store.add_many(scope, records)
        except (OSError, LockTimeoutError, SchemaVersionError, ValidationError) as exc:
            rolled_back = rollback_targets(
                result.committed, result.backups, result.created_dirs
            )
            bound_logger.error(
                "install.manifest_write_failed",
                error=str(exc),
                rolled_back=len(rolled_back),
            )
            self.audit.emit(
                "error",
                {"scope": scope, "errors": [str(exc)], "rolled_back": len(rolled_back)},
            )
            raise PartialCommitError(exc, rolled_back) from exc

        result.discard_backups()
        bound_logger.info(
            "install.summary",
            targets=len(result.committed),
            files_copied=result.files_copied,
        )
        return stored, result

    def _validate_request(
        self,
        source: ResolvedSource,
        skills: Sequence[DiscoveredSkill],
        agents: Sequence[str],
    ) -> list[str]:
        errors: list[str] = []
        if not skills:
            errors.append("No packages to install")
        if not agents:
            errors.append("No agents selected")
        errors.extend(
            f"Unsupported agent: {agent}" for agent in agents if agent not in SUPPORTED_AGENTS
        )
        if source.subpath:
            errors.extend(validate_relative_path(source.subpath).errors)

        seen: set[str] = set()
        for skill in skills:
            errors.extend(
                f'Invalid package name "{skill.name}": {message}'
                for message in validate_name(skill.name).errors
            )
            if skill.name in seen:
                errors.append(f'Duplicate package name "{skill.name}"')
            seen.add(skill.name)
        return errors

    # ------------------------------------------------------------------
    # Remove
    # ------------------------------------------------------------------

    def plan_removal(
        self,
        scope: Scope,
        names: Sequence[str],
        agents: Sequence[str],
        remove_all: bool = False,
    ) -> list[RemovalPlanItem]:
        """Select the records a removal would touch.

        Raises:
            ValidationError: If neither names nor remove_all is given
        """
        if not remove_all and not names:
            raise ValidationError(["Specify package names to remove, or use --all."])

        wanted = {name.lower() for name in names}
        plan: list[RemovalPlanItem] = []
        for key, record in self.store.read(scope).packages.items():
            if record.agent not in agents:
                continue
            if not remove_all and record.package_name.lower() not in wanted:
                continue
            plan.append(
                RemovalPlanItem(
                    key=key,
                    package_name=record.package_name,
                    agent=record.agent,
                    managed_root=record.managed_root,
                )
            )
        return plan

    def remove(
        self,
        scope: Scope,
        names: Sequence[str],
        agents: Sequence[str],
        *,
        remove_all: bool = False,
        dry_run: bool = False,
    ) -> RemoveReport:
        """Delete managed roots and drop their records in one manifest cycle.

        A record whose managed root is outside its agent's install roots is
        refused and left in the manifest.
        """
        plan = self.plan_removal(scope, names, agents, remove_all)
        report = RemoveReport(plan=plan, dry_run=dry_run)
        if dry_run or not plan:
            return report

        bound_logger = self._logger.bind(operation="remove", scope=scope)
        removed_keys: list[str] = []

        for item in plan:
            if not is_managed_root_allowed(
                item.managed_root, item.agent, scope, self.config
            ):
                message = (
                    f"Refusing to remove path outside managed roots: {item.managed_root}"
                )
                report.failed.append(message)
                self._ui.print(f"❌ [red]REFUSED[/red] {item.package_name} ({item.agent}): {message}")
                continue

            try:
                remove_path(item.managed_root)
            except OSError as exc:
                report.failed.append(f"Failed to remove {item.package_name} ({item.agent}): {exc}")
                self._ui.print(f"❌ [red]FAILED[/red] {item.package_name} ({item.agent}): {exc}")
                continue

            removed_keys.append(item.key)
            self._ui.print(
                f"🗑️ [green]REMOVED[/green] {item.package_name} from {item.agent} ({scope})"
            )

        report.removed = self.store.remove_many(scope, removed_keys)
        bound_logger.info(
            "remove.summary", removed=len(report.removed), failed=len(report.failed)
        )
        self.audit.emit(
            "skill.remove",
            {"scope": scope, "removed": len(report.removed), "failed": len(report.failed)},
        )
        return report

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def list_installed(self, scope: Scope, agents: Sequence[str]) -> list[InstallRecord]:
        records = self.store.read(scope).packages.values()
        return sorted(
            (record for record in records if record.agent in agents),
            key=lambda record: (record.agent, record.package_name),
        )

    def check(self, scope: Scope, agents: Sequence[str]) -> list[CheckResult]:
        """Compare manifest records against the filesystem and install roots."""
        results = [self._check_record(record) for record in self.list_installed(scope, agents)]
        self.audit.emit("skill.check", {"scope": scope, "checked": len(results)})
        return results

    def _check_record(self, record: InstallRecord) -> CheckResult:
        base = {
            "key": record.key,
            "package_name": record.package_name,
            "agent": record.agent,
        }
        name_errors = validate_name(record.package_name).errors
        if name_errors:
            return CheckResult(**base, status="policy_violation", detail="; ".join(name_errors))
        if not is_managed_root_allowed(
            record.managed_root, record.agent, record.scope, self.config
        ):
            return CheckResult(
                **base,
                status="policy_violation",
                detail=f"Managed root outside install roots: {record.managed_root}",
            )
        if not record.managed_root.is_dir():
            return CheckResult(
                **base, status="missing", detail=f"Path not found: {record.managed_root}"
            )
        return CheckResult(**base, status="valid")

