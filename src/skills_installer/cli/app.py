"""CLI entry point for installing and managing skill packages."""

from __future__ import annotations

import importlib
import json
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, NoReturn

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

from rich.console import Console

from skills_installer.core.config import Scope, SkillsConfig
from skills_installer.core.discovery import discover_skills
from skills_installer.core.errors import SkillsError
from skills_installer.core.install_service import (
    InstallService,
    PendingUpdate,
    ResolvedSource,
)
from skills_installer.core.targets import parse_agent_selection
from skills_installer.core.validate import validate_relative_path
from skills_installer.utils.log_config import configure_logging

app: TyperType = typer.Typer(
    help="Install versioned skill packages into agent directories.",
    no_args_is_help=True,
)

GlobalFlag = Annotated[
    bool,
    typer.Option("--global", "-g", help="Use the user (global) scope."),
]
AgentOption = Annotated[
    str | None,
    typer.Option("--agent", "-a", help="Target agents (comma-separated)."),
]
JsonFlag = Annotated[
    bool,
    typer.Option("--json", help="Emit JSON instead of human-readable output."),
]


def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log progress events to stderr."),
    ] = False,
) -> None:
    """Install versioned skill packages into agent directories."""
    configure_logging(verbose=verbose)


def _fail(message: str) -> NoReturn:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _scope(global_scope: bool) -> Scope:
    return "user" if global_scope else "project"


def _agents(selection: str | None) -> list[str]:
    agents, invalid = parse_agent_selection(selection)
    if invalid:
        _fail(f"Unknown agents: {', '.join(invalid)}")
    if not agents:
        _fail("No valid agents specified.")
    return agents


def _service(json_output: bool) -> InstallService:
    try:
        config = SkillsConfig.from_env()
    except ValueError as exc:
        _fail(f"Invalid configuration: {exc}")
    return InstallService(config, ui=Console(quiet=json_output))


def _emit_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


def install(
    path: Annotated[
        Path,
        typer.Argument(help="Local directory holding the fetched source tree."),
    ],
    source_url: Annotated[
        str,
        typer.Option("--source-url", help="Canonical URL the tree was fetched from."),
    ],
    revision: Annotated[
        str,
        typer.Option("--revision", help="Content pin of the tree (e.g. commit hash)."),
    ],
    ref: Annotated[
        str | None,
        typer.Option("--ref", help="Branch or tag that was requested."),
    ] = None,
    subpath: Annotated[
        str | None,
        typer.Option("--subpath", help="Only discover packages below this path."),
    ] = None,
    skill: Annotated[
        str | None,
        typer.Option("--skill", "-s", help="Select packages by name (comma-separated)."),
    ] = None,
    agent: AgentOption = None,
    global_scope: GlobalFlag = False,
    json_output: JsonFlag = False,
) -> None:
    """Install packages from a fetched source tree."""

    scope = _scope(global_scope)
    agents = _agents(agent)
    service = _service(json_output)

    if subpath:
        result = validate_relative_path(subpath)
        if not result.valid:
            _fail(f"Invalid subpath: {'; '.join(result.errors)}")

    if not path.is_dir():
        _fail(f"Source directory not found: {path}")

    found = discover_skills(path.resolve(), subpath)
    if not found:
        _fail("No skills found in the source.")

    selected = found
    if skill and skill.strip() != "*":
        names = {name.strip().lower() for name in skill.split(",") if name.strip()}
        selected = [item for item in found if item.name.lower() in names]
        if not selected:
            available = ", ".join(item.name for item in found)
            _fail(f"No skills matching: {skill}. Available skills: {available}")

    source = ResolvedSource(url=source_url, revision=revision, ref=ref, subpath=subpath)
    try:
        report = service.install(source, selected, agents, scope)
    except SkillsError as exc:
        if json_output:
            _emit_json(exc.to_dict())
        _fail(str(exc))

    if json_output:
        _emit_json(
            {
                "installed": [record.model_dump(mode="json") for record in report.records],
                "files_copied": report.files_copied,
                "scope": scope,
            }
        )
        return

    typer.secho(
        f"Done: {len(report.records)} installed ({report.files_copied} files).",
        fg=typer.colors.GREEN,
    )


def update(
    path: Annotated[
        Path,
        typer.Argument(help="Local directory holding the newly fetched source tree."),
    ],
    source_url: Annotated[
        str,
        typer.Option("--source-url", help="Source URL whose installs should be updated."),
    ],
    revision: Annotated[
        str,
        typer.Option("--revision", help="Content pin of the new tree (e.g. commit hash)."),
    ],
    skill: Annotated[
        str | None,
        typer.Option("--skill", "-s", help="Only update these packages (comma-separated)."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be updated."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt."),
    ] = False,
    agent: AgentOption = None,
    global_scope: GlobalFlag = False,
    json_output: JsonFlag = False,
) -> None:
    """Reinstall packages from a newer fetch of the source they came from."""

    scope = _scope(global_scope)
    agents = _agents(agent)
    service = _service(json_output)

    if not path.is_dir():
        _fail(f"Source directory not found: {path}")

    try:
        records = service.list_installed(scope, agents)
    except SkillsError as exc:
        _fail(str(exc))

    records = [record for record in records if record.source_url == source_url]
    if skill and skill.strip() != "*":
        names = {name.strip().lower() for name in skill.split(",") if name.strip()}
        records = [record for record in records if record.package_name.lower() in names]

    if not records:
        typer.echo(f"No skills installed from {source_url} ({scope} scope).")
        return

    root = path.resolve()
    discovered: dict[str | None, dict[str, Path]] = {}
    pending: list[PendingUpdate] = []
    missing: list[str] = []
    skipped = 0
    for record in records:
        if record.resolved_revision == revision:
            skipped += 1
            continue
        subpath = record.source_subpath
        if subpath not in discovered:
            discovered[subpath] = {
                item.name: item.path for item in discover_skills(root, subpath)
            }
        source_path = discovered[subpath].get(record.package_name)
        if source_path is None:
            missing.append(
                f"Skill {record.package_name!r} ({record.agent}) no longer found in source"
            )
            continue
        pending.append(PendingUpdate(record=record, source_path=source_path, revision=revision))

    if dry_run:
        if json_output:
            _emit_json(
                {
                    "dry_run": True,
                    "updates": [
                        {
                            "key": item.record.key,
                            "package_name": item.record.package_name,
                            "agent": item.record.agent,
                            "from": item.record.resolved_revision,
                            "to": item.revision,
                        }
                        for item in pending
                    ],
                }
            )
        else:
            typer.echo(f"Dry run: {len(pending)} update(s)")
            for item in pending:
                typer.echo(
                    f"  {item.record.package_name} ({item.record.agent}): "
                    f"{item.record.resolved_revision[:8]} -> {item.revision[:8]}"
                )
        return

    if pending and not yes and not typer.confirm(
        f"Update {len(pending)} skill installation(s)?"
    ):
        _fail("Aborted.")

    try:
        report = service.update(scope, pending)
    except SkillsError as exc:
        if json_output:
            _emit_json(exc.to_dict())
        _fail(str(exc))

    if json_output:
        _emit_json(
            {
                "updated": [
                    {
                        "package_name": item.record.package_name,
                        "agent": item.record.agent,
                        "from": item.record.resolved_revision,
                        "to": item.revision,
                    }
                    for item in pending
                ],
                "skipped": skipped,
                "failed": len(missing),
                "scope": scope,
            }
        )
    else:
        typer.echo(
            f"Done: {len(report.records)} updated, {skipped} up-to-date, "
            f"{len(missing)} failed."
        )

    if missing:
        for message in missing:
            typer.secho(message, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)


def list_skills(
    agent: AgentOption = None,
    global_scope: GlobalFlag = False,
    json_output: JsonFlag = False,
) -> None:
    """List installed packages."""

    scope = _scope(global_scope)
    agents = _agents(agent)
    service = _service(json_output)

    try:
        records = service.list_installed(scope, agents)
    except SkillsError as exc:
        _fail(str(exc))

    if json_output:
        _emit_json([record.model_dump(mode="json") for record in records])
        return

    if not records:
        typer.echo(f"No skills installed ({scope} scope).")
        return

    typer.echo(f"Installed skills ({scope} scope):")
    current_agent = None
    for record in records:
        if record.agent != current_agent:
            current_agent = record.agent
            typer.echo(f"\n  {current_agent}:")
        status = "✓" if record.managed_root.is_dir() else "✗ (missing)"
        typer.echo(
            f"    {status} {record.package_name}  "
            f"[{record.resolved_revision[:8]}]  {record.source_url}"
        )


def remove(
    names: Annotated[
        list[str] | None,
        typer.Argument(help="Package names to remove."),
    ] = None,
    remove_all: Annotated[
        bool,
        typer.Option("--all", help="Remove every package for the selected agents."),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be removed."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt."),
    ] = False,
    agent: AgentOption = None,
    global_scope: GlobalFlag = False,
    json_output: JsonFlag = False,
) -> None:
    """Remove installed packages."""

    scope = _scope(global_scope)
    agents = _agents(agent)
    service = _service(json_output)
    wanted: Sequence[str] = names or []

    try:
        plan = service.plan_removal(scope, wanted, agents, remove_all)
    except SkillsError as exc:
        _fail(str(exc))

    if dry_run:
        if json_output:
            _emit_json(
                {
                    "dry_run": True,
                    "removals": [
                        {
                            "key": item.key,
                            "package_name": item.package_name,
                            "agent": item.agent,
                            "path": str(item.managed_root),
                        }
                        for item in plan
                    ],
                }
            )
        else:
            typer.echo(f"Dry run: {len(plan)} removal(s)")
            for item in plan:
                typer.echo(f"  {item.package_name} ({item.agent})\n    {item.managed_root}")
        return

    if not plan:
        typer.echo("No matching skills found to remove.")
        return

    if not yes and not typer.confirm(f"Remove {len(plan)} skill installation(s)?"):
        _fail("Aborted.")

    try:
        report = service.remove(scope, wanted, agents, remove_all=remove_all)
    except SkillsError as exc:
        _fail(str(exc))

    if json_output:
        _emit_json(
            {"removed": len(report.removed), "failed": len(report.failed), "scope": scope}
        )
    else:
        typer.echo(f"Done: {len(report.removed)} removed, {len(report.failed)} failed.")

    if report.failed:
        for message in report.failed:
            typer.secho(message, err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)


def check(
    agent: AgentOption = None,
    global_scope: GlobalFlag = False,
    json_output: JsonFlag = False,
) -> None:
    """Validate installed packages against the filesystem and install roots."""

    scope = _scope(global_scope)
    agents = _agents(agent)
    service = _service(json_output)

    try:
        results = service.check(scope, agents)
    except SkillsError as exc:
        _fail(str(exc))

    issues = [result for result in results if result.status != "valid"]

    if json_output:
        _emit_json(
            [
                {
                    "key": result.key,
                    "package_name": result.package_name,
                    "agent": result.agent,
                    "status": result.status,
                    "detail": result.detail,
                }
                for result in results
            ]
        )
    elif not results:
        typer.echo(f"No skills installed ({scope} scope).")
    else:
        icons = {"valid": "✓", "missing": "✗", "policy_violation": "⚠"}
        typer.echo(f"Check results ({scope} scope):")
        for result in results:
            typer.echo(
                f"  {icons[result.status]} {result.package_name} ({result.agent}): "
                f"{result.status}"
            )
            if result.detail:
                typer.echo(f"    {result.detail}")
        typer.echo(f"\n{len(results) - len(issues)} valid, {len(issues)} issue(s) found.")

    if issues:
        raise typer.Exit(code=1)


def run_cli(args: Sequence[str] | None = None) -> None:
    app(args=args)


app.callback()(main)
app.command("install")(install)
app.command("update")(update)
app.command("list")(list_skills)
app.command("remove")(remove)
app.command("check")(check)
