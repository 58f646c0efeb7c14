"""CLI entry point: pkgtrail.

Subcommands:
    pkgtrail init                       # Create the database and analyze the branch
    pkgtrail update                     # Analyze commits added since the last run
    pkgtrail diff --from SHA [--to SHA] # Dependency changes between two commits
    pkgtrail history PACKAGE            # Every change to one package
    pkgtrail why PACKAGE                # Commit that first added a package
    pkgtrail show [REF]                 # Dependencies at a point in history
    pkgtrail stats                      # Repository-wide statistics
    pkgtrail integrity [--drift]        # Lockfile integrity hashes
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import click

from pkgtrail import deps
from pkgtrail.core.config import Settings
from pkgtrail.core.database import Database
from pkgtrail.core.git import GitError, GitRepository
from pkgtrail.core.logging import setup_logging
from pkgtrail.engines.dependency_analyzer.models import DependencyState
from pkgtrail.engines.registry_client import EcosystemsClient, build_purl
from pkgtrail.models.commit import Commit
from pkgtrail.models.dependency_change import DependencyChange
from pkgtrail.services import ServiceError, ValidationError

_FORMAT_OPTION = click.option(
    "--format",
    "fmt",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Output format",
)
_ECOSYSTEM_OPTION = click.option("-e", "--ecosystem", default=None, help="Filter by ecosystem")
_BRANCH_OPTION = click.option(
    "-b", "--branch", default=None, help="Branch to use (default: repository default branch)"
)


@dataclass
class CliContext:
    repo: GitRepository
    settings: Settings


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a command coroutine; service and git errors exit with status 1."""
    try:
        return asyncio.run(coro)
    except (ServiceError, GitError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


@asynccontextmanager
async def _database(obj: CliContext, *, create: bool = False) -> AsyncIterator[Database]:
    db = Database(obj.settings.resolve_database_url(await obj.repo.git_dir()))
    try:
        if create:
            await db.create_all()
        elif not await db.is_initialized():
            raise ValidationError("database not initialized; run 'pkgtrail init' first")
        yield db
    finally:
        await db.dispose()


async def _branch_name(obj: CliContext, branch: str | None) -> str:
    return branch or await obj.repo.default_branch()


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _commit_json(commit: Commit) -> dict[str, Any]:
    return {
        "sha": commit.sha,
        "short_sha": commit.short_sha,
        "committed_at": commit.committed_at.isoformat(),
        "author_name": commit.author_name,
        "author_email": commit.author_email,
        "message": commit.subject,
    }


def _change_json(change: DependencyChange) -> dict[str, Any]:
    return {
        "commit": _commit_json(change.commit),
        "manifest": change.manifest.path,
        "name": change.name,
        "ecosystem": change.ecosystem,
        "change_type": change.change_type,
        "requirement": change.requirement,
        "previous_requirement": change.previous_requirement,
        "dependency_type": change.dependency_type,
        "integrity": change.integrity,
    }


def _state_rows(state: DependencyState, ecosystem: str | None) -> list[dict[str, Any]]:
    rows = [
        {
            "manifest": path,
            "manifest_kind": entry.manifest_kind,
            "name": name,
            "ecosystem": entry.ecosystem,
            "requirement": entry.requirement,
            "dependency_type": entry.dependency_type,
            "integrity": entry.integrity,
        }
        for (path, name), entry in sorted(state.items())
    ]
    if ecosystem:
        rows = [row for row in rows if row["ecosystem"] == ecosystem]
    return rows


def _registry_version(row: dict[str, Any]) -> str | None:
    """Lockfile entries pin an exact version; manifest requirements are ranges."""
    return row["requirement"] if row["manifest_kind"] == "lockfile" else None


# ── group ─────────────────────────────────────────────────────────────────


@click.group()
@click.option(
    "--repo",
    "repo_path",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Path to the git repository",
)
@click.option("--database-url", default=None, help="SQLAlchemy async database URL")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, repo_path: str, database_url: str | None, verbose: bool) -> None:
    """pkgtrail: track how dependencies evolve across git history."""
    settings = Settings.from_env().with_overrides(
        database_url=database_url, log_level="DEBUG" if verbose else None
    )
    try:
        setup_logging(settings)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    ctx.obj = CliContext(repo=GitRepository(repo_path), settings=settings)


# ── analysis ──────────────────────────────────────────────────────────────


async def _walk(obj: CliContext, branch: str | None, *, force: bool) -> None:
    name = await _branch_name(obj, branch)
    async with _database(obj, create=True) as db:
        if force:
            await db.drop_all()
            await db.create_all()
        walker = deps.history_walker(obj.repo, obj.settings.checkpoint_interval)
        result = await walker.walk(db, name)

    if result.up_to_date:
        click.echo(f"Branch {name} is up to date")
        return
    click.echo(
        f"Analyzed {result.commits_walked} commits on {name}: "
        f"{result.commits_with_changes} with dependency changes, "
        f"{result.changes_recorded} changes recorded, "
        f"{result.merges_skipped} merges skipped, "
        f"{result.checkpoints_written} checkpoints written"
    )


@main.command("init")
@_BRANCH_OPTION
@click.option("--force", is_flag=True, help="Drop existing data and analyze from scratch")
@click.pass_obj
def init(obj: CliContext, branch: str | None, force: bool) -> None:
    """Create the database and analyze the full branch history."""
    _run(_walk(obj, branch, force=force))


@main.command("update")
@_BRANCH_OPTION
@click.pass_obj
def update(obj: CliContext, branch: str | None) -> None:
    """Analyze commits added since the last run."""
    _run(_walk(obj, branch, force=False))


# ── queries ───────────────────────────────────────────────────────────────


async def _diff(
    obj: CliContext,
    from_ref: str,
    to_ref: str,
    ecosystem: str | None,
    branch: str | None,
    fmt: str,
) -> None:
    async with _database(obj) as db, db.session() as session:
        result = await deps.history_service.diff(
            session, obj.repo, from_ref, to_ref, ecosystem=ecosystem, branch=branch
        )

    from_commit, to_commit, summary = result["from"], result["to"], result["summary"]
    if fmt == "json":
        _echo_json(
            {
                "from": _commit_json(from_commit),
                "to": _commit_json(to_commit),
                "changes": [_change_json(c) for c in result["changes"]],
                "summary": {k: list(v.values()) for k, v in summary.items()},
            }
        )
        return

    if not result["changes"]:
        click.echo(
            f"No dependency changes between {from_commit.short_sha} and {to_commit.short_sha}"
        )
        return

    click.echo(f"Dependency changes from {from_commit.short_sha} to {to_commit.short_sha}:")
    click.echo()
    if summary["added"]:
        click.echo("Added:")
        for entry in summary["added"].values():
            click.echo(f"  + {entry['name']} {entry['requirement']} ({entry['manifest']})")
        click.echo()
    if summary["modified"]:
        click.echo("Modified:")
        for entry in summary["modified"].values():
            click.echo(f"  ~ {entry['name']} {entry['from']} -> {entry['requirement']}")
        click.echo()
    if summary["removed"]:
        click.echo("Removed:")
        for entry in summary["removed"].values():
            click.echo(f"  - {entry['name']} (was {entry['requirement']})")
        click.echo()
    click.echo(
        f"Summary: +{len(summary['added'])} -{len(summary['removed'])} "
        f"~{len(summary['modified'])}"
    )


@main.command("diff")
@click.option("-f", "--from", "from_ref", required=True, help="Start commit (exclusive)")
@click.option("-t", "--to", "to_ref", default="HEAD", show_default=True, help="End commit")
@_ECOSYSTEM_OPTION
@click.option("-b", "--branch", default=None, help="Only consider commits on this branch")
@_FORMAT_OPTION
@click.pass_obj
def diff(
    obj: CliContext,
    from_ref: str,
    to_ref: str,
    ecosystem: str | None,
    branch: str | None,
    fmt: str,
) -> None:
    """Show dependency changes between two commits."""
    _run(_diff(obj, from_ref, to_ref, ecosystem, branch, fmt))


_ACTIONS = {"added": "Added", "modified": "Updated", "removed": "Removed"}


async def _history(obj: CliContext, package: str, ecosystem: str | None, fmt: str) -> None:
    async with _database(obj) as db, db.session() as session:
        changes = await deps.history_service.package_history(
            session, package, ecosystem=ecosystem
        )

    if fmt == "json":
        _echo_json([_change_json(c) for c in changes])
        return
    if not changes:
        click.echo(f"No history found for '{package}'")
        return

    click.echo(f"History for {package}:")
    click.echo()
    for change in changes:
        commit = change.commit
        if change.change_type == "modified":
            version = f"{change.previous_requirement} -> {change.requirement}"
        else:
            version = change.requirement or ""
        date = commit.committed_at.strftime("%Y-%m-%d")
        click.echo(f"{date} {_ACTIONS[change.change_type]} {version}".rstrip())
        click.echo(f"  Commit: {commit.short_sha} {commit.subject}")
        click.echo(f"  Author: {commit.author_name} <{commit.author_email}>")
        click.echo(f"  Manifest: {change.manifest.path}")
        click.echo()


@main.command("history")
@click.argument("package")
@_ECOSYSTEM_OPTION
@_FORMAT_OPTION
@click.pass_obj
def history(obj: CliContext, package: str, ecosystem: str | None, fmt: str) -> None:
    """Show every recorded change to PACKAGE."""
    _run(_history(obj, package, ecosystem, fmt))


async def _why(obj: CliContext, package: str, ecosystem: str | None, fmt: str) -> None:
    async with _database(obj) as db, db.session() as session:
        change = await deps.history_service.why(session, package, ecosystem=ecosystem)

    if fmt == "json":
        _echo_json(_change_json(change) | {"message": change.commit.message})
        return

    commit = change.commit
    click.echo(f"{package} was added in commit {commit.short_sha}")
    click.echo()
    click.echo(f"Date:     {commit.committed_at.strftime('%Y-%m-%d %H:%M')}")
    click.echo(f"Author:   {commit.author_name} <{commit.author_email}>")
    click.echo(f"Manifest: {change.manifest.path}")
    click.echo(f"Version:  {change.requirement}")
    click.echo()
    click.echo("Commit message:")
    for line in (commit.message or "").rstrip("\n").splitlines():
        click.echo(f"  {line}")


@main.command("why")
@click.argument("package")
@_ECOSYSTEM_OPTION
@_FORMAT_OPTION
@click.pass_obj
def why(obj: CliContext, package: str, ecosystem: str | None, fmt: str) -> None:
    """Explain when and why PACKAGE was added."""
    _run(_why(obj, package, ecosystem, fmt))


async def _show(
    obj: CliContext,
    ref: str | None,
    branch: str | None,
    ecosystem: str | None,
    enrich: bool,
    fmt: str,
) -> None:
    name = await _branch_name(obj, branch)
    async with _database(obj) as db, db.session() as session:
        if ref is None:
            commit, state = await deps.history_service.current_state(session, name)
        else:
            commit, state = await deps.history_service.state_at(session, obj.repo, name, ref)
        rows = _state_rows(state, ecosystem)

        if enrich and rows:
            settings = obj.settings
            async with EcosystemsClient(settings.registry_url, settings.registry_timeout) as client:
                metadata = await deps.enrichment_service(settings.registry_stale_seconds).enrich(
                    session,
                    client,
                    [
                        {
                            "ecosystem": row["ecosystem"],
                            "name": row["name"],
                            "version": _registry_version(row),
                        }
                        for row in rows
                    ],
                )
            for row in rows:
                purl = build_purl(row["ecosystem"], row["name"], _registry_version(row))
                info = metadata.get(purl, {})
                row["license"] = info.get("license")
                row["latest_version"] = info.get("latest_version")

    if fmt == "json":
        _echo_json({"branch": name, "commit": _commit_json(commit), "dependencies": rows})
        return
    if not rows:
        click.echo(f"No dependencies at {commit.short_sha}")
        return

    click.echo(f"Dependencies at {commit.short_sha} ({name}):")
    current = None
    for row in rows:
        if row["manifest"] != current:
            current = row["manifest"]
            click.echo()
            click.echo(f"{current} ({row['ecosystem']}):")
        line = f"  {row['name']} {row['requirement'] or ''}".rstrip()
        if row["dependency_type"]:
            line += f" [{row['dependency_type']}]"
        if row.get("license"):
            line += f" {row['license']}"
        click.echo(line)


@main.command("show")
@click.argument("ref", required=False)
@_BRANCH_OPTION
@_ECOSYSTEM_OPTION
@click.option("--enrich", is_flag=True, help="Add license and latest version from the registry")
@_FORMAT_OPTION
@click.pass_obj
def show(
    obj: CliContext,
    ref: str | None,
    branch: str | None,
    ecosystem: str | None,
    enrich: bool,
    fmt: str,
) -> None:
    """List dependencies at REF (default: last analyzed commit)."""
    _run(_show(obj, ref, branch, ecosystem, enrich, fmt))


async def _stats(obj: CliContext, branch: str | None, fmt: str) -> None:
    name = await _branch_name(obj, branch)
    async with _database(obj) as db, db.session() as session:
        data = await deps.stats_service.collect(session, name)

    if fmt == "json":
        _echo_json(data)
        return

    click.echo("Dependency Statistics")
    click.echo("=" * 40)
    click.echo()
    click.echo(f"Branch: {data['branch']}")
    click.echo(f"Commits analyzed: {data['commits_analyzed']}")
    click.echo(f"Commits with changes: {data['commits_with_changes']}")

    current = data["current_dependencies"]
    if current:
        click.echo()
        click.echo("Current Dependencies")
        click.echo("-" * 20)
        click.echo(f"Total: {current['total']}")
        for ecosystem, count in current["by_ecosystem"].items():
            click.echo(f"  {ecosystem}: {count}")
        click.echo()
        click.echo("By type:")
        for dep_type, count in current["by_type"].items():
            click.echo(f"  {dep_type or 'unknown'}: {count}")

    click.echo()
    click.echo("Dependency Changes")
    click.echo("-" * 20)
    click.echo(f"Total changes: {data['changes']['total']}")
    for change_type, count in data["changes"]["by_type"].items():
        click.echo(f"  {change_type}: {count}")

    click.echo()
    click.echo("Most Changed Dependencies")
    click.echo("-" * 25)
    for dep in data["most_changed"]:
        click.echo(f"  {dep['name']} ({dep['ecosystem']}): {dep['changes']} changes")

    click.echo()
    click.echo("Manifest Files")
    click.echo("-" * 14)
    for manifest in data["manifests"]:
        click.echo(f"  {manifest['path']} ({manifest['ecosystem']}): {manifest['changes']} changes")


@main.command("stats")
@_BRANCH_OPTION
@_FORMAT_OPTION
@click.pass_obj
def stats(obj: CliContext, branch: str | None, fmt: str) -> None:
    """Show dependency statistics for the repository."""
    _run(_stats(obj, branch, fmt))


async def _integrity(
    obj: CliContext,
    ref: str,
    branch: str | None,
    ecosystem: str | None,
    drift: bool,
    registry: bool,
    fmt: str,
) -> None:
    if drift:
        await _drift(obj, registry, fmt)
        return

    name = await _branch_name(obj, branch)
    async with _database(obj) as db, db.session() as session:
        rows = await deps.integrity_service.integrity_at(
            session, obj.repo, name, ref, ecosystem=ecosystem
        )

    if fmt == "json":
        _echo_json(rows)
        return
    if not rows:
        click.echo("No dependencies with integrity hashes found")
        return

    current = None
    for row in rows:
        if row["ecosystem"] != current:
            if current is not None:
                click.echo()
            current = row["ecosystem"]
            click.echo(f"{current}:")
        click.echo(f"  {row['name']} {row['version']}")
        click.echo(f"    {row['integrity']}")


async def _drift(obj: CliContext, registry: bool, fmt: str) -> None:
    settings = obj.settings
    async with _database(obj) as db, db.session() as session:
        if registry:
            async with EcosystemsClient(settings.registry_url, settings.registry_timeout) as client:
                result = await deps.integrity_service.detect_drift(session, client)
        else:
            result = await deps.integrity_service.detect_drift(session)

    internal, mismatches = result["internal_drift"], result["registry_mismatch"]
    if fmt == "json":
        _echo_json(result)
        return
    if not internal and not mismatches:
        click.echo("No integrity drift detected")
        return

    if internal:
        click.echo("Internal drift (same version, different lockfile hashes):")
        click.echo()
        for item in internal:
            click.echo(f"  {item['purl']}")
            for value in item["integrity_values"]:
                click.echo(f"    {value}")
            click.echo()
    if mismatches:
        click.echo("Registry mismatch (lockfile differs from registry):")
        click.echo()
        for item in mismatches:
            click.echo(f"  {item['purl']}")
            click.echo(f"    lockfile: {item['lockfile']}")
            click.echo(f"    registry: {item['registry']}")
            click.echo()
    click.echo(f"{len(internal) + len(mismatches)} integrity issue(s) found")


@main.command("integrity")
@click.option("-r", "--ref", default="HEAD", show_default=True, help="Git ref to check")
@_BRANCH_OPTION
@_ECOSYSTEM_OPTION
@click.option("--drift", is_flag=True, help="Detect hashes that changed for the same version")
@click.option(
    "--registry/--no-registry",
    default=True,
    show_default=True,
    help="With --drift, also compare against registry hashes",
)
@_FORMAT_OPTION
@click.pass_obj
def integrity(
    obj: CliContext,
    ref: str,
    branch: str | None,
    ecosystem: str | None,
    drift: bool,
    registry: bool,
    fmt: str,
) -> None:
    """Show lockfile integrity hashes, or detect integrity drift."""
    _run(_integrity(obj, ref, branch, ecosystem, drift, registry, fmt))


if __name__ == "__main__":
    main()
