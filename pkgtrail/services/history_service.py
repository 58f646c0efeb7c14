"""HistoryService — read-side queries over recorded dependency history."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.core.git import GitRepository
from pkgtrail.dao.base import HistoryPoint
from pkgtrail.dao.commit_dao import CommitDAO
from pkgtrail.dao.dependency_change_dao import DependencyChangeDAO
from pkgtrail.engines.dependency_analyzer.models import (
    CHANGE_ADDED,
    CHANGE_MODIFIED,
    CHANGE_REMOVED,
    DependencyState,
)
from pkgtrail.engines.dependency_analyzer.reconstruction import state_at
from pkgtrail.models.commit import Commit
from pkgtrail.models.dependency_change import DependencyChange
from pkgtrail.services import NotFoundError
from pkgtrail.services.checkpoint_service import CheckpointService


def summarize(changes: list[DependencyChange]) -> dict[str, dict[str, dict[str, Any]]]:
    """Collapse a run of changes into one entry per package and change type.

    ``modified`` spans from the first change's previous requirement to the
    last change's requirement; ``added``/``removed`` keep the last change.
    """
    summary: dict[str, dict[str, dict[str, Any]]] = {
        CHANGE_ADDED: {},
        CHANGE_MODIFIED: {},
        CHANGE_REMOVED: {},
    }
    for change in changes:
        bucket = summary[change.change_type]
        entry = bucket.get(change.name)
        if entry is None:
            entry = bucket[change.name] = {
                "name": change.name,
                "ecosystem": change.ecosystem,
                "manifest": change.manifest.path,
                "from": change.previous_requirement,
            }
        entry["requirement"] = change.requirement
    return summary


class HistoryService:
    """Stateless service for diff, history, why and point-in-time queries."""

    def __init__(
        self,
        commit_dao: CommitDAO,
        change_dao: DependencyChangeDAO,
        store: CheckpointService,
    ) -> None:
        self._commit_dao = commit_dao
        self._change_dao = change_dao
        self._store = store

    async def resolve_commit(
        self, session: AsyncSession, repo: GitRepository, ref: str
    ) -> Commit:
        """Return the stored commit for *ref*, recording it first if only git knows it.

        Raises :class:`NotFoundError` if *ref* cannot be resolved.
        """
        commit = await self._commit_dao.find_or_create_from_repo(session, repo, ref)
        if commit is None:
            raise NotFoundError(f"commit {ref!r} not found")
        return commit

    async def _point(
        self, session: AsyncSession, commit: Commit, branch_id: int | None
    ) -> HistoryPoint:
        position = None
        if branch_id is not None:
            position = await self._store.position_of(session, branch_id, commit.id)
        return HistoryPoint(commit.committed_at, position)

    async def diff(
        self,
        session: AsyncSession,
        repo: GitRepository,
        from_ref: str,
        to_ref: str = "HEAD",
        *,
        ecosystem: str | None = None,
        branch: str | None = None,
    ) -> dict[str, Any]:
        """Changes recorded after *from_ref* up to and including *to_ref*.

        With *branch* only that branch's commits are considered.
        """
        from_commit = await self.resolve_commit(session, repo, from_ref)
        to_commit = await self.resolve_commit(session, repo, to_ref)

        branch_id = (await self._store.get_branch(session, branch)).id if branch else None
        changes = await self._change_dao.list_in_range(
            session,
            after=await self._point(session, from_commit, branch_id),
            upto=await self._point(session, to_commit, branch_id),
            branch_id=branch_id,
            ecosystem=ecosystem,
        )
        return {
            "from": from_commit,
            "to": to_commit,
            "changes": changes,
            "summary": summarize(changes),
        }

    async def package_history(
        self,
        session: AsyncSession,
        name: str,
        *,
        ecosystem: str | None = None,
    ) -> list[DependencyChange]:
        """Every recorded change to *name*, oldest first (empty if never seen)."""
        return await self._change_dao.list_for_package(session, name, ecosystem=ecosystem)

    async def why(
        self,
        session: AsyncSession,
        name: str,
        *,
        ecosystem: str | None = None,
    ) -> DependencyChange:
        """The change that first added *name*.

        Raises :class:`NotFoundError` if the package never appears.
        """
        change = await self._change_dao.first_added(session, name, ecosystem=ecosystem)
        if change is None:
            raise NotFoundError(f"package {name!r} not found in dependency history")
        return change

    async def state_at(
        self,
        session: AsyncSession,
        repo: GitRepository,
        branch: str,
        ref: str,
    ) -> tuple[Commit, DependencyState]:
        """Dependency state of *branch* as of *ref*."""
        tracked = await self._store.get_branch(session, branch)
        commit = await self.resolve_commit(session, repo, ref)
        return commit, await state_at(session, self._store, tracked, commit)

    async def current_state(
        self, session: AsyncSession, branch: str
    ) -> tuple[Commit, DependencyState]:
        """Dependency state at the branch's last analyzed commit.

        Raises :class:`NotFoundError` if the branch was never analyzed.
        """
        tracked = await self._store.get_branch(session, branch)
        commit = await self._store.last_analyzed_commit(session, tracked)
        if commit is None:
            raise NotFoundError(f"branch {branch!r} has no analyzed commits")
        return commit, await state_at(session, self._store, tracked, commit)
