"""CheckpointService — persistence of deltas and full-state checkpoints.

Every write method takes the caller's session and never commits: the
history walker wraps one commit's worth of writes in a single transaction.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.core.git import CommitRef
from pkgtrail.dao.base import HistoryPoint
from pkgtrail.dao.branch_dao import BranchDAO
from pkgtrail.dao.checkpoint_dao import CheckpointDAO
from pkgtrail.dao.commit_dao import CommitDAO
from pkgtrail.dao.dependency_change_dao import DependencyChangeDAO
from pkgtrail.dao.dependency_snapshot_dao import DependencySnapshotDAO
from pkgtrail.dao.manifest_dao import ManifestDAO
from pkgtrail.engines.dependency_analyzer.models import (
    Change,
    DependencyEntry,
    DependencyState,
)
from pkgtrail.engines.dependency_analyzer.state import apply_changes
from pkgtrail.models.branch import Branch
from pkgtrail.models.commit import Commit
from pkgtrail.models.dependency_change import DependencyChange
from pkgtrail.models.dependency_snapshot import DependencySnapshot
from pkgtrail.services import NotFoundError


def change_from_row(row: DependencyChange) -> Change:
    """Rebuild an in-memory change from a stored row (manifest must be loaded)."""
    return Change(
        manifest_path=row.manifest.path,
        name=row.name,
        change_type=row.change_type,
        ecosystem=row.ecosystem,
        manifest_kind=row.manifest.kind,
        requirement=row.requirement,
        previous_requirement=row.previous_requirement,
        dependency_type=row.dependency_type,
        integrity=row.integrity,
    )


def state_from_snapshot(rows: list[DependencySnapshot]) -> DependencyState:
    return {
        (row.manifest.path, row.name): DependencyEntry(
            ecosystem=row.ecosystem,
            requirement=row.requirement,
            dependency_type=row.dependency_type,
            integrity=row.integrity,
            manifest_kind=row.manifest.kind,
        )
        for row in rows
    }


class CheckpointService:
    """Stateless store for commits, branch membership, deltas and snapshots."""

    def __init__(
        self,
        commit_dao: CommitDAO,
        branch_dao: BranchDAO,
        manifest_dao: ManifestDAO,
        change_dao: DependencyChangeDAO,
        snapshot_dao: DependencySnapshotDAO,
        checkpoint_dao: CheckpointDAO,
    ) -> None:
        self._commit_dao = commit_dao
        self._branch_dao = branch_dao
        self._manifest_dao = manifest_dao
        self._change_dao = change_dao
        self._snapshot_dao = snapshot_dao
        self._checkpoint_dao = checkpoint_dao

    # ── branches ──────────────────────────────────────────────────────────

    async def get_or_create_branch(self, session: AsyncSession, name: str) -> Branch:
        return await self._branch_dao.find_or_create(session, name)

    async def get_branch(self, session: AsyncSession, name: str) -> Branch:
        """Return a tracked branch.

        Raises :class:`NotFoundError` if the branch was never analyzed.
        """
        branch = await self._branch_dao.get_by_name(session, name)
        if branch is None:
            raise NotFoundError(f"branch {name!r} has not been analyzed")
        return branch

    async def last_analyzed_commit(self, session: AsyncSession, branch: Branch) -> Commit | None:
        return await self._branch_dao.get_last_analyzed_commit(session, branch)

    async def position_of(
        self, session: AsyncSession, branch_id: int, commit_id: int
    ) -> int | None:
        return await self._branch_dao.position_of(session, branch_id, commit_id)

    async def max_position(self, session: AsyncSession, branch_id: int) -> int:
        return await self._branch_dao.max_position(session, branch_id)

    # ── writes ────────────────────────────────────────────────────────────

    async def record_commit(
        self,
        session: AsyncSession,
        branch_id: int,
        ref: CommitRef,
        position: int,
        changes: list[Change] | None = None,
    ) -> Commit:
        """Persist one walked commit with its deltas and advance the branch.

        ``changes=None`` records the commit as seen without dependency
        changes. The branch's last analyzed commit moves to *ref* in the same
        transaction as the rows, so an interrupted walk resumes exactly
        after the last fully persisted commit.
        """
        commit = await self._commit_dao.upsert_from_ref(session, ref)
        await self._branch_dao.add_commit(session, branch_id, commit.id, position)

        if changes:
            manifest_ids = await self._manifest_ids(session, changes)
            rows = [
                {
                    "commit_id": commit.id,
                    "manifest_id": manifest_ids[change.manifest_path],
                    "name": change.name,
                    "ecosystem": change.ecosystem,
                    "dependency_type": change.dependency_type,
                    "change_type": change.change_type,
                    "requirement": change.requirement,
                    "previous_requirement": change.previous_requirement,
                    "integrity": change.integrity,
                }
                for change in changes
            ]
            await self._change_dao.bulk_insert(session, rows)
            await self._commit_dao.mark_has_changes(session, commit.id)

        await self._branch_dao.set_last_analyzed(session, branch_id, commit.id)
        return commit

    async def write_checkpoint(
        self,
        session: AsyncSession,
        branch_id: int,
        commit_id: int,
        state: DependencyState,
    ) -> bool:
        """Materialize *state* as the full snapshot of a commit.

        Returns False when the commit already was a checkpoint of the
        branch. Snapshot rows are shared between branches: a commit's state
        does not depend on which branch walked it.
        """
        if await self._checkpoint_dao.exists(session, branch_id, commit_id):
            return False

        if state:
            by_path = {path: entry for (path, _), entry in state.items()}
            manifest_ids: dict[str, int] = {}
            for path, entry in sorted(by_path.items()):
                manifest = await self._manifest_dao.find_or_create(
                    session, path=path, ecosystem=entry.ecosystem, kind=entry.manifest_kind
                )
                manifest_ids[path] = manifest.id
            rows = [
                {
                    "commit_id": commit_id,
                    "manifest_id": manifest_ids[path],
                    "name": name,
                    "ecosystem": entry.ecosystem,
                    "dependency_type": entry.dependency_type,
                    "requirement": entry.requirement,
                    "integrity": entry.integrity,
                }
                for (path, name), entry in sorted(state.items())
            ]
            await self._snapshot_dao.bulk_insert(session, rows)

        return await self._checkpoint_dao.add(session, branch_id, commit_id, len(state))

    async def _manifest_ids(self, session: AsyncSession, changes: list[Change]) -> dict[str, int]:
        ids: dict[str, int] = {}
        for change in changes:
            if change.manifest_path in ids:
                continue
            manifest = await self._manifest_dao.find_or_create(
                session,
                path=change.manifest_path,
                ecosystem=change.ecosystem,
                kind=change.manifest_kind,
            )
            ids[change.manifest_path] = manifest.id
        return ids

    # ── reads ─────────────────────────────────────────────────────────────

    async def is_checkpoint(self, session: AsyncSession, branch_id: int, commit_id: int) -> bool:
        return await self._checkpoint_dao.exists(session, branch_id, commit_id)

    async def snapshot_state(self, session: AsyncSession, commit_id: int) -> DependencyState:
        rows = await self._snapshot_dao.list_at_commit(session, commit_id)
        return state_from_snapshot(rows)

    async def nearest_checkpoint(
        self, session: AsyncSession, branch_id: int, point: HistoryPoint
    ) -> tuple[Commit, int] | None:
        return await self._checkpoint_dao.nearest(session, branch_id, point)

    async def changes_between(
        self,
        session: AsyncSession,
        branch_id: int,
        *,
        upto: HistoryPoint,
        after: HistoryPoint | None = None,
    ) -> list[Change]:
        rows = await self._change_dao.list_in_range(
            session, upto=upto, after=after, branch_id=branch_id
        )
        return [change_from_row(row) for row in rows]

    async def state_at_position(
        self, session: AsyncSession, branch_id: int, position: int
    ) -> DependencyState:
        """State after the branch's walk reached *position*.

        Replays in walk order from the nearest earlier checkpoint; used to
        restore the running state when a walk resumes.
        """
        base = await self._checkpoint_dao.nearest_by_position(session, branch_id, position)
        if base is None:
            state: DependencyState = {}
            after = None
        else:
            commit, after = base
            state = await self.snapshot_state(session, commit.id)
            if after == position:
                return state
        rows = await self._change_dao.list_by_position(
            session, branch_id, upto=position, after=after
        )
        return apply_changes(state, (change_from_row(row) for row in rows))
