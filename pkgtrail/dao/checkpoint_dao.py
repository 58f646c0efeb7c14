"""CheckpointDAO — branch_checkpoints table operations."""

from __future__ import annotations

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.dao.base import BaseDAO, HistoryPoint, upto_point
from pkgtrail.models.branch_checkpoint import BranchCheckpoint
from pkgtrail.models.branch_commit import BranchCommit
from pkgtrail.models.commit import Commit


class CheckpointDAO(BaseDAO[BranchCheckpoint]):
    model = BranchCheckpoint

    def _with_position(self, branch_id: int):
        """Checkpoint commits of a branch alongside their walk position."""
        return (
            select(Commit, BranchCommit.position)
            .select_from(BranchCheckpoint)
            .join(Commit, Commit.id == BranchCheckpoint.commit_id)
            .join(
                BranchCommit,
                and_(
                    BranchCommit.commit_id == BranchCheckpoint.commit_id,
                    BranchCommit.branch_id == BranchCheckpoint.branch_id,
                ),
            )
            .where(BranchCheckpoint.branch_id == branch_id)
        )

    # ── read ──────────────────────────────────────────────────────────────

    async def exists(self, session: AsyncSession, branch_id: int, commit_id: int) -> bool:
        stmt = select(BranchCheckpoint.id).where(
            BranchCheckpoint.branch_id == branch_id,
            BranchCheckpoint.commit_id == commit_id,
        )
        result = await session.execute(stmt)
        return result.first() is not None

    async def nearest(
        self, session: AsyncSession, branch_id: int, point: HistoryPoint
    ) -> tuple[Commit, int] | None:
        """Latest checkpoint at or before *point*, by committed time then position."""
        stmt = (
            self._with_position(branch_id)
            .where(upto_point(point, Commit.committed_at, BranchCommit.position))
            .order_by(Commit.committed_at.desc(), BranchCommit.position.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        row = result.first()
        return (row[0], row[1]) if row else None

    async def nearest_by_position(
        self, session: AsyncSession, branch_id: int, position: int
    ) -> tuple[Commit, int] | None:
        """Latest checkpoint at or before *position* in walk order."""
        stmt = (
            self._with_position(branch_id)
            .where(BranchCommit.position <= position)
            .order_by(BranchCommit.position.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        row = result.first()
        return (row[0], row[1]) if row else None

    async def count_for_branch(self, session: AsyncSession, branch_id: int) -> int:
        stmt = select(func.count()).where(BranchCheckpoint.branch_id == branch_id)
        result = await session.execute(stmt)
        return result.scalar_one()

    # ── write ─────────────────────────────────────────────────────────────

    async def add(
        self,
        session: AsyncSession,
        branch_id: int,
        commit_id: int,
        dependency_count: int,
    ) -> bool:
        """Mark a commit as a checkpoint. Returns False if it already was one."""
        inserted = await self.insert_ignore(
            session,
            [
                {
                    "branch_id": branch_id,
                    "commit_id": commit_id,
                    "dependency_count": dependency_count,
                }
            ],
            index_elements=["branch_id", "commit_id"],
        )
        return inserted > 0
