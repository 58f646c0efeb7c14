"""BranchDAO — branches and branch_commits table operations."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.dao.base import BaseDAO
from pkgtrail.models.branch import Branch
from pkgtrail.models.branch_commit import BranchCommit
from pkgtrail.models.commit import Commit


class BranchDAO(BaseDAO[Branch]):
    model = Branch

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_name(self, session: AsyncSession, name: str) -> Branch | None:
        return await self.get_by_field(session, name=name)

    async def get_last_analyzed_commit(
        self, session: AsyncSession, branch: Branch
    ) -> Commit | None:
        if branch.last_analyzed_commit_id is None:
            return None
        return await session.get(Commit, branch.last_analyzed_commit_id)

    async def max_position(self, session: AsyncSession, branch_id: int) -> int:
        """Highest walk position recorded for the branch (0 if none)."""
        stmt = select(func.max(BranchCommit.position)).where(BranchCommit.branch_id == branch_id)
        result = await session.execute(stmt)
        return result.scalar_one() or 0

    async def position_of(
        self, session: AsyncSession, branch_id: int, commit_id: int
    ) -> int | None:
        """Walk position of a commit on a branch, or None if not a member."""
        stmt = select(BranchCommit.position).where(
            BranchCommit.branch_id == branch_id,
            BranchCommit.commit_id == commit_id,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_commits(
        self,
        session: AsyncSession,
        branch_id: int,
        *,
        with_changes: bool | None = None,
    ) -> int:
        stmt = (
            select(func.count())
            .select_from(BranchCommit)
            .join(Commit, Commit.id == BranchCommit.commit_id)
            .where(BranchCommit.branch_id == branch_id)
        )
        if with_changes is not None:
            stmt = stmt.where(Commit.has_dependency_changes.is_(with_changes))
        result = await session.execute(stmt)
        return result.scalar_one()

    async def list_commits(self, session: AsyncSession, branch_id: int) -> list[Commit]:
        """Branch members in walk order."""
        stmt = (
            select(Commit)
            .join(BranchCommit, BranchCommit.commit_id == Commit.id)
            .where(BranchCommit.branch_id == branch_id)
            .order_by(BranchCommit.position)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ── write ─────────────────────────────────────────────────────────────

    async def find_or_create(self, session: AsyncSession, name: str) -> Branch:
        await self.insert_ignore(session, [{"name": name}], index_elements=["name"])
        branch = await self.get_by_name(session, name)
        if branch is None:  # pragma: no cover - insert above guarantees a row
            raise RuntimeError(f"branch {name!r} vanished after upsert")
        return branch

    async def add_commit(
        self, session: AsyncSession, branch_id: int, commit_id: int, position: int
    ) -> None:
        """Record branch membership; a commit already on the branch keeps its position."""
        await self.insert_ignore(
            session,
            [{"branch_id": branch_id, "commit_id": commit_id, "position": position}],
            index_elements=["branch_id", "commit_id"],
            table=BranchCommit.__table__,
        )

    async def set_last_analyzed(
        self, session: AsyncSession, branch_id: int, commit_id: int
    ) -> None:
        self._require_pk(branch_id)
        stmt = (
            update(Branch)
            .where(Branch.id == branch_id)
            .values(last_analyzed_commit_id=commit_id)
            .execution_options(synchronize_session="fetch")
        )
        await session.execute(stmt)
