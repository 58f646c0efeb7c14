"""DependencyChangeDAO — dependency_changes table operations."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Select, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, joinedload

from pkgtrail.dao.base import BaseDAO, HistoryPoint, after_point, upto_point
from pkgtrail.models.branch_commit import BranchCommit
from pkgtrail.models.commit import Commit
from pkgtrail.models.dependency_change import DependencyChange
from pkgtrail.models.manifest import Manifest


class DependencyChangeDAO(BaseDAO[DependencyChange]):
    model = DependencyChange

    @staticmethod
    def _base_query(branch_id: int | None = None) -> Select:
        stmt = (
            select(DependencyChange)
            .join(Commit, Commit.id == DependencyChange.commit_id)
            .options(
                contains_eager(DependencyChange.commit),
                joinedload(DependencyChange.manifest),
            )
        )
        if branch_id is not None:
            stmt = stmt.join(
                BranchCommit,
                and_(
                    BranchCommit.commit_id == DependencyChange.commit_id,
                    BranchCommit.branch_id == branch_id,
                ),
            )
        return stmt

    @staticmethod
    async def _all(session: AsyncSession, stmt: Select) -> list[DependencyChange]:
        result = await session.execute(stmt)
        return list(result.unique().scalars().all())

    # ── read ──────────────────────────────────────────────────────────────

    async def list_in_range(
        self,
        session: AsyncSession,
        *,
        upto: HistoryPoint,
        after: HistoryPoint | None = None,
        branch_id: int | None = None,
        ecosystem: str | None = None,
    ) -> list[DependencyChange]:
        """Changes in ``(after, upto]`` in replay order.

        With *branch_id* only that branch's commits are considered and the
        walk position breaks timestamp ties; without it points compare by
        committed time alone.
        """
        stmt = self._base_query(branch_id)
        if branch_id is None:
            after = HistoryPoint(after.committed_at) if after else None
            upto = HistoryPoint(upto.committed_at)
            stmt = stmt.order_by(Commit.committed_at, Commit.id, DependencyChange.id)
            pos_col = None
        else:
            pos_col = BranchCommit.position
            stmt = stmt.order_by(Commit.committed_at, BranchCommit.position, DependencyChange.id)

        stmt = stmt.where(upto_point(upto, Commit.committed_at, pos_col))
        if after is not None:
            stmt = stmt.where(after_point(after, Commit.committed_at, pos_col))
        if ecosystem:
            stmt = stmt.where(DependencyChange.ecosystem == ecosystem)
        return await self._all(session, stmt)

    async def list_by_position(
        self,
        session: AsyncSession,
        branch_id: int,
        *,
        upto: int,
        after: int | None = None,
    ) -> list[DependencyChange]:
        """A branch's changes with walk position in ``(after, upto]``, in walk order."""
        stmt = (
            self._base_query(branch_id)
            .where(BranchCommit.position <= upto)
            .order_by(BranchCommit.position, DependencyChange.id)
        )
        if after is not None:
            stmt = stmt.where(BranchCommit.position > after)
        return await self._all(session, stmt)

    async def list_for_package(
        self,
        session: AsyncSession,
        name: str,
        *,
        ecosystem: str | None = None,
    ) -> list[DependencyChange]:
        """Every change ever recorded for a package, oldest first."""
        stmt = (
            self._base_query()
            .where(DependencyChange.name == name)
            .order_by(Commit.committed_at, Commit.id, DependencyChange.id)
        )
        if ecosystem:
            stmt = stmt.where(DependencyChange.ecosystem == ecosystem)
        return await self._all(session, stmt)

    async def first_added(
        self,
        session: AsyncSession,
        name: str,
        *,
        ecosystem: str | None = None,
    ) -> DependencyChange | None:
        stmt = (
            self._base_query()
            .where(DependencyChange.name == name, DependencyChange.change_type == "added")
            .order_by(Commit.committed_at, Commit.id, DependencyChange.id)
            .limit(1)
        )
        if ecosystem:
            stmt = stmt.where(DependencyChange.ecosystem == ecosystem)
        changes = await self._all(session, stmt)
        return changes[0] if changes else None

    async def count_by_type(self, session: AsyncSession) -> dict[str, int]:
        stmt = select(DependencyChange.change_type, func.count()).group_by(
            DependencyChange.change_type
        )
        result = await session.execute(stmt)
        return {row[0]: row[1] for row in result}

    async def most_changed(self, session: AsyncSession, limit: int = 10) -> list[dict[str, Any]]:
        """Packages with the most recorded changes, busiest first."""
        cnt = func.count().label("changes")
        stmt = (
            select(DependencyChange.name, DependencyChange.ecosystem, cnt)
            .group_by(DependencyChange.name, DependencyChange.ecosystem)
            .order_by(cnt.desc(), DependencyChange.name)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [
            {"name": row.name, "ecosystem": row.ecosystem, "changes": row.changes}
            for row in result
        ]

    async def distinct_integrities(self, session: AsyncSession) -> list[dict[str, Any]]:
        """Every distinct (ecosystem, name, version, integrity) recorded for a lockfile.

        Each hash a lockfile ever carried enters history as an added or
        modified change, so this sees every commit, not only checkpoints.
        """
        stmt = (
            select(
                DependencyChange.ecosystem,
                DependencyChange.name,
                DependencyChange.requirement,
                DependencyChange.integrity,
            )
            .join(Manifest, Manifest.id == DependencyChange.manifest_id)
            .where(Manifest.kind == "lockfile", DependencyChange.integrity.is_not(None))
            .distinct()
            .order_by(
                DependencyChange.ecosystem,
                DependencyChange.name,
                DependencyChange.requirement,
                DependencyChange.integrity,
            )
        )
        result = await session.execute(stmt)
        return [
            {
                "ecosystem": row.ecosystem,
                "name": row.name,
                "version": row.requirement,
                "integrity": row.integrity,
            }
            for row in result
        ]

    # ── write ─────────────────────────────────────────────────────────────

    async def bulk_insert(self, session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        """Append change rows; a row already recorded for its commit is kept as is."""
        if not rows:
            return 0
        return await self.insert_ignore(
            session, rows, index_elements=["commit_id", "manifest_id", "name"]
        )
