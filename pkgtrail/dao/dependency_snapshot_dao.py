"""DependencySnapshotDAO — dependency_snapshots table operations."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager

from pkgtrail.dao.base import BaseDAO
from pkgtrail.models.dependency_snapshot import DependencySnapshot
from pkgtrail.models.manifest import Manifest


class DependencySnapshotDAO(BaseDAO[DependencySnapshot]):
    model = DependencySnapshot

    # ── read ──────────────────────────────────────────────────────────────

    async def list_at_commit(
        self,
        session: AsyncSession,
        commit_id: int,
        *,
        ecosystem: str | None = None,
    ) -> list[DependencySnapshot]:
        """Full snapshot of one checkpoint commit, by manifest path then name."""
        stmt = (
            select(DependencySnapshot)
            .join(Manifest, Manifest.id == DependencySnapshot.manifest_id)
            .options(contains_eager(DependencySnapshot.manifest))
            .where(DependencySnapshot.commit_id == commit_id)
            .order_by(Manifest.path, DependencySnapshot.name)
        )
        if ecosystem:
            stmt = stmt.where(DependencySnapshot.ecosystem == ecosystem)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ── write ─────────────────────────────────────────────────────────────

    async def bulk_insert(self, session: AsyncSession, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        return await self.insert_ignore(
            session, rows, index_elements=["commit_id", "manifest_id", "name"]
        )
