"""ManifestDAO — manifests table operations."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.dao.base import BaseDAO
from pkgtrail.models.dependency_change import DependencyChange
from pkgtrail.models.manifest import Manifest


class ManifestDAO(BaseDAO[Manifest]):
    model = Manifest

    async def find_or_create(
        self, session: AsyncSession, *, path: str, ecosystem: str, kind: str
    ) -> Manifest:
        """Return the manifest for *path*; ecosystem/kind are set on first sight only."""
        await self.insert_ignore(
            session,
            [{"path": path, "ecosystem": ecosystem, "kind": kind}],
            index_elements=["path"],
        )
        manifest = await self.get_by_field(session, path=path)
        if manifest is None:  # pragma: no cover - insert above guarantees a row
            raise RuntimeError(f"manifest {path!r} vanished after upsert")
        return manifest

    async def list_with_change_counts(self, session: AsyncSession) -> list[tuple[Manifest, int]]:
        """Every manifest with its number of recorded changes, by path."""
        stmt = (
            select(Manifest, func.count(DependencyChange.id))
            .outerjoin(DependencyChange, DependencyChange.manifest_id == Manifest.id)
            .group_by(Manifest.id)
            .order_by(Manifest.path)
        )
        result = await session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]
