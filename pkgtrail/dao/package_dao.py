"""PackageDAO / PackageVersionDAO — cached registry metadata."""

from __future__ import annotations

from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.dao.base import BaseDAO
from pkgtrail.engines.registry_client.purl import base_purl
from pkgtrail.models.package import Package, PackageVersion


class _PurlKeyedDAO:
    """Shared lookups for tables keyed by a package URL."""

    async def get_by_purl(self, session: AsyncSession, purl: str):
        return await self.get_by_field(session, purl=purl)

    async def find_or_create(self, session: AsyncSession, purl: str, **initial: Any):
        """Return the row for *purl*; *initial* values are only used on creation."""
        await self.insert_ignore(
            session, [{"purl": purl, **self._defaults(purl), **initial}], ["purl"]
        )
        return await self.get_by_purl(session, purl)

    async def update_fields(self, session: AsyncSession, purl: str, **values: Any):
        """Overwrite the given fields of an existing row and return it."""
        stmt = (
            update(self.model)
            .where(self.model.purl == purl)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        await session.execute(stmt)
        return await self.get_by_purl(session, purl)

    def _defaults(self, purl: str) -> dict[str, Any]:
        return {}


class PackageDAO(_PurlKeyedDAO, BaseDAO[Package]):
    model = Package


class PackageVersionDAO(_PurlKeyedDAO, BaseDAO[PackageVersion]):
    model = PackageVersion

    def _defaults(self, purl: str) -> dict[str, Any]:
        return {"package_purl": base_purl(purl)}
