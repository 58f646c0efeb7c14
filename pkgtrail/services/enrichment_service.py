"""EnrichmentService — cached, best-effort registry metadata for packages.

Registry data is advisory: a failed lookup is logged and the cached fields
(possibly empty) are returned unchanged. Cached rows are re-fetched once
they are older than the staleness threshold.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.core.database import utcnow
from pkgtrail.dao.package_dao import PackageDAO, PackageVersionDAO
from pkgtrail.engines.registry_client import EcosystemsClient, RegistryError, build_purl
from pkgtrail.models.package import Package, PackageVersion

log = structlog.get_logger("pkgtrail.enrichment")

DEFAULT_STALE_AFTER = timedelta(seconds=86400)


def _package_fields(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    supplier_name, supplier_type = _supplier(data)
    licenses = data.get("normalized_licenses") or []
    return {
        "latest_version": data.get("latest_release_number"),
        "license": licenses[0] if licenses else None,
        "description": data.get("description"),
        "homepage": data.get("homepage"),
        "repository_url": data.get("repository_url"),
        "supplier_name": supplier_name,
        "supplier_type": supplier_type,
        "enriched_at": now,
    }


def _supplier(data: dict[str, Any]) -> tuple[str | None, str | None]:
    """Owning organization if known, else the first maintainer."""
    owner = data.get("owner_record") or {}
    if owner.get("name"):
        return owner["name"], "organization" if owner.get("kind") == "organization" else "person"
    for maintainer in data.get("maintainers") or []:
        name = maintainer.get("name") or maintainer.get("login")
        if name:
            return name, "person"
        break
    return None, None


def _version_fields(data: dict[str, Any], now: datetime) -> dict[str, Any]:
    licenses = data.get("licenses")
    if isinstance(licenses, list):
        license_ = licenses[0] if licenses else None
    elif isinstance(licenses, str):
        license_ = licenses
    else:
        license_ = None
    published = data.get("published_at")
    return {
        "license": license_ or data.get("spdx_expression"),
        "integrity": data.get("integrity"),
        "published_at": datetime.fromisoformat(published.replace("Z", "+00:00"))
        if published
        else None,
        "enriched_at": now,
    }


class EnrichmentService:
    """Stateless service caching registry metadata in packages/package_versions."""

    def __init__(
        self,
        package_dao: PackageDAO,
        version_dao: PackageVersionDAO,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> None:
        self._package_dao = package_dao
        self._version_dao = version_dao
        self._stale_after = stale_after

    async def enrich(
        self,
        session: AsyncSession,
        client: EcosystemsClient,
        dependencies: list[dict[str, Any]],
    ) -> dict[str, dict[str, Any]]:
        """Metadata for each ``{ecosystem, name, version}`` dependency.

        ``version`` may be None (manifest requirements are not versions).
        Returns a mapping from the dependency's purl (versioned when a
        version is given) to license, latest version, registry integrity and
        supplier fields.
        """
        now = utcnow()
        packages: dict[str, Package] = {}
        versions: dict[str, PackageVersion] = {}
        purl_of: list[tuple[str, str | None]] = []

        for dep in dependencies:
            package_purl = build_purl(dep["ecosystem"], dep["name"])
            if package_purl not in packages:
                packages[package_purl] = await self._package_dao.find_or_create(
                    session, package_purl, ecosystem=dep["ecosystem"], name=dep["name"]
                )
            version_purl = None
            if dep.get("version"):
                version_purl = build_purl(dep["ecosystem"], dep["name"], dep["version"])
                if version_purl not in versions:
                    versions[version_purl] = await self._version_dao.find_or_create(
                        session, version_purl
                    )
            purl_of.append((package_purl, version_purl))

        await self._refresh_packages(session, client, packages, now)
        await self._refresh_versions(session, client, versions, now)

        result: dict[str, dict[str, Any]] = {}
        for package_purl, version_purl in purl_of:
            package = packages[package_purl]
            version = versions.get(version_purl) if version_purl else None
            result[version_purl or package_purl] = {
                "purl": version_purl or package_purl,
                "license": (version.license if version else None) or package.license,
                "latest_version": package.latest_version,
                "registry_integrity": version.integrity if version else None,
                "supplier_name": package.supplier_name,
                "supplier_type": package.supplier_type,
                "enriched_at": package.enriched_at,
            }
        return result

    async def _refresh_packages(
        self,
        session: AsyncSession,
        client: EcosystemsClient,
        packages: dict[str, Package],
        now: datetime,
    ) -> None:
        stale = [p for p, pkg in packages.items() if pkg.needs_enrichment(self._stale_after, now)]
        if not stale:
            return
        try:
            found = await client.bulk_lookup(stale)
        except RegistryError as exc:
            log.warning("registry.request_failed", what="packages", count=len(stale), error=str(exc))
            return
        for purl, data in found.items():
            if purl in packages:
                packages[purl] = await self._package_dao.update_fields(
                    session, purl, **_package_fields(data, now)
                )

    async def _refresh_versions(
        self,
        session: AsyncSession,
        client: EcosystemsClient,
        versions: dict[str, PackageVersion],
        now: datetime,
    ) -> None:
        for purl, version in list(versions.items()):
            if not version.needs_enrichment(self._stale_after, now):
                continue
            try:
                data = await client.lookup_version(purl)
            except RegistryError as exc:
                log.warning("registry.request_failed", what="version", purl=purl, error=str(exc))
                continue
            if data:
                versions[purl] = await self._version_dao.update_fields(
                    session, purl, **_version_fields(data, now)
                )
