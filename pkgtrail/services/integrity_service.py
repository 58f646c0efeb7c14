"""IntegrityService — lockfile integrity hashes and drift detection."""

from __future__ import annotations

import re
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.core.git import GitRepository
from pkgtrail.dao.dependency_change_dao import DependencyChangeDAO
from pkgtrail.engines.registry_client import EcosystemsClient, RegistryError, build_purl
from pkgtrail.services.history_service import HistoryService

log = structlog.get_logger("pkgtrail.integrity")

_SHA256_PREFIX_RE = re.compile(r"^sha256[-=]")


def normalize_integrity(value: str | None) -> str | None:
    """Treat ``sha256=<hex>`` and ``sha256-<hex>`` as the same ``sha256:<hex>``."""
    if value is None:
        return None
    return _SHA256_PREFIX_RE.sub("sha256:", value)


def integrity_match(lockfile: str | None, registry: str | None) -> bool:
    return normalize_integrity(lockfile) == normalize_integrity(registry)


class IntegrityService:
    """Stateless service for the ``integrity`` report."""

    def __init__(
        self,
        change_dao: DependencyChangeDAO,
        history_service: HistoryService,
    ) -> None:
        self._change_dao = change_dao
        self._history = history_service

    async def integrity_at(
        self,
        session: AsyncSession,
        repo: GitRepository,
        branch: str,
        ref: str = "HEAD",
        *,
        ecosystem: str | None = None,
    ) -> list[dict[str, Any]]:
        """Lockfile entries carrying an integrity hash as of *ref*, by ecosystem and name."""
        _, state = await self._history.state_at(session, repo, branch, ref)
        rows = [
            {
                "name": name,
                "version": entry.requirement,
                "ecosystem": entry.ecosystem,
                "purl": build_purl(entry.ecosystem, name, entry.requirement),
                "integrity": entry.integrity,
                "manifest": path,
            }
            for (path, name), entry in state.items()
            if entry.manifest_kind == "lockfile" and entry.integrity
        ]
        if ecosystem:
            rows = [row for row in rows if row["ecosystem"] == ecosystem]
        return sorted(rows, key=lambda row: (row["ecosystem"], row["name"], row["manifest"]))

    async def detect_drift(
        self,
        session: AsyncSession,
        client: EcosystemsClient | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        """Find package versions whose recorded hashes disagree.

        ``internal_drift``: one version recorded with several different
        lockfile hashes anywhere in history. ``registry_mismatch``: a lockfile
        hash that differs from the registry's, only checked when *client*
        is given. Registry failures are logged and skipped.
        """
        by_purl: dict[str, list[str]] = {}
        for row in await self._change_dao.distinct_integrities(session):
            purl = build_purl(row["ecosystem"], row["name"], row["version"])
            values = by_purl.setdefault(purl, [])
            if row["integrity"] not in values:
                values.append(row["integrity"])

        internal = [
            {"purl": purl, "integrity_values": values}
            for purl, values in by_purl.items()
            if len(values) > 1
        ]

        mismatches: list[dict[str, Any]] = []
        if client is not None:
            for purl, values in by_purl.items():
                try:
                    info = await client.lookup_version(purl)
                except RegistryError as exc:
                    log.warning("registry.request_failed", purl=purl, error=str(exc))
                    continue
                registry = (info or {}).get("integrity")
                if registry and not integrity_match(values[0], registry):
                    mismatches.append({"purl": purl, "lockfile": values[0], "registry": registry})

        return {"internal_drift": internal, "registry_mismatch": mismatches}
