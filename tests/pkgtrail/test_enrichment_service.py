"""Tests for EnrichmentService with a real session and a stubbed registry client."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from pkgtrail.dao.package_dao import PackageDAO, PackageVersionDAO
from pkgtrail.engines.registry_client import RegistryError
from pkgtrail.services.enrichment_service import EnrichmentService

RAILS = {
    "purl": "pkg:gem/rails",
    "latest_release_number": "7.1.3",
    "normalized_licenses": ["MIT"],
    "description": "Full-stack web framework",
    "homepage": "https://rubyonrails.org",
    "repository_url": "https://github.com/rails/rails",
    "owner_record": {"name": "Rails", "kind": "organization"},
}
RAILS_7_1_2 = {
    "number": "7.1.2",
    "licenses": "MIT",
    "integrity": "sha256-abc",
    "published_at": "2023-11-10T21:50:57.000Z",
}


def _client(packages=None, versions=None):
    client = MagicMock()
    client.bulk_lookup = AsyncMock(return_value=packages or {})
    client.lookup_version = AsyncMock(side_effect=lambda purl: (versions or {}).get(purl))
    return client


def _service(stale=timedelta(days=1)):
    return EnrichmentService(PackageDAO(), PackageVersionDAO(), stale_after=stale)


class TestEnrich:
    async def test_fills_and_caches(self, session):
        client = _client({"pkg:gem/rails": RAILS}, {"pkg:gem/rails@7.1.2": RAILS_7_1_2})
        service = _service()
        deps = [{"ecosystem": "rubygems", "name": "rails", "version": "7.1.2"}]

        result = await service.enrich(session, client, deps)

        info = result["pkg:gem/rails@7.1.2"]
        assert info["license"] == "MIT"
        assert info["latest_version"] == "7.1.3"
        assert info["registry_integrity"] == "sha256-abc"
        assert info["supplier_name"] == "Rails"
        assert info["supplier_type"] == "organization"
        assert info["enriched_at"] is not None

        version = await PackageVersionDAO().get_by_purl(session, "pkg:gem/rails@7.1.2")
        assert version.published_at == datetime(2023, 11, 10, 21, 50, 57, tzinfo=timezone.utc)

        # Fresh cache: no further registry calls
        again = await service.enrich(session, client, deps)
        assert again == result
        client.bulk_lookup.assert_awaited_once()
        client.lookup_version.assert_awaited_once()

    async def test_stale_entries_refetched(self, session):
        client = _client({"pkg:gem/rails": RAILS})
        service = _service(stale=timedelta(seconds=0))
        deps = [{"ecosystem": "rubygems", "name": "rails", "version": None}]

        await service.enrich(session, client, deps)
        await service.enrich(session, client, deps)

        assert client.bulk_lookup.await_count == 2
        client.lookup_version.assert_not_awaited()

    async def test_unversioned_key(self, session):
        result = await _service().enrich(
            session, _client(), [{"ecosystem": "npm", "name": "@types/node"}]
        )
        assert list(result) == ["pkg:npm/%40types/node"]
        assert result["pkg:npm/%40types/node"]["license"] is None

    async def test_maintainer_supplier(self, session):
        data = {"purl": "pkg:npm/left-pad", "maintainers": [{"login": "stevemao"}]}
        result = await _service().enrich(
            session, _client({"pkg:npm/left-pad": data}), [{"ecosystem": "npm", "name": "left-pad"}]
        )
        info = result["pkg:npm/left-pad"]
        assert (info["supplier_name"], info["supplier_type"]) == ("stevemao", "person")

    async def test_registry_failure_is_tolerated(self, session):
        client = MagicMock()
        client.bulk_lookup = AsyncMock(side_effect=RegistryError("down"))
        client.lookup_version = AsyncMock(side_effect=RegistryError("down"))

        result = await _service().enrich(
            session, client, [{"ecosystem": "pypi", "name": "Requests", "version": "2.31.0"}]
        )

        info = result["pkg:pypi/requests@2.31.0"]
        assert info["license"] is None
        assert info["enriched_at"] is None
        # Nothing was cached, so the next call tries again
        package = await PackageDAO().get_by_purl(session, "pkg:pypi/requests")
        assert package.needs_enrichment(timedelta(days=1))
