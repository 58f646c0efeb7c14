"""Tests for the ecosyste.ms client and purl helpers."""

import json

import httpx
import pytest

from pkgtrail.engines.registry_client import (
    EcosystemsClient,
    RegistryError,
    base_purl,
    build_purl,
    parse_purl,
)

BASE = "https://packages.example.test/api/v1"


def _client(handler):
    return EcosystemsClient(BASE, transport=httpx.MockTransport(handler), retry_base_delay=0)


# ── purl ──────────────────────────────────────────────────────────────────


class TestPurl:
    @pytest.mark.parametrize(
        ("ecosystem", "name", "version", "expected"),
        [
            ("rubygems", "rails", "7.1.2", "pkg:gem/rails@7.1.2"),
            ("npm", "express", None, "pkg:npm/express"),
            ("npm", "@types/node", "20.1.0", "pkg:npm/%40types/node@20.1.0"),
            ("pypi", "Django_REST.framework", "3.14", "pkg:pypi/django-rest-framework@3.14"),
            ("cargo", "serde", "1.0.193", "pkg:cargo/serde@1.0.193"),
            ("go", "github.com/pkg/errors", "v0.9.1", "pkg:golang/github.com/pkg/errors@v0.9.1"),
            ("hex", "phoenix", None, "pkg:hex/phoenix"),
        ],
    )
    def test_build(self, ecosystem, name, version, expected):
        assert build_purl(ecosystem, name, version) == expected

    def test_parse(self):
        assert parse_purl("pkg:npm/%40types/node@20.1.0") == ("npm", "@types/node", "20.1.0")
        assert parse_purl("pkg:gem/rails") == ("gem", "rails", None)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_purl("rails@7")

    def test_base_purl(self):
        assert base_purl("pkg:gem/rails@7.1.2") == "pkg:gem/rails"
        assert base_purl("pkg:npm/%40types/node@20.1.0") == "pkg:npm/%40types/node"
        assert base_purl("pkg:gem/rails") == "pkg:gem/rails"


# ── bulk lookup ───────────────────────────────────────────────────────────


class TestBulkLookup:
    async def test_returns_known_purls(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            assert request.method == "POST"
            assert request.url.path == "/api/v1/packages/bulk_lookup"
            return httpx.Response(200, json=[{"purl": "pkg:gem/rails", "name": "rails"}])

        async with _client(handler) as client:
            found = await client.bulk_lookup(["pkg:gem/rails", "pkg:gem/nope"])

        assert found == {"pkg:gem/rails": {"purl": "pkg:gem/rails", "name": "rails"}}
        assert seen == [{"purls": ["pkg:gem/rails", "pkg:gem/nope"]}]

    async def test_batches(self):
        sizes = []

        def handler(request):
            sizes.append(len(json.loads(request.content)["purls"]))
            return httpx.Response(200, json=[])

        purls = [f"pkg:npm/p{i}" for i in range(250)]
        async with _client(handler) as client:
            assert await client.bulk_lookup(purls) == {}
        assert sizes == [100, 100, 50]

    async def test_lookup_package(self):
        def handler(request):
            return httpx.Response(200, json=[{"purl": "pkg:gem/rails", "licenses": "MIT"}])

        async with _client(handler) as client:
            assert (await client.lookup_package("pkg:gem/rails"))["licenses"] == "MIT"


# ── version lookup ────────────────────────────────────────────────────────


class TestLookupVersion:
    async def test_path(self):
        paths = []

        def handler(request):
            paths.append(request.url.raw_path.decode())
            return httpx.Response(200, json={"number": "20.1.0", "integrity": "sha512-x"})

        async with _client(handler) as client:
            data = await client.lookup_version("pkg:npm/%40types/node@20.1.0")

        assert data["integrity"] == "sha512-x"
        assert paths == ["/api/v1/registries/npmjs.org/packages/%40types%2Fnode/versions/20.1.0"]

    async def test_not_found(self):
        async with _client(lambda request: httpx.Response(404)) as client:
            assert await client.lookup_version("pkg:gem/rails@0.0.1") is None

    async def test_unversioned_or_unsupported(self):
        def handler(request):  # pragma: no cover - must not be called
            raise AssertionError("unexpected request")

        async with _client(handler) as client:
            assert await client.lookup_version("pkg:gem/rails") is None
            assert await client.lookup_version("pkg:hex/phoenix@1.7.0") is None


# ── retries ───────────────────────────────────────────────────────────────


class TestRetries:
    async def test_server_error_then_success(self):
        responses = iter([httpx.Response(502), httpx.Response(200, json=[])])
        async with _client(lambda request: next(responses)) as client:
            assert await client.bulk_lookup(["pkg:gem/rails"]) == {}

    async def test_rate_limit_honours_retry_after(self):
        responses = iter(
            [httpx.Response(429, headers={"Retry-After": "0"}), httpx.Response(200, json=[])]
        )
        async with _client(lambda request: next(responses)) as client:
            assert await client.bulk_lookup(["pkg:gem/rails"]) == {}

    async def test_timeout_retried_then_fails(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as client:
            with pytest.raises(RegistryError, match="timeout"):
                await client.bulk_lookup(["pkg:gem/rails"])
        assert len(calls) == 3

    async def test_exhausted_server_errors(self):
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(RegistryError, match="HTTP 503"):
                await client.bulk_lookup(["pkg:gem/rails"])

    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400)

        async with _client(handler) as client:
            with pytest.raises(RegistryError, match="HTTP 400"):
                await client.bulk_lookup(["pkg:gem/rails"])
        assert len(calls) == 1

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(RegistryError):
                await client.lookup_version("pkg:gem/rails@7.1.2")
