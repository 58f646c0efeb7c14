"""Async ecosyste.ms packages API client with retries and rate-limit handling."""

from __future__ import annotations

import asyncio
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from pkgtrail.core.config import DEFAULT_REGISTRY_URL
from pkgtrail.engines.registry_client.purl import parse_purl

log = structlog.get_logger("pkgtrail.registry")

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_BULK_BATCH = 100

# purl type -> ecosyste.ms registry name
REGISTRY_NAMES = {
    "gem": "rubygems.org",
    "npm": "npmjs.org",
    "pypi": "pypi.org",
    "cargo": "crates.io",
    "golang": "proxy.golang.org",
}


class RegistryError(Exception):
    """Raised when the registry API cannot answer a request."""


class EcosystemsClient:
    """Thin async wrapper around the ecosyste.ms packages API."""

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        timeout: float = 30.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = _RETRY_BASE_DELAY,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json", "User-Agent": "pkgtrail"},
            timeout=timeout,
            transport=transport,
        )
        self._retry_base_delay = retry_base_delay

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> EcosystemsClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def bulk_lookup(self, purls: list[str]) -> dict[str, dict[str, Any]]:
        """Package metadata for many unversioned purls, keyed by purl.

        Purls the registry does not know are absent from the result.
        """
        found: dict[str, dict[str, Any]] = {}
        for start in range(0, len(purls), _BULK_BATCH):
            batch = purls[start : start + _BULK_BATCH]
            response = await self._request("POST", "/packages/bulk_lookup", json={"purls": batch})
            for item in response.json() or []:
                if isinstance(item, dict) and item.get("purl"):
                    found[item["purl"]] = item
        return found

    async def lookup_package(self, purl: str) -> dict[str, Any] | None:
        """Package metadata for one unversioned purl, or None if unknown."""
        return (await self.bulk_lookup([purl])).get(purl)

    async def lookup_version(self, purl: str) -> dict[str, Any] | None:
        """Version metadata (licenses, integrity, published_at) for a versioned purl.

        Returns None for unsupported ecosystems and versions the registry
        does not know.
        """
        purl_type, name, version = parse_purl(purl)
        registry = REGISTRY_NAMES.get(purl_type)
        if registry is None or not version:
            return None
        path = (
            f"/registries/{registry}/packages/{quote(name, safe='')}"
            f"/versions/{quote(version, safe='')}"
        )
        response = await self._request("GET", path, allow_not_found=True)
        if response.status_code == 404:
            return None
        return response.json()

    # ── internal ───────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        allow_not_found: bool = False,
    ) -> httpx.Response:
        """Request with exponential backoff on 5xx, 429 and timeout errors.

        Raises :class:`RegistryError` once retries are exhausted or on any
        other client error.
        """
        last_error = "no attempt made"
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.request(method, url, json=json)
            except httpx.TimeoutException:
                log.warning(
                    "registry.timeout", url=url, attempt=attempt + 1, max_retries=_MAX_RETRIES
                )
                last_error = "timeout"
            except httpx.HTTPError as exc:
                raise RegistryError(f"{method} {url}: {exc}") from exc
            else:
                if resp.status_code == 429:
                    wait = self._retry_after(resp)
                    log.warning(
                        "registry.rate_limit",
                        url=url,
                        wait_seconds=wait,
                        attempt=attempt + 1,
                        max_retries=_MAX_RETRIES,
                    )
                    last_error = "rate limited"
                    if attempt < _MAX_RETRIES - 1:
                        await asyncio.sleep(wait)
                    continue

                if resp.status_code == 404 and allow_not_found:
                    return resp
                if resp.status_code < 400:
                    return resp
                if resp.status_code < 500:
                    raise RegistryError(f"{method} {url}: HTTP {resp.status_code}")

                log.warning(
                    "registry.server_error",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_error = f"HTTP {resp.status_code}"

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(self._retry_base_delay * (2**attempt))

        raise RegistryError(f"{method} {url}: {last_error} after {_MAX_RETRIES} attempts")

    def _retry_after(self, response: httpx.Response) -> float:
        """Seconds to wait before retrying a rate-limited request."""
        value = response.headers.get("Retry-After")
        if value is not None:
            try:
                return max(float(value), 0.0)
            except ValueError:
                pass
        return self._retry_base_delay * 30
