"""Package URL (purl) construction for the supported ecosystems."""

from __future__ import annotations

import re
from urllib.parse import quote, unquote

ECOSYSTEM_TO_PURL_TYPE = {
    "rubygems": "gem",
    "npm": "npm",
    "pypi": "pypi",
    "cargo": "cargo",
    "go": "golang",
}
PURL_TYPE_TO_ECOSYSTEM = {v: k for k, v in ECOSYSTEM_TO_PURL_TYPE.items()}

_PYPI_SEPARATORS_RE = re.compile(r"[-_.]+")


def _segment(value: str) -> str:
    return quote(value, safe=".-_~")


def build_purl(ecosystem: str, name: str, version: str | None = None) -> str:
    """Return ``pkg:<type>/[<namespace>/]<name>[@<version>]``.

    Unknown ecosystems keep their own name as the purl type.
    """
    purl_type = ECOSYSTEM_TO_PURL_TYPE.get(ecosystem, ecosystem)
    if purl_type == "pypi":
        name = _PYPI_SEPARATORS_RE.sub("-", name).lower()

    if purl_type == "npm" and name.startswith("@") and "/" in name:
        scope, _, bare = name.partition("/")
        path = f"{_segment(scope)}/{_segment(bare)}"
    elif purl_type == "golang":
        path = "/".join(_segment(part) for part in name.split("/"))
    else:
        path = _segment(name)

    purl = f"pkg:{purl_type}/{path}"
    if version:
        purl += f"@{_segment(version)}"
    return purl


def parse_purl(purl: str) -> tuple[str, str, str | None]:
    """Split a purl built by :func:`build_purl` into (type, name, version)."""
    if not purl.startswith("pkg:") or "/" not in purl:
        raise ValueError(f"not a package URL: {purl!r}")
    purl_type, _, rest = purl[4:].partition("/")
    version = None
    if "@" in rest:
        rest, _, raw_version = rest.rpartition("@")
        version = unquote(raw_version)
    return purl_type, unquote(rest), version


def base_purl(purl: str) -> str:
    """Strip the version from a purl."""
    head, _, path = purl.partition("/")
    if "@" not in path:
        return purl
    return f"{head}/{path.rpartition('@')[0]}"
