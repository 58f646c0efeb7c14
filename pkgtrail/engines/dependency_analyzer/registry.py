"""Parser registry — match file paths to manifest parsers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Protocol, runtime_checkable

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord

# Directories whose manifests belong to vendored code, not the project
_IGNORED_DIRS = frozenset({"vendor", "node_modules", ".git", "bower_components"})


class ParseError(ValueError):
    """Raised by a parser when a file's content cannot be understood."""


def table_at(data: dict, key: str, path: str) -> dict:
    """Return ``data[key]`` as a table (empty if absent).

    Raises :class:`ParseError` when the key holds anything but a table.
    """
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ParseError(f"{path}: {key!r} must be a table, got {type(value).__name__}")
    return value


def array_at(data: dict, key: str, path: str) -> list:
    """Return ``data[key]`` as an array (empty if absent)."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(f"{path}: {key!r} must be an array, got {type(value).__name__}")
    return value


@runtime_checkable
class ManifestParser(Protocol):
    """Interface that every manifest parser must satisfy."""

    name: str
    ecosystem: str
    kind: str  # "manifest" | "lockfile"
    file_patterns: list[str]

    def parse(self, path: str, content: str) -> list[DependencyRecord]: ...


PARSER_REGISTRY: dict[str, ManifestParser] = {}


def register_parser(parser: ManifestParser) -> None:
    """Register a parser instance by its name."""
    PARSER_REGISTRY[parser.name] = parser


def find_parser(path: str) -> ManifestParser | None:
    """Return the parser responsible for *path*, or None."""
    pure = PurePosixPath(path)
    if _IGNORED_DIRS.intersection(pure.parts[:-1]):
        return None
    for parser in PARSER_REGISTRY.values():
        for pattern in parser.file_patterns:
            if pure.match(pattern):
                return parser
    return None


def is_dependency_file(path: str) -> bool:
    return find_parser(path) is not None


def parse_file(path: str, content: bytes) -> list[DependencyRecord]:
    """Parse raw file bytes with the matching parser.

    Raises :class:`ParseError` if no parser handles *path* or the content
    is malformed.
    """
    parser = find_parser(path)
    if parser is None:
        raise ParseError(f"no parser for {path!r}")
    return parser.parse(path, content.decode("utf-8", errors="replace"))
