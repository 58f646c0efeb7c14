"""Parser for npm package-lock.json (lockfileVersion 1, 2 and 3)."""

from __future__ import annotations

import json

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import (
    ParseError,
    register_parser,
    table_at,
)

_NODE_MODULES = "node_modules/"


def _dependency_type(entry: dict) -> str:
    if entry.get("dev"):
        return "development"
    if entry.get("optional"):
        return "optional"
    return "runtime"


class PackageLockJsonParser:
    name = "package-lock-json"
    ecosystem = "npm"
    kind = "lockfile"
    file_patterns = ["package-lock.json", "npm-shrinkwrap.json"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ParseError(f"{path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError(f"{path}: expected a JSON object")

        if isinstance(data.get("packages"), dict):
            return self._parse_packages(path, data["packages"])
        return self._parse_dependencies(table_at(data, "dependencies", path))

    def _parse_packages(self, path: str, packages: dict) -> list[DependencyRecord]:
        seen: dict[str, DependencyRecord] = {}
        # Shallowest install path wins when a package is nested at several depths
        for key in sorted(packages, key=lambda k: (k.count(_NODE_MODULES), k)):
            entry = packages[key]
            if not isinstance(entry, dict):
                raise ParseError(f"{path}: entry {key!r} must be an object")
            if not key or _NODE_MODULES not in key or entry.get("link"):
                continue
            name = entry.get("name") or key.rsplit(_NODE_MODULES, 1)[-1]
            if name in seen:
                continue
            seen[name] = DependencyRecord(
                name=name,
                ecosystem=self.ecosystem,
                requirement=entry.get("version"),
                dependency_type=_dependency_type(entry),
                integrity=entry.get("integrity"),
            )
        return list(seen.values())

    def _parse_dependencies(self, dependencies: dict) -> list[DependencyRecord]:
        return [
            DependencyRecord(
                name=name,
                ecosystem=self.ecosystem,
                requirement=entry.get("version"),
                dependency_type=_dependency_type(entry),
                integrity=entry.get("integrity"),
            )
            for name, entry in dependencies.items()
            if isinstance(entry, dict)
        ]


register_parser(PackageLockJsonParser())
