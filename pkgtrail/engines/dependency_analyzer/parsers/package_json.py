"""Parser for npm package.json."""

from __future__ import annotations

import json

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import ParseError, register_parser

_DEP_SECTIONS = {
    "dependencies": "runtime",
    "devDependencies": "development",
    "optionalDependencies": "optional",
    "peerDependencies": "peer",
}


class PackageJsonParser:
    name = "package-json"
    ecosystem = "npm"
    kind = "manifest"
    file_patterns = ["package.json"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ParseError(f"{path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError(f"{path}: expected a JSON object")

        deps: list[DependencyRecord] = []
        for section, dep_type in _DEP_SECTIONS.items():
            table = data.get(section) or {}
            if not isinstance(table, dict):
                continue
            for name, requirement in table.items():
                deps.append(
                    DependencyRecord(
                        name=name,
                        ecosystem=self.ecosystem,
                        requirement=str(requirement) if requirement else "*",
                        dependency_type=dep_type,
                    )
                )
        return deps


register_parser(PackageJsonParser())
