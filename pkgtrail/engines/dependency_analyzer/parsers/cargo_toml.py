"""Parser for Rust Cargo.toml files."""

from __future__ import annotations

import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import (
    ParseError,
    register_parser,
    table_at,
)

_DEP_SECTIONS = {
    "dependencies": "runtime",
    "dev-dependencies": "development",
    "build-dependencies": "build",
}


def _parse_version(spec: str | dict) -> str:
    """Extract version constraint from a dependency spec."""
    if isinstance(spec, str):
        return spec
    if isinstance(spec, dict):
        return spec.get("version") or "*"
    return "*"


class CargoTomlParser:
    name = "cargo-toml"
    ecosystem = "cargo"
    kind = "manifest"
    file_patterns = ["Cargo.toml"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            raise ParseError(f"{path}: {exc}") from exc

        deps: list[DependencyRecord] = []

        for section, dep_type in _DEP_SECTIONS.items():
            dep_table = table_at(data, section, path)
            for name, spec in dep_table.items():
                deps.append(
                    DependencyRecord(
                        name=name,
                        ecosystem=self.ecosystem,
                        requirement=_parse_version(spec),
                        dependency_type=dep_type,
                    )
                )

        return deps


register_parser(CargoTomlParser())
