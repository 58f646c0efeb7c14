"""Parser for Rust Cargo.lock files."""

from __future__ import annotations

import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import (
    ParseError,
    array_at,
    register_parser,
)


class CargoLockParser:
    name = "cargo-lock"
    ecosystem = "cargo"
    kind = "lockfile"
    file_patterns = ["Cargo.lock"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            raise ParseError(f"{path}: {exc}") from exc

        deps: list[DependencyRecord] = []
        for package in array_at(data, "package", path):
            if not isinstance(package, dict) or "name" not in package:
                raise ParseError(f"{path}: package entry without a name")
            # Workspace members have no source
            if "source" not in package:
                continue
            checksum = package.get("checksum")
            deps.append(
                DependencyRecord(
                    name=package["name"],
                    ecosystem=self.ecosystem,
                    requirement=package.get("version"),
                    dependency_type="runtime",
                    integrity=f"sha256={checksum}" if checksum else None,
                )
            )
        return deps


register_parser(CargoLockParser())
