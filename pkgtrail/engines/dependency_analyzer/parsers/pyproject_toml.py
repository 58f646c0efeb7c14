"""Parser for Python pyproject.toml (PEP 621 and Poetry tables)."""

from __future__ import annotations

import re
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
    table_at,
)

# PEP 508 simplified: name followed by optional extras and version specifiers
_PEP508_RE = re.compile(
    r"^([A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?)"  # package name
    r"(\[[^\]]*\])?"  # optional extras [extra1,extra2]
    r"\s*"
    r"(.*)?$",  # version specifiers
)


def _pep508(raw: str) -> tuple[str, str] | None:
    line = raw.strip()
    if not line:
        return None

    # Strip environment markers (everything after ";")
    marker_pos = line.find(";")
    if marker_pos != -1:
        line = line[:marker_pos].strip()

    m = _PEP508_RE.match(line)
    if not m:
        return None
    constraint = (m.group(4) or "").strip().strip("()").replace(" ", "")
    return m.group(1), constraint or "*"


def _poetry_requirement(spec: object) -> str:
    if isinstance(spec, str):
        return spec
    if isinstance(spec, dict):
        return spec.get("version") or "*"
    return "*"


class PyprojectTomlParser:
    name = "pyproject-toml"
    ecosystem = "pypi"
    kind = "manifest"
    file_patterns = ["pyproject.toml"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        try:
            data = tomllib.loads(content)
        except tomllib.TOMLDecodeError as exc:
            raise ParseError(f"{path}: {exc}") from exc

        deps: list[DependencyRecord] = []
        project = table_at(data, "project", path)

        for raw in array_at(project, "dependencies", path):
            parsed = _pep508(raw) if isinstance(raw, str) else None
            if parsed:
                deps.append(self._record(parsed[0], parsed[1], "runtime"))

        optional = table_at(project, "optional-dependencies", path)
        for extra in optional:
            for raw in array_at(optional, extra, path):
                parsed = _pep508(raw) if isinstance(raw, str) else None
                if parsed:
                    deps.append(self._record(parsed[0], parsed[1], "optional"))

        poetry = table_at(table_at(data, "tool", path), "poetry", path)
        for name, spec in table_at(poetry, "dependencies", path).items():
            if name.lower() == "python":
                continue
            deps.append(self._record(name, _poetry_requirement(spec), "runtime"))
        for name, spec in table_at(poetry, "dev-dependencies", path).items():
            deps.append(self._record(name, _poetry_requirement(spec), "development"))
        groups = table_at(poetry, "group", path)
        for group_name in groups:
            group = table_at(groups, group_name, path)
            for name, spec in table_at(group, "dependencies", path).items():
                deps.append(self._record(name, _poetry_requirement(spec), "development"))

        return deps

    def _record(self, name: str, requirement: str, dep_type: str) -> DependencyRecord:
        return DependencyRecord(
            name=name,
            ecosystem=self.ecosystem,
            requirement=requirement,
            dependency_type=dep_type,
        )


register_parser(PyprojectTomlParser())
