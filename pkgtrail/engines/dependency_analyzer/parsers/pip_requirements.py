"""Parser for pip requirements files."""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import register_parser

# Matches: package_name, optional extras, then everything else = requirement
_REQ_RE = re.compile(
    r"^([A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?)"  # package name
    r"(\[[^\]]*\])?"  # optional extras
    r"\s*"
    r"(.*)?$",
)

_DEV_HINTS = ("dev", "test", "lint", "doc")


def _dependency_type(path: str) -> str:
    stem = PurePosixPath(path).stem.lower()
    if any(hint in stem for hint in _DEV_HINTS):
        return "development"
    return "runtime"


class PipRequirementsParser:
    name = "pip-requirements"
    ecosystem = "pypi"
    kind = "manifest"
    file_patterns = ["requirements*.txt", "requirements/*.txt"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        deps: list[DependencyRecord] = []
        dep_type = _dependency_type(path)

        for raw_line in content.splitlines():
            line = raw_line.split(" #", 1)[0].strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith(("-", "git+", "http://", "https://", ".", "/")):
                continue

            # Strip environment markers
            line = line.split(";", 1)[0].strip()

            m = _REQ_RE.match(line)
            if not m:
                continue

            constraint = (m.group(4) or "").replace(" ", "") or None
            deps.append(
                DependencyRecord(
                    name=m.group(1),
                    ecosystem=self.ecosystem,
                    requirement=constraint or "*",
                    dependency_type=dep_type,
                )
            )

        return deps


register_parser(PipRequirementsParser())
