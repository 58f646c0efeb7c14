"""Parser for Go go.mod files."""

from __future__ import annotations

import re

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import register_parser

# Single require: require github.com/foo/bar v1.2.3
_SINGLE_RE = re.compile(r"^require\s+(\S+)\s+(\S+)")

# Inside require block: github.com/foo/bar v1.2.3
_BLOCK_RE = re.compile(r"^\s*(\S+)\s+(v\S+)")


class GoModParser:
    name = "go-mod"
    ecosystem = "go"
    kind = "manifest"
    file_patterns = ["go.mod"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        deps: list[DependencyRecord] = []
        in_require_block = False

        for raw_line in content.splitlines():
            line = raw_line.strip()

            if not line or line.startswith("//"):
                continue

            # Detect require block boundaries
            if line.startswith("require ("):
                in_require_block = True
                continue
            if in_require_block and line == ")":
                in_require_block = False
                continue

            m = _BLOCK_RE.match(line) if in_require_block else _SINGLE_RE.match(line)
            if not m:
                continue

            deps.append(
                DependencyRecord(
                    name=m.group(1),
                    ecosystem=self.ecosystem,
                    requirement=m.group(2),
                    dependency_type="indirect" if "// indirect" in line else "runtime",
                )
            )

        return deps


register_parser(GoModParser())
