"""Parser for Ruby Gemfile.lock, including the CHECKSUMS section."""

from __future__ import annotations

import re

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import register_parser

# Top-level spec lines are indented exactly four spaces; six means sub-dependency
_SPEC_RE = re.compile(r"^ {4}(\S+) \(([^)]+)\)\s*$")
_CHECKSUM_RE = re.compile(r"^\s+(\S+) \(([^)]+)\)(?:\s+(\S.*))?$")
_SPEC_SECTIONS = ("GEM", "GIT", "PATH")


class GemfileLockParser:
    name = "gemfile-lock"
    ecosystem = "rubygems"
    kind = "lockfile"
    file_patterns = ["Gemfile.lock", "gems.locked"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        section: str | None = None
        in_specs = False
        versions: dict[str, str] = {}
        checksums: dict[tuple[str, str], str] = {}

        for raw_line in content.splitlines():
            if not raw_line.strip():
                continue
            if not raw_line.startswith(" "):
                section = raw_line.strip()
                in_specs = False
                continue

            if section in _SPEC_SECTIONS:
                if raw_line.strip() == "specs:":
                    in_specs = True
                    continue
                if in_specs:
                    m = _SPEC_RE.match(raw_line)
                    if m:
                        versions.setdefault(m.group(1), m.group(2))
            elif section == "CHECKSUMS":
                m = _CHECKSUM_RE.match(raw_line)
                if m and m.group(3):
                    checksums[(m.group(1), m.group(2))] = m.group(3).strip()

        return [
            DependencyRecord(
                name=name,
                ecosystem=self.ecosystem,
                requirement=version,
                dependency_type="runtime",
                integrity=checksums.get((name, version)),
            )
            for name, version in versions.items()
        ]


register_parser(GemfileLockParser())
