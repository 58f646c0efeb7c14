"""Parser for Ruby Gemfile / gems.rb."""

from __future__ import annotations

import re

from pkgtrail.engines.dependency_analyzer.models import DependencyRecord
from pkgtrail.engines.dependency_analyzer.registry import register_parser

_GEM_RE = re.compile(r"""^gem\s*\(?\s*["']([^"']+)["']\s*,?(.*)$""")
_QUOTED_RE = re.compile(r"""^["']([^"']*)["']$""")
_BLOCK_RE = re.compile(r"\bdo\s*(\|[^|]*\|)?\s*$")
_GROUP_BLOCK_RE = re.compile(r"""^group\s*\(?\s*:?["']?(\w+)""")
_GROUP_OPT_RE = re.compile(r"""(?:group|groups)\s*(?::|=>)\s*\[?\s*:?["']?(\w+)""")

# Bundler's implicit requirement when a gem line names no version
DEFAULT_REQUIREMENT = ">= 0"


def _requirements(rest: str) -> list[str]:
    """Leading quoted arguments after the gem name are version constraints."""
    found: list[str] = []
    for token in rest.split(","):
        m = _QUOTED_RE.match(token.strip().rstrip(")"))
        if not m:
            break
        found.append(m.group(1).strip())
    return [r for r in found if r]


class GemfileParser:
    name = "gemfile"
    ecosystem = "rubygems"
    kind = "manifest"
    file_patterns = ["Gemfile", "gems.rb"]

    def parse(self, path: str, content: str) -> list[DependencyRecord]:
        deps: list[DependencyRecord] = []
        # One entry per open do-block; group blocks carry their group name
        blocks: list[str | None] = []

        for raw_line in content.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue

            if line == "end":
                if blocks:
                    blocks.pop()
                continue

            if _BLOCK_RE.search(line):
                group = _GROUP_BLOCK_RE.match(line)
                blocks.append(group.group(1) if group else None)
                continue

            m = _GEM_RE.match(line)
            if not m:
                continue

            rest = m.group(2)
            inline_group = _GROUP_OPT_RE.search(rest)
            block_group = next((g for g in reversed(blocks) if g), None)
            dep_type = (
                inline_group.group(1) if inline_group else block_group or "runtime"
            )
            requirement = ", ".join(_requirements(rest)) or DEFAULT_REQUIREMENT

            deps.append(
                DependencyRecord(
                    name=m.group(1),
                    ecosystem=self.ecosystem,
                    requirement=requirement,
                    dependency_type=dep_type,
                )
            )

        return deps


register_parser(GemfileParser())
