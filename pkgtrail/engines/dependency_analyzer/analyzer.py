"""CommitAnalyzer — turn one commit into a dependency state and a delta."""

from __future__ import annotations

from collections import OrderedDict

import structlog

# Ensure parsers are registered before any analysis runs.
import pkgtrail.engines.dependency_analyzer.parsers  # noqa: F401
from pkgtrail.core.git import CommitRef, GitRepository
from pkgtrail.engines.dependency_analyzer.models import (
    AnalysisResult,
    DependencyEntry,
    DependencyRecord,
    DependencyState,
)
from pkgtrail.engines.dependency_analyzer.registry import (
    ManifestParser,
    ParseError,
    find_parser,
    is_dependency_file,
)
from pkgtrail.engines.dependency_analyzer.state import diff

log = structlog.get_logger("pkgtrail.analyzer")

_DEFAULT_CACHE_SIZE = 4096


class CommitAnalyzer:
    """Parse every dependency file present at a commit and diff the result.

    Parsed records are cached by (path, blob id): a manifest that did not
    change between commits is never parsed twice.
    """

    def __init__(self, repo: GitRepository, cache_size: int = _DEFAULT_CACHE_SIZE) -> None:
        self._repo = repo
        self._cache_size = cache_size
        self._cache: OrderedDict[tuple[str, str], list[DependencyRecord]] = OrderedDict()

    async def analyze(
        self,
        commit: CommitRef,
        previous_state: DependencyState | None = None,
    ) -> AnalysisResult | None:
        """Analyze *commit* against *previous_state*.

        Returns None for merge commits and for commits that touch no
        dependency file. Otherwise returns the full current state plus the
        (possibly empty) list of changes.
        """
        if self._repo.parent_count(commit) > 1:
            return None

        changed = await self._repo.changed_paths(commit)
        if not any(is_dependency_file(c.path) for c in changed):
            return None

        current = await self.dependencies_at(commit)
        changes = diff(previous_state or {}, current)
        log.debug(
            "analyzer.commit_analyzed",
            sha=commit.short_sha,
            dependencies=len(current),
            changes=len(changes),
        )
        return AnalysisResult(changes=changes, state=current)

    async def dependencies_at(self, commit: CommitRef) -> DependencyState:
        """Full dependency state declared by all files in *commit*'s tree."""
        entries = await self._repo.tree_entries(commit)
        state: DependencyState = {}
        for path in sorted(entries):
            parser = find_parser(path)
            if parser is None:
                continue
            for record in await self._records_for(parser, path, entries[path]):
                key = (path, record.name)
                if key in state:
                    # First declaration in a file wins
                    continue
                state[key] = DependencyEntry(
                    ecosystem=record.ecosystem,
                    requirement=record.requirement,
                    dependency_type=record.dependency_type,
                    integrity=record.integrity,
                    manifest_kind=parser.kind,
                )
        return state

    async def _records_for(
        self, parser: ManifestParser, path: str, oid: str
    ) -> list[DependencyRecord]:
        cache_key = (path, oid)
        cached = self._cache.get(cache_key)
        if cached is not None:
            self._cache.move_to_end(cache_key)
            return cached

        content = await self._repo.blob_content(oid)
        try:
            records = parser.parse(path, content.decode("utf-8", errors="replace"))
        except ParseError as exc:
            log.warning("analyzer.parse_failed", path=path, parser=parser.name, error=str(exc))
            records = []
        except (KeyError, TypeError, AttributeError) as exc:
            # A file of unexpected shape yields no records like any other bad file
            log.warning(
                "analyzer.parse_failed",
                path=path,
                parser=parser.name,
                error=f"{type(exc).__name__}: {exc}",
            )
            records = []

        self._cache[cache_key] = records
        if len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return records
