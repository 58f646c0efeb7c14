"""Data models for the dependency analyzer engine."""

from __future__ import annotations

from dataclasses import dataclass

CHANGE_ADDED = "added"
CHANGE_MODIFIED = "modified"
CHANGE_REMOVED = "removed"


@dataclass(frozen=True)
class DependencyRecord:
    """A single dependency declared in one manifest or lockfile."""

    name: str
    ecosystem: str
    requirement: str | None
    dependency_type: str | None = "runtime"
    integrity: str | None = None


@dataclass(frozen=True)
class DependencyEntry:
    """Value side of a dependency state, keyed by (manifest path, package name)."""

    ecosystem: str
    requirement: str | None
    dependency_type: str | None
    integrity: str | None
    manifest_kind: str = "manifest"


StateKey = tuple[str, str]
DependencyState = dict[StateKey, DependencyEntry]


@dataclass(frozen=True)
class Change:
    """One added/modified/removed delta between two dependency states."""

    manifest_path: str
    name: str
    change_type: str
    ecosystem: str
    manifest_kind: str
    requirement: str | None
    previous_requirement: str | None = None
    dependency_type: str | None = None
    integrity: str | None = None

    @property
    def key(self) -> StateKey:
        return (self.manifest_path, self.name)


@dataclass
class AnalysisResult:
    """Outcome of analyzing one commit against the running state."""

    changes: list[Change]
    state: DependencyState


@dataclass
class WalkResult:
    """Summary of one history walk over a branch."""

    branch: str
    commits_walked: int = 0
    commits_with_changes: int = 0
    merges_skipped: int = 0
    changes_recorded: int = 0
    checkpoints_written: int = 0
    tip: str | None = None

    @property
    def up_to_date(self) -> bool:
        return self.commits_walked == 0
