"""Dependency state model and the diff engine.

A state maps ``(manifest path, package name)`` to a :class:`DependencyEntry`.
:func:`diff` produces the minimal delta between two states and
:func:`apply_changes` replays a delta; for any states ``a`` and ``b``,
``apply_changes(a, diff(a, b)) == b``.
"""

from __future__ import annotations

from collections.abc import Iterable

from pkgtrail.engines.dependency_analyzer.models import (
    CHANGE_ADDED,
    CHANGE_MODIFIED,
    CHANGE_REMOVED,
    Change,
    DependencyEntry,
    DependencyState,
)


def _differs(old: DependencyEntry, new: DependencyEntry) -> bool:
    # Requirement and integrity are the usual triggers; any other attribute
    # change is also recorded so replaying deltas reproduces snapshots exactly.
    return old != new


def diff(previous: DependencyState, current: DependencyState) -> list[Change]:
    """Return the changes that turn *previous* into *current*.

    Output is ordered by key (manifest path, then package name), so the same
    pair of states always yields the same list.
    """
    changes: list[Change] = []
    for key in sorted(previous.keys() | current.keys()):
        manifest_path, name = key
        old = previous.get(key)
        new = current.get(key)

        if old is None and new is not None:
            changes.append(
                Change(
                    manifest_path=manifest_path,
                    name=name,
                    change_type=CHANGE_ADDED,
                    ecosystem=new.ecosystem,
                    manifest_kind=new.manifest_kind,
                    requirement=new.requirement,
                    dependency_type=new.dependency_type,
                    integrity=new.integrity,
                )
            )
        elif old is not None and new is None:
            # Last known values are kept for display
            changes.append(
                Change(
                    manifest_path=manifest_path,
                    name=name,
                    change_type=CHANGE_REMOVED,
                    ecosystem=old.ecosystem,
                    manifest_kind=old.manifest_kind,
                    requirement=old.requirement,
                    dependency_type=old.dependency_type,
                    integrity=old.integrity,
                )
            )
        elif old is not None and new is not None and _differs(old, new):
            changes.append(
                Change(
                    manifest_path=manifest_path,
                    name=name,
                    change_type=CHANGE_MODIFIED,
                    ecosystem=new.ecosystem,
                    manifest_kind=new.manifest_kind,
                    requirement=new.requirement,
                    previous_requirement=old.requirement,
                    dependency_type=new.dependency_type,
                    integrity=new.integrity,
                )
            )
    return changes


def apply_changes(state: DependencyState, changes: Iterable[Change]) -> DependencyState:
    """Return a new state with *changes* applied in order."""
    result = dict(state)
    for change in changes:
        if change.change_type == CHANGE_REMOVED:
            result.pop(change.key, None)
        else:
            result[change.key] = DependencyEntry(
                ecosystem=change.ecosystem,
                requirement=change.requirement,
                dependency_type=change.dependency_type,
                integrity=change.integrity,
                manifest_kind=change.manifest_kind,
            )
    return result
