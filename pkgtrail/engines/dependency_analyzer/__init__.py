"""Dependency analyzer engine — per-commit dependency deltas along a branch.

The history walker and reconstruction live in their own modules
(``walker``, ``reconstruction``) since they depend on the service layer.
"""

from pkgtrail.engines.dependency_analyzer.analyzer import CommitAnalyzer
from pkgtrail.engines.dependency_analyzer.models import (
    AnalysisResult,
    Change,
    DependencyEntry,
    DependencyRecord,
    DependencyState,
    WalkResult,
)
from pkgtrail.engines.dependency_analyzer.state import apply_changes, diff

__all__ = [
    "AnalysisResult",
    "Change",
    "CommitAnalyzer",
    "DependencyEntry",
    "DependencyRecord",
    "DependencyState",
    "WalkResult",
    "apply_changes",
    "diff",
]
