"""SQLAlchemy ORM models — one file per table."""

from pkgtrail.models.branch import Branch
from pkgtrail.models.branch_checkpoint import BranchCheckpoint
from pkgtrail.models.branch_commit import BranchCommit
from pkgtrail.models.commit import Commit
from pkgtrail.models.dependency_change import DependencyChange
from pkgtrail.models.dependency_snapshot import DependencySnapshot
from pkgtrail.models.manifest import Manifest
from pkgtrail.models.package import Package, PackageVersion

__all__ = [
    "Branch",
    "BranchCheckpoint",
    "BranchCommit",
    "Commit",
    "DependencyChange",
    "DependencySnapshot",
    "Manifest",
    "Package",
    "PackageVersion",
]
