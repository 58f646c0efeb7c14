"""Dependency wiring — DAO and service singletons.

DAOs and services are stateless; every call takes the session explicitly,
so sharing one instance of each across the process is safe.
"""

from __future__ import annotations

from datetime import timedelta

from pkgtrail.core.git import GitRepository
from pkgtrail.dao.branch_dao import BranchDAO
from pkgtrail.dao.checkpoint_dao import CheckpointDAO
from pkgtrail.dao.commit_dao import CommitDAO
from pkgtrail.dao.dependency_change_dao import DependencyChangeDAO
from pkgtrail.dao.dependency_snapshot_dao import DependencySnapshotDAO
from pkgtrail.dao.manifest_dao import ManifestDAO
from pkgtrail.dao.package_dao import PackageDAO, PackageVersionDAO
from pkgtrail.engines.dependency_analyzer.walker import HistoryWalker
from pkgtrail.services.checkpoint_service import CheckpointService
from pkgtrail.services.enrichment_service import EnrichmentService
from pkgtrail.services.history_service import HistoryService
from pkgtrail.services.integrity_service import IntegrityService
from pkgtrail.services.stats_service import StatsService

# ---------------------------------------------------------------------------
# DAO singletons
# ---------------------------------------------------------------------------
commit_dao = CommitDAO()
branch_dao = BranchDAO()
manifest_dao = ManifestDAO()
change_dao = DependencyChangeDAO()
snapshot_dao = DependencySnapshotDAO()
checkpoint_dao = CheckpointDAO()
package_dao = PackageDAO()
package_version_dao = PackageVersionDAO()

# ---------------------------------------------------------------------------
# Service singletons
# ---------------------------------------------------------------------------
checkpoint_service = CheckpointService(
    commit_dao, branch_dao, manifest_dao, change_dao, snapshot_dao, checkpoint_dao
)
history_service = HistoryService(commit_dao, change_dao, checkpoint_service)
stats_service = StatsService(branch_dao, change_dao, manifest_dao, history_service)
integrity_service = IntegrityService(change_dao, history_service)


def enrichment_service(stale_seconds: int) -> EnrichmentService:
    return EnrichmentService(
        package_dao, package_version_dao, stale_after=timedelta(seconds=stale_seconds)
    )


def history_walker(repo: GitRepository, checkpoint_interval: int) -> HistoryWalker:
    return HistoryWalker(repo, checkpoint_service, checkpoint_interval=checkpoint_interval)
