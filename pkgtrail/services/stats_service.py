"""StatsService — repository-wide dependency statistics."""

from __future__ import annotations

from collections import Counter

from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.dao.branch_dao import BranchDAO
from pkgtrail.dao.dependency_change_dao import DependencyChangeDAO
from pkgtrail.dao.manifest_dao import ManifestDAO
from pkgtrail.services import NotFoundError
from pkgtrail.services.history_service import HistoryService


class StatsService:
    """Stateless service for the ``stats`` report."""

    def __init__(
        self,
        branch_dao: BranchDAO,
        change_dao: DependencyChangeDAO,
        manifest_dao: ManifestDAO,
        history_service: HistoryService,
    ) -> None:
        self._branch_dao = branch_dao
        self._change_dao = change_dao
        self._manifest_dao = manifest_dao
        self._history = history_service

    async def collect(self, session: AsyncSession, branch_name: str) -> dict:
        """Return aggregated stats; an unknown branch reports zero commits."""
        data: dict = {
            "branch": branch_name,
            "commits_analyzed": 0,
            "commits_with_changes": 0,
            "current_dependencies": {},
            "changes": {},
            "most_changed": [],
            "manifests": [],
        }

        branch = await self._branch_dao.get_by_name(session, branch_name)
        if branch is not None:
            data["commits_analyzed"] = await self._branch_dao.count_commits(session, branch.id)
            data["commits_with_changes"] = await self._branch_dao.count_commits(
                session, branch.id, with_changes=True
            )
            try:
                _, state = await self._history.current_state(session, branch_name)
            except NotFoundError:
                state = None
            if state is not None:
                entries = list(state.values())
                data["current_dependencies"] = {
                    "total": len(entries),
                    "by_ecosystem": dict(Counter(e.ecosystem for e in entries).most_common()),
                    "by_type": dict(Counter(e.dependency_type for e in entries).most_common()),
                }

        data["changes"] = {
            "total": await self._change_dao.count(session),
            "by_type": await self._change_dao.count_by_type(session),
        }
        data["most_changed"] = await self._change_dao.most_changed(session, limit=10)
        data["manifests"] = [
            {"path": manifest.path, "ecosystem": manifest.ecosystem, "changes": count}
            for manifest, count in await self._manifest_dao.list_with_change_counts(session)
        ]
        return data
