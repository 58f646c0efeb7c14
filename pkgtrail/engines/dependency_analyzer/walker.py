"""HistoryWalker — drive the commit analyzer along a branch's first-parent history."""

from __future__ import annotations

from contextlib import aclosing

import structlog

from pkgtrail.core.database import Database
from pkgtrail.core.git import CommitRef, GitRepository
from pkgtrail.engines.dependency_analyzer.analyzer import CommitAnalyzer
from pkgtrail.engines.dependency_analyzer.models import DependencyState, WalkResult
from pkgtrail.services import NotFoundError
from pkgtrail.services.checkpoint_service import CheckpointService

log = structlog.get_logger("pkgtrail.walker")

DEFAULT_CHECKPOINT_INTERVAL = 50


class HistoryWalker:
    """Incrementally analyze a branch and persist deltas and checkpoints.

    Each commit is persisted in its own transaction together with the move
    of the branch's last analyzed commit, so the walk can be interrupted
    between commits and resumed later without duplicating or missing work.
    """

    def __init__(
        self,
        repo: GitRepository,
        store: CheckpointService,
        analyzer: CommitAnalyzer | None = None,
        checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL,
    ) -> None:
        self._repo = repo
        self._store = store
        self._analyzer = analyzer or CommitAnalyzer(repo)
        self._checkpoint_interval = checkpoint_interval

    async def walk(self, db: Database, branch_name: str) -> WalkResult:
        """Analyze every commit on *branch_name* not yet processed.

        Raises :class:`NotFoundError` if the branch does not exist in git.
        Storage errors propagate after the failing commit's transaction is
        rolled back.
        """
        if not await self._repo.branch_exists(branch_name):
            raise NotFoundError(f"branch {branch_name!r} not found")

        result = WalkResult(branch=branch_name)

        async with db.session() as session:
            branch = await self._store.get_or_create_branch(session, branch_name)
            branch_id = branch.id
            last = await self._store.last_analyzed_commit(session, branch)
            position = await self._store.max_position(session, branch_id)
            since = last.sha if last else None
            if last is None:
                state: DependencyState = {}
            else:
                last_position = await self._store.position_of(session, branch_id, last.id)
                state = await self._store.state_at_position(session, branch_id, last_position or 0)

        log.info("walker.started", branch=branch_name, resume_from=since and since[:7])

        tip: CommitRef | None = None
        since_checkpoint = 0
        commits = aclosing(self._repo.commits_on_branch(branch_name, since=since))
        async with commits as refs:
            async for ref in refs:
                position += 1
                analysis = await self._analyzer.analyze(ref, state)
                changes = analysis.changes if analysis else None

                async with db.session() as session:
                    commit = await self._store.record_commit(
                        session, branch_id, ref, position, changes=changes
                    )
                    if changes:
                        since_checkpoint += 1
                    interval = self._checkpoint_interval
                    if changes and interval and since_checkpoint >= interval:
                        if await self._store.write_checkpoint(
                            session, branch_id, commit.id, analysis.state
                        ):
                            result.checkpoints_written += 1
                        since_checkpoint = 0

                result.commits_walked += 1
                if ref.is_merge:
                    result.merges_skipped += 1
                if changes:
                    result.commits_with_changes += 1
                    result.changes_recorded += len(changes)
                if analysis is not None:
                    state = analysis.state
                tip = ref

                log.debug(
                    "walker.commit_analyzed",
                    branch=branch_name,
                    sha=ref.short_sha,
                    position=position,
                    changes=len(changes or ()),
                )

        async with db.session() as session:
            branch = await self._store.get_branch(session, branch_name)
            last = await self._store.last_analyzed_commit(session, branch)
            if last is not None:
                # The newest analyzed commit is always a checkpoint after a walk
                if await self._store.write_checkpoint(session, branch_id, last.id, state):
                    result.checkpoints_written += 1
                result.tip = last.sha

        log.info(
            "walker.finished",
            branch=branch_name,
            commits=result.commits_walked,
            with_changes=result.commits_with_changes,
            merges_skipped=result.merges_skipped,
            changes=result.changes_recorded,
            checkpoints=result.checkpoints_written,
            tip=tip.short_sha if tip else None,
        )
        return result
