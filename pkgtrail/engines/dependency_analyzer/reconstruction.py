"""Point-in-time reconstruction of a branch's dependency state.

The nearest checkpoint at or before the target (by committed time, walk
position breaking ties) provides the base state; the branch's deltas after
it, up to and including the target, are replayed forward. Without any such
checkpoint the replay starts from the empty state at the branch start.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.dao.base import HistoryPoint
from pkgtrail.engines.dependency_analyzer.models import DependencyState
from pkgtrail.engines.dependency_analyzer.state import apply_changes
from pkgtrail.models.branch import Branch
from pkgtrail.models.commit import Commit
from pkgtrail.services.checkpoint_service import CheckpointService

log = structlog.get_logger("pkgtrail.reconstruction")


async def state_at(
    session: AsyncSession,
    store: CheckpointService,
    branch: Branch,
    target: Commit,
) -> DependencyState:
    """Exact dependency state of *branch* as of *target*.

    *target* need not be a member of the branch; in that case it is placed
    in history by its committed time alone.
    """
    position = await store.position_of(session, branch.id, target.id)
    upto = HistoryPoint(target.committed_at, position)

    base = await store.nearest_checkpoint(session, branch.id, upto)
    if base is None:
        state: DependencyState = {}
        after = None
    else:
        checkpoint, checkpoint_position = base
        state = await store.snapshot_state(session, checkpoint.id)
        if checkpoint.id == target.id:
            return state
        after = HistoryPoint(checkpoint.committed_at, checkpoint_position)

    changes = await store.changes_between(session, branch.id, upto=upto, after=after)
    log.debug(
        "reconstruction.replayed",
        branch=branch.name,
        target=target.short_sha,
        base=base[0].short_sha if base else None,
        changes=len(changes),
    )
    return apply_changes(state, changes)
