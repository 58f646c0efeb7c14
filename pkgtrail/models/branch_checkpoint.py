"""branch_checkpoints table — which commits hold a full dependency snapshot.

A checkpoint with an empty dependency state has no snapshot rows, so the
index row is what marks the commit as a checkpoint.
"""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pkgtrail.core.database import Base, UTCDateTime, utcnow


class BranchCheckpoint(Base):
    __tablename__ = "branch_checkpoints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False
    )
    commit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    dependency_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("branch_id", "commit_id", name="uq_branch_checkpoints_branch_commit"),
        Index("idx_branch_checkpoints_commit", "commit_id"),
    )
