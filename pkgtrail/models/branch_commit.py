"""branch_commits table — branch membership in first-parent walk order."""

from sqlalchemy import ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pkgtrail.core.database import Base


class BranchCommit(Base):
    __tablename__ = "branch_commits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False
    )
    commit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("branch_id", "commit_id", name="uq_branch_commits_branch_commit"),
        Index("idx_branch_commits_position", "branch_id", "position"),
        Index("idx_branch_commits_commit", "commit_id"),
    )
