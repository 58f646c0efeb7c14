"""dependency_snapshots table — full dependency state at a checkpoint commit."""

from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pkgtrail.core.database import Base
from pkgtrail.models.commit import Commit
from pkgtrail.models.manifest import Manifest


class DependencySnapshot(Base):
    __tablename__ = "dependency_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    commit_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("commits.id", ondelete="CASCADE"), nullable=False
    )
    manifest_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("manifests.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    ecosystem: Mapped[str] = mapped_column(Text, nullable=False)
    dependency_type: Mapped[Optional[str]] = mapped_column(Text)
    requirement: Mapped[Optional[str]] = mapped_column(Text)
    integrity: Mapped[Optional[str]] = mapped_column(Text)

    commit: Mapped[Commit] = relationship(lazy="raise")
    manifest: Mapped[Manifest] = relationship(lazy="raise")

    __table_args__ = (
        UniqueConstraint(
            "commit_id", "manifest_id", "name", name="uq_dependency_snapshots_commit_manifest_name"
        ),
        Index("idx_dependency_snapshots_commit", "commit_id"),
        Index("idx_dependency_snapshots_name", "name"),
    )
