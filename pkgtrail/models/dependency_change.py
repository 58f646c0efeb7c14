"""dependency_changes table — append-only per-commit deltas."""

from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pkgtrail.core.database import Base
from pkgtrail.models.commit import Commit
from pkgtrail.models.manifest import Manifest

change_type_enum = Enum(
    "added", "modified", "removed", name="change_type", native_enum=False, create_constraint=True
)


class DependencyChange(Base):
    __tablename__ = "dependency_changes"

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
    change_type: Mapped[str] = mapped_column(change_type_enum, nullable=False)
    # removed rows keep the last known requirement for display
    requirement: Mapped[Optional[str]] = mapped_column(Text)
    previous_requirement: Mapped[Optional[str]] = mapped_column(Text)
    integrity: Mapped[Optional[str]] = mapped_column(Text)

    commit: Mapped[Commit] = relationship(lazy="raise")
    manifest: Mapped[Manifest] = relationship(lazy="raise")

    __table_args__ = (
        UniqueConstraint(
            "commit_id", "manifest_id", "name", name="uq_dependency_changes_commit_manifest_name"
        ),
        CheckConstraint(
            "previous_requirement IS NULL OR change_type = 'modified'",
            name="previous_only_when_modified",
        ),
        Index("idx_dependency_changes_name", "name"),
        Index("idx_dependency_changes_commit", "commit_id"),
    )
