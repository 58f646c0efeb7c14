"""commits table."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from pkgtrail.core.database import Base, UTCDateTime, utcnow


class Commit(Base):
    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sha: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text)
    author_name: Mapped[Optional[str]] = mapped_column(Text)
    author_email: Mapped[Optional[str]] = mapped_column(Text)
    committed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    has_dependency_changes: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_commits_committed_at", "committed_at"),)

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def subject(self) -> str:
        """First line of the commit message."""
        return (self.message or "").strip().split("\n", 1)[0].strip()
