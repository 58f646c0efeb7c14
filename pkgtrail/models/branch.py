"""branches table."""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from pkgtrail.core.database import Base, TimestampMixin


class Branch(TimestampMixin, Base):
    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    # Tip already processed; only the history walker moves it forward.
    last_analyzed_commit_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("commits.id", ondelete="SET NULL")
    )
