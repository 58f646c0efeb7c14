"""packages and package_versions tables — cached registry metadata.

Rows are advisory: they are filled on a best-effort basis and carry an
``enriched_at`` timestamp so stale entries can be re-fetched.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from pkgtrail.core.database import Base, TimestampMixin, UTCDateTime, utcnow


def _is_stale(enriched_at: datetime | None, stale_after: timedelta, now: datetime | None) -> bool:
    if enriched_at is None:
        return True
    return enriched_at < (now or utcnow()) - stale_after


class Package(TimestampMixin, Base):
    __tablename__ = "packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purl: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    ecosystem: Mapped[Optional[str]] = mapped_column(Text)
    name: Mapped[Optional[str]] = mapped_column(Text)
    latest_version: Mapped[Optional[str]] = mapped_column(Text)
    license: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    homepage: Mapped[Optional[str]] = mapped_column(Text)
    repository_url: Mapped[Optional[str]] = mapped_column(Text)
    supplier_name: Mapped[Optional[str]] = mapped_column(Text)
    supplier_type: Mapped[Optional[str]] = mapped_column(Text)
    enriched_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    def needs_enrichment(self, stale_after: timedelta, now: datetime | None = None) -> bool:
        return _is_stale(self.enriched_at, stale_after, now)


class PackageVersion(TimestampMixin, Base):
    __tablename__ = "package_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purl: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    package_purl: Mapped[str] = mapped_column(Text, nullable=False)
    license: Mapped[Optional[str]] = mapped_column(Text)
    integrity: Mapped[Optional[str]] = mapped_column(Text)
    published_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    enriched_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    __table_args__ = (Index("idx_package_versions_package", "package_purl"),)

    def needs_enrichment(self, stale_after: timedelta, now: datetime | None = None) -> bool:
        return _is_stale(self.enriched_at, stale_after, now)
