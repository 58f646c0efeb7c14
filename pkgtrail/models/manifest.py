"""manifests table."""

from sqlalchemy import Enum, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from pkgtrail.core.database import Base

manifest_kind_enum = Enum(
    "manifest", "lockfile", name="manifest_kind", native_enum=False, create_constraint=True
)


class Manifest(Base):
    __tablename__ = "manifests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    path: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    ecosystem: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(manifest_kind_enum, nullable=False)
