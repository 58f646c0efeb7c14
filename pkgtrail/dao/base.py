"""Generic base DAO — CRUD (ORM), insert-or-ignore (Core), history ordering."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select, and_, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from pkgtrail.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)

# Rows per INSERT statement; keeps SQLite under its bound-parameter limit
_INSERT_CHUNK = 500


@dataclass(frozen=True)
class HistoryPoint:
    """Position of a commit in analysis order.

    Ordered by committed time first, then by the commit's position in the
    branch walk. ``position`` is None for commits that are not members of the
    branch being queried; such points compare by timestamp only.
    """

    committed_at: datetime
    position: int | None = None


def after_point(point: HistoryPoint, ts_col: Any, pos_col: Any) -> ColumnElement[bool]:
    """SQL condition: row is strictly later than *point*."""
    if point.position is None:
        return ts_col > point.committed_at
    return or_(
        ts_col > point.committed_at,
        and_(ts_col == point.committed_at, pos_col > point.position),
    )


def upto_point(point: HistoryPoint, ts_col: Any, pos_col: Any) -> ColumnElement[bool]:
    """SQL condition: row is at or before *point*."""
    if point.position is None:
        return ts_col <= point.committed_at
    return or_(
        ts_col < point.committed_at,
        and_(ts_col == point.committed_at, pos_col <= point.position),
    )


def dialect_insert(session: AsyncSession, table: Any):
    """Return a dialect-specific INSERT supporting ON CONFLICT clauses."""
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"upsert not supported for dialect {name!r}")


class BaseDAO(Generic[ModelT]):
    """Base data-access object. Subclasses set ``model`` class attribute."""

    model: type[ModelT]

    # ── ORM methods ──────────────────────────────────────────────────────

    @staticmethod
    def _require_pk(pk: int) -> None:
        """Raise ValueError if *pk* is None."""
        if pk is None:
            raise ValueError("pk must not be None")

    async def get_by_id(self, session: AsyncSession, pk: int) -> ModelT | None:
        self._require_pk(pk)
        return await session.get(self.model, pk)

    async def get_by_field(self, session: AsyncSession, **filters: Any) -> ModelT | None:
        """Return the first row matching all *filters*, or None.

        Usage::

            branch = await dao.get_by_field(session, name="main")

        Raises ``ValueError`` if called without any filters.
        """
        if not filters:
            raise ValueError("get_by_field() requires at least one filter")
        stmt = select(self.model)
        for key, val in filters.items():
            stmt = stmt.where(getattr(self.model, key) == val)
        result = await session.execute(stmt)
        return result.scalars().first()

    # ── Core methods ─────────────────────────────────────────────────────

    async def insert_ignore(
        self,
        session: AsyncSession,
        rows: list[dict[str, Any]],
        index_elements: list[str],
        table: Any = None,
    ) -> int:
        """INSERT ... ON CONFLICT (*index_elements*) DO NOTHING.

        Rows go to *table* when given (association tables without their own
        DAO), otherwise to the model's table.

        This is the only creation path for rows with a natural key, so two
        writers racing on the same key never produce duplicates. Returns the
        number of rows actually inserted.
        """
        target = table if table is not None else self.model.__table__
        inserted = 0
        for start in range(0, len(rows), _INSERT_CHUNK):
            chunk = rows[start : start + _INSERT_CHUNK]
            stmt = dialect_insert(session, target).values(chunk)
            stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
            result = await session.execute(stmt)
            inserted += max(result.rowcount or 0, 0)
        return inserted

    async def count(self, session: AsyncSession, query: Select | None = None) -> int:
        """Return the row count for *query*, or total rows if query is None."""
        if query is None:
            query = select(func.count()).select_from(self.model.__table__)
        else:
            query = select(func.count()).select_from(query.subquery())

        result = await session.execute(query)
        return result.scalar_one()
