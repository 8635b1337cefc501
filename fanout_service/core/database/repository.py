"""Minimal generic repository for SQLAlchemy models.

Provides basic query helpers with explicit session passing.
For complex queries, use the session directly - this is a convenience, not a cage.

Example:
    from fanout_service.core.database import BaseRepository

    class RecipientRepository(BaseRepository[Recipient]):
        async def find_active(self, session: AsyncSession) -> Sequence[Recipient]:
            stmt = select(Recipient).where(Recipient.is_active.is_(True))
            result = await session.execute(stmt)
            return result.scalars().all()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy import delete as sql_delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from fanout_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from sqlalchemy import ColumnElement, Row
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class SearchResult(Generic[T]):
    """Paginated search result container.

    Attributes:
        items: List of items for current page
        total: Total count across all pages
        limit: Page size
        offset: Current offset
    """

    items: Sequence[T]
    total: int
    limit: int
    offset: int

    @property
    def has_next(self) -> bool:
        """Whether there are more pages after current."""
        return self.offset + len(self.items) < self.total

    @property
    def has_prev(self) -> bool:
        """Whether there are pages before current."""
        return self.offset > 0


class BaseRepository(Generic[T]):
    """Minimal generic repository.

    Provides:
        - get(session, id) -> T | None
        - get_by(session, attr, value) -> T | None
        - get_many(session, ids) -> Sequence[T]
        - search(session, statement, limit, offset) -> SearchResult[T]
        - create(session, instance) -> T
        - insert_ignore_many(session, values, ...) -> Sequence[Row]
        - delete_where(session, *criteria) -> int

    Session is always explicit - no hidden state.
    """

    __slots__ = ("model", "_logger", "_lazy")

    def __init__(self, model: type[T]) -> None:
        """Initialize repository with model class.

        Args:
            model: SQLAlchemy model class
        """
        self.model = model
        # Standard logger for INFO/WARNING/ERROR
        self._logger = logging.getLogger(f"repository.{model.__name__}")
        # Lazy logger for DEBUG (zero overhead when DEBUG disabled)
        self._lazy = get_lazy_logger(f"repository.{model.__name__}")

    async def get_many(self, session: AsyncSession, ids: Iterable[Any]) -> Sequence[T]:
        """Load every entity whose primary key is in ``ids`` with one query.

        Missing keys are silently absent from the result.
        """
        ids_list = list(ids)
        if not ids_list:
            return []
        stmt = select(self.model).where(self._pk_attr().in_(ids_list))
        result = await session.execute(stmt)
        items = result.scalars().all()

        self._lazy.debug(
            lambda: f"db.get_many: {self.model.__name__}({len(ids_list)} ids) -> {len(items)} found"
        )
        return items

    async def search(
        self,
        session: AsyncSession,
        statement: Select[tuple[T]],
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> SearchResult[T]:
        """Execute paginated search with total count.

        Takes a pre-built statement (with filters and ordering applied) and
        adds pagination.

        Args:
            session: Database session
            statement: SQLAlchemy select statement
            limit: Page size
            offset: Results to skip

        Returns:
            SearchResult with items and total count
        """
        count_stmt = select(func.count()).select_from(statement.order_by(None).subquery())
        total = (await session.execute(count_stmt)).scalar_one()

        paginated = statement.limit(limit).offset(offset)
        result = await session.execute(paginated)
        items = result.scalars().all()

        self._lazy.debug(
            lambda: f"db.search: {self.model.__name__}(limit={limit}, offset={offset}) -> {len(items)}/{total} items"
        )
        return SearchResult(items=items, total=total, limit=limit, offset=offset)

    async def insert_ignore_many(
        self,
        session: AsyncSession,
        values: Sequence[Mapping[str, Any]],
        *,
        conflict_columns: Sequence[str],
        returning: Sequence[InstrumentedAttribute[Any]],
    ) -> Sequence[Row[Any]]:
        """Insert rows, skipping any that collide on ``conflict_columns``.

        Uses ``INSERT ... ON CONFLICT DO NOTHING RETURNING`` so the result
        holds only the rows this statement actually wrote. A row that already
        existed, or that a concurrent writer committed first, is absent.

        Args:
            session: Database session
            values: Column/value mappings, one per row
            conflict_columns: Columns of the unique constraint to guard on
            returning: Columns to return for each inserted row

        Returns:
            Returned rows for the inserted subset
        """
        if not values:
            return []

        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(self.model).values(list(values))
        elif dialect == "sqlite":
            stmt = sqlite_insert(self.model).values(list(values))
        else:
            msg = f"insert_ignore_many is not supported on dialect {dialect!r}"
            raise NotImplementedError(msg)

        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
        result = await session.execute(stmt.returning(*returning))
        rows = result.all()

        skipped = len(values) - len(rows)
        self._lazy.debug(
            lambda: f"db.insert_ignore_many: {self.model.__name__} -> {len(rows)} inserted, {skipped} skipped"
        )
        return rows

    async def delete_where(self, session: AsyncSession, *criteria: ColumnElement[bool]) -> int:
        """Delete every row matching ``criteria`` with one statement.

        Returns:
            Number of rows deleted
        """
        stmt = sql_delete(self.model).where(*criteria)
        result = await session.execute(stmt)
        deleted_count: int = result.rowcount if result.rowcount is not None and result.rowcount >= 0 else 0

        # WARNING level for bulk deletes > 10 (audit-worthy)
        if deleted_count > 10:
            self._logger.warning(
                "Bulk delete executed",
                extra={
                    "entity": self.model.__name__,
                    "deleted": deleted_count,
                    "operation": "db.delete_where",
                },
            )
        else:
            self._lazy.debug(
                lambda: f"db.delete_where: {self.model.__name__} -> {deleted_count} deleted"
            )
        return deleted_count

    def _pk_attr(self) -> InstrumentedAttribute[Any]:
        """Get the ``id`` attribute used as primary key by every model here."""
        attr = getattr(self.model, "id", None)
        if attr is None:
            raise AttributeError(f"{self.model.__name__} has no 'id' attribute")
        return attr


__all__ = [
    "BaseRepository",
    "SearchResult",
]
