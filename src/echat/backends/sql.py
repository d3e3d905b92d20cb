"""Row-store driver for the global region (SQLAlchemy async)."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import Table, and_, delete, insert, or_, select, text, true, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.sql.elements import ColumnElement

from echat.backends.base import BackendClient, Document, new_id
from echat.backends.filters import AnyOf, Cond, Filter, Order, conditions
from echat.db.base import Base
from echat.db.models import COLLECTIONS
from echat.errors import StorageError
from echat.region.models import Region

logger = structlog.get_logger()


def _aware(value: Any) -> Any:  # noqa: ANN401
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SqlBackend(BackendClient):
    """BackendClient over a relational database, one table per collection."""

    region = Region.GLOBAL
    driver_errors = (SQLAlchemyError, OSError)

    def __init__(self, engine: AsyncEngine, timeout: float = 5.0) -> None:
        super().__init__(timeout=timeout)
        self.engine = engine

    @classmethod
    def from_url(cls, url: str, pool_size: int = 10, timeout: float = 5.0) -> SqlBackend:
        """Create an engine for ``url``. Pool options are skipped for SQLite."""
        kwargs: dict[str, Any] = {"echo": False}
        if not url.startswith("sqlite"):
            kwargs.update(pool_size=pool_size, max_overflow=pool_size, pool_pre_ping=True)
        return cls(create_async_engine(url, **kwargs), timeout=timeout)

    async def create_schema(self) -> None:
        """Create every table. Development and tests only; production uses Alembic."""
        async with self._guard("create_schema", "*"), self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # ------------------------------------------------------------------
    # Statement helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _table(collection: str) -> Table:
        model = COLLECTIONS.get(collection)
        if model is None:
            msg = f"Unknown collection: {collection}"
            raise StorageError(msg)
        return model.__table__  # type: ignore[return-value]

    @staticmethod
    def _values(table: Table, doc: Mapping[str, Any]) -> dict[str, Any]:
        return {key: value for key, value in doc.items() if key in table.c}

    @staticmethod
    def _row(row: Any) -> Document:  # noqa: ANN401
        return {key: _aware(value) for key, value in row._mapping.items()}

    @staticmethod
    def _column(table: Table, field: str) -> Any:  # noqa: ANN401
        if field not in table.c:
            msg = f"Unknown field {field!r} on {table.name}"
            raise StorageError(msg)
        return table.c[field]

    def _clause(self, table: Table, clause: Mapping[str, Any]) -> ColumnElement[bool]:
        parts: list[ColumnElement[bool]] = []
        for field, cond in conditions(clause):
            parts.append(self._compile(self._column(table, field), cond))
        return and_(*parts) if parts else true()

    @staticmethod
    def _compile(column: Any, cond: Cond) -> ColumnElement[bool]:  # noqa: ANN401, PLR0911
        if cond.op == "eq":
            return column.is_(None) if cond.value is None else column == cond.value
        if cond.op == "ne":
            return column.is_not(None) if cond.value is None else column != cond.value
        if cond.op == "in":
            return column.in_(list(cond.value))
        if cond.op == "gt":
            return column > cond.value
        if cond.op == "gte":
            return column >= cond.value
        if cond.op == "lt":
            return column < cond.value
        if cond.op == "lte":
            return column <= cond.value
        msg = f"Unsupported filter operator: {cond.op}"
        raise StorageError(msg)

    def _where(self, table: Table, filter_: Filter) -> ColumnElement[bool] | None:
        if filter_ is None:
            return None
        if isinstance(filter_, AnyOf):
            return or_(*(self._clause(table, clause) for clause in filter_.clauses))
        if not filter_:
            return None
        return self._clause(table, filter_)

    # ------------------------------------------------------------------
    # BackendClient
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Document | None:
        table = self._table(collection)
        async with self._guard("get", collection), self.engine.connect() as conn:
            result = await conn.execute(select(table).where(table.c.id == doc_id))
            row = result.first()
        return self._row(row) if row is not None else None

    async def query(
        self,
        collection: str,
        filter_: Filter = None,
        order: Order | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        table = self._table(collection)
        stmt = select(table)
        where = self._where(table, filter_)
        if where is not None:
            stmt = stmt.where(where)
        if order is not None:
            column = self._column(table, order.field)
            stmt = stmt.order_by(column.desc() if order.descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._guard("query", collection), self.engine.connect() as conn:
            result = await conn.execute(stmt)
            rows = result.all()
        return [self._row(row) for row in rows]

    async def insert(self, collection: str, doc: Mapping[str, Any]) -> Document:
        table = self._table(collection)
        values = self._values(table, doc)
        values.setdefault("id", new_id())
        async with self._guard("insert", collection), self.engine.begin() as conn:
            result = await conn.execute(insert(table).values(**values).returning(*table.c))
            row = result.one()
        return self._row(row)

    async def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Document | None:
        table = self._table(collection)
        values = self._values(table, patch)
        values.pop("id", None)
        if not values:
            return await self.get(collection, doc_id)
        stmt = update(table).where(table.c.id == doc_id).values(**values).returning(*table.c)
        async with self._guard("update", collection), self.engine.begin() as conn:
            result = await conn.execute(stmt)
            row = result.first()
        return self._row(row) if row is not None else None

    async def delete(self, collection: str, doc_id: str) -> bool:
        table = self._table(collection)
        async with self._guard("delete", collection), self.engine.begin() as conn:
            result = await conn.execute(delete(table).where(table.c.id == doc_id))
        return bool(result.rowcount)

    async def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> int | None:
        table = self._table(collection)
        column = self._column(table, field)
        stmt = (
            update(table)
            .where(table.c.id == doc_id)
            .values({column: column + amount})
            .returning(column)
        )
        async with self._guard("increment", collection), self.engine.begin() as conn:
            result = await conn.execute(stmt)
            value = result.scalar_one_or_none()
        return int(value) if value is not None else None

    async def ping(self) -> None:
        async with self._guard("ping", "*"), self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("storage_closed", region=self.region.value)
