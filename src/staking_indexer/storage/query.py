"""Typed relational query helpers over an async SQLAlchemy session.

Predicates are explicit values tagged with an operator instead of
dictionaries whose shape decides the SQL. ``QueryStore`` exposes the small
set of table operations the indexer needs: select, insert, chunked batch
insert, update and count.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


class PersistenceError(Exception):
    """Raised when a storage operation fails."""


class Operator(str, Enum):
    """Comparison operators supported in predicates."""

    EQ = "="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    NE = "!="
    LIKE = "LIKE"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


class JoinType(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    FULL = "FULL"


@dataclass(frozen=True)
class Predicate:
    """A single ``field <op> value`` condition.

    ``field`` is a column name of the queried table, or ``table.column`` for a
    joined table. ``value`` is ignored for the null checks.
    """

    field: str
    op: Operator
    value: Any = None

    def compile(self, columns: _ColumnResolver) -> ColumnElement[bool]:
        column = columns.resolve(self.field)
        if self.op is Operator.EQ:
            return column == self.value
        if self.op is Operator.NE:
            return column != self.value
        if self.op is Operator.GT:
            return column > self.value
        if self.op is Operator.LT:
            return column < self.value
        if self.op is Operator.GE:
            return column >= self.value
        if self.op is Operator.LE:
            return column <= self.value
        if self.op is Operator.LIKE:
            return column.like(self.value)
        if self.op is Operator.IS_NULL:
            return column.is_(None)
        if self.op is Operator.IS_NOT_NULL:
            return column.is_not(None)
        raise ValueError(f"Unsupported operator: {self.op}")


def eq(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.EQ, value)


def ne(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.NE, value)


def gt(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.GT, value)


def lt(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.LT, value)


def ge(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.GE, value)


def le(field: str, value: Any) -> Predicate:
    return Predicate(field, Operator.LE, value)


def like(field: str, pattern: str) -> Predicate:
    return Predicate(field, Operator.LIKE, pattern)


def is_null(field: str) -> Predicate:
    return Predicate(field, Operator.IS_NULL)


def is_not_null(field: str) -> Predicate:
    return Predicate(field, Operator.IS_NOT_NULL)


@dataclass(frozen=True)
class Join:
    """Join ``table`` on ``left = right`` (both written as ``table.column``)."""

    table: Any
    left: str
    right: str
    kind: JoinType = JoinType.INNER


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


def _as_table(table: Any) -> sa.Table:
    """Accept a mapped model class or a Core table."""
    if isinstance(table, sa.Table):
        return table
    mapped = getattr(table, "__table__", None)
    if isinstance(mapped, sa.Table):
        return mapped
    raise TypeError(f"Not a table or mapped model: {table!r}")


class _ColumnResolver:
    """Resolve plain or ``table.column`` names against the tables in a query."""

    def __init__(self, base: sa.Table, joined: Sequence[sa.Table] = ()) -> None:
        self._base = base
        self._tables = {t.name: t for t in (base, *joined)}

    def resolve(self, name: str) -> sa.ColumnElement[Any]:
        if "." in name:
            table_name, column_name = name.split(".", 1)
            table = self._tables.get(table_name)
            if table is None:
                raise ValueError(f"Unknown table in field reference: {name}")
        else:
            table, column_name = self._base, name
        try:
            return table.c[column_name]
        except KeyError:
            raise ValueError(f"Unknown column {column_name!r} on table {table.name!r}") from None


class QueryStore:
    """Table-level query operations bound to an async session.

    Writes are flushed through the session; committing is left to the owner
    of the session (see ``DatabaseManager.get_async_session``).

    Example:
        ```python
        async with db.get_async_session() as session:
            store = QueryStore(session)
            rows = await store.select(
                EventRecordModel,
                where=[eq("processed_flag", 0)],
                order_by=[OrderBy("id")],
                limit=10,
            )
        ```
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _execute(self, statement: Any, params: Any = None) -> Any:
        try:
            if params is None:
                return await self.session.execute(statement)
            return await self.session.execute(statement, params)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    async def select(
        self,
        table: Any,
        *,
        fields: Sequence[str] | None = None,
        where: Sequence[Predicate] = (),
        joins: Sequence[Join] = (),
        group_by: Sequence[str] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select rows as dictionaries keyed by column name."""
        base = _as_table(table)
        joined = [_as_table(j.table) for j in joins]
        columns = _ColumnResolver(base, joined)

        if fields:
            stmt = sa.select(*(columns.resolve(f) for f in fields))
        else:
            stmt = sa.select(base)

        from_clause: Any = base
        for join, join_table in zip(joins, joined, strict=True):
            onclause = columns.resolve(join.left) == columns.resolve(join.right)
            from_clause = from_clause.join(
                join_table,
                onclause,
                isouter=join.kind in (JoinType.LEFT, JoinType.FULL),
                full=join.kind is JoinType.FULL,
            )
        stmt = stmt.select_from(from_clause)

        if where:
            stmt = stmt.where(*(p.compile(columns) for p in where))
        if group_by:
            stmt = stmt.group_by(*(columns.resolve(f) for f in group_by))
        for order in order_by:
            column = columns.resolve(order.field)
            stmt = stmt.order_by(column.desc() if order.descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)

        result = await self._execute(stmt)
        return [dict(row._mapping) for row in result]

    async def insert(self, table: Any, values: Mapping[str, Any]) -> int:
        """Insert one row and return its generated primary key."""
        result = await self._execute(sa.insert(_as_table(table)).values(**values))
        await self.session.flush()
        return int(result.inserted_primary_key[0])

    async def insert_batch(
        self,
        table: Any,
        rows: Sequence[Mapping[str, Any]],
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        """Insert rows in chunks of ``batch_size`` per statement.

        Returns the number of rows submitted, for portability across dialects
        that do not report executemany row counts.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if not rows:
            return 0

        stmt = sa.insert(_as_table(table))
        submitted = 0
        for start in range(0, len(rows), batch_size):
            chunk = [dict(r) for r in rows[start : start + batch_size]]
            await self._execute(stmt, chunk)
            submitted += len(chunk)
            logger.debug("Inserted chunk of %d rows into %s", len(chunk), _as_table(table).name)
        await self.session.flush()
        return submitted

    async def update(
        self,
        table: Any,
        values: Mapping[str, Any],
        *,
        where: Sequence[Predicate] = (),
    ) -> int:
        """Update rows matching all predicates; returns the affected row count."""
        base = _as_table(table)
        columns = _ColumnResolver(base)
        stmt = sa.update(base).values(**values)
        if where:
            stmt = stmt.where(*(p.compile(columns) for p in where))
        result = await self._execute(stmt)
        await self.session.flush()
        return int(result.rowcount or 0)

    async def count(self, table: Any, *, where: Sequence[Predicate] = ()) -> int:
        """Count rows matching all predicates."""
        base = _as_table(table)
        columns = _ColumnResolver(base)
        stmt = sa.select(sa.func.count()).select_from(base)
        if where:
            stmt = stmt.where(*(p.compile(columns) for p in where))
        result = await self._execute(stmt)
        return int(result.scalar_one())
