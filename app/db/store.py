"""
Data access layer — generic operations over named collections.

Every manager talks to the database through :class:`DataStore` only:
equality-filtered reads with ordering and limits, insert, update-by-filter,
delete-by-filter, upsert-by-conflict-key and named remote procedures.

Each mutation commits on its own (last write wins) unless it runs inside
:meth:`DataStore.transaction`.  Database failures are translated into the
application error taxonomy: unique-key violations become
:class:`ConflictError`, everything else :class:`UpstreamError`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFound, UpstreamError
from app.db.base import Base
from app.db.realtime import DELETE, INSERT, UPDATE, Change, ChangeFeed, change_feed
from app.models.attendance import DailyAttendance
from app.models.notice import Notice, NoticeCategory, NoticeTag, NoticeTagAssignment
from app.models.profile import Profile
from app.models.task import Task, TaskAssignment, TaskComment
from app.models.user import Account

logger = logging.getLogger(__name__)

COLLECTIONS: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (
        Account,
        Profile,
        Task,
        TaskAssignment,
        TaskComment,
        DailyAttendance,
        Notice,
        NoticeCategory,
        NoticeTag,
        NoticeTagAssignment,
    )
}

Filters = Mapping[str, Any]


def row_to_dict(row: Base) -> dict[str, Any]:
    return {c.key: getattr(row, c.key) for c in row.__table__.columns}


class DataStore:
    def __init__(self, session: AsyncSession, feed: ChangeFeed | None = None) -> None:
        self.session = session
        self.feed = feed if feed is not None else change_feed
        self._depth = 0
        self._pending: list[Change] = []

    # ── Helpers ──────────────────────────────────────────────────────
    @staticmethod
    def model(table: str) -> type[Base]:
        try:
            return COLLECTIONS[table]
        except KeyError:
            raise NotFound(f"Unknown collection '{table}'") from None

    @staticmethod
    def _where(model: type[Base], filters: Filters | None) -> list:
        clauses = []
        for name, value in (filters or {}).items():
            column = getattr(model, name)
            if isinstance(value, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    @staticmethod
    def _order(model: type[Base], order_by: Sequence[str]) -> list:
        """``"name"`` sorts ascending, ``"-name"`` descending; NULLs go last."""
        terms = []
        for key in order_by:
            column = getattr(model, key.lstrip("-"))
            term = column.desc() if key.startswith("-") else column.asc()
            terms.append(term.nulls_last())
        return terms

    def _dialect_insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise UpstreamError(f"Upsert is not supported on '{dialect}'")
        return insert

    async def _rollback(self) -> None:
        self._pending.clear()
        await self.session.rollback()

    @asynccontextmanager
    async def _guard(self, action: str, table: str) -> AsyncIterator[None]:
        try:
            yield
        except IntegrityError as exc:
            await self._rollback()
            raise ConflictError(f"Duplicate or invalid key in '{table}'") from exc
        except SQLAlchemyError as exc:
            await self._rollback()
            logger.error("Store %s on %s failed: %s", action, table, exc)
            raise UpstreamError(f"Could not {action} '{table}'") from exc

    async def _finish(self, changes: Sequence[Change] = ()) -> None:
        """Flush inside a transaction, otherwise commit and notify."""
        self._pending.extend(changes)
        if self._depth:
            await self.session.flush()
            return
        await self.session.commit()
        self._publish()

    def _publish(self) -> None:
        pending, self._pending = self._pending, []
        for change in pending:
            self.feed.publish(change)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[DataStore]:
        """Group several mutations into one commit; nested calls join the outer one."""
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                await self._rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            async with self._guard("commit", "transaction"):
                await self.session.commit()
            self._publish()

    # ── Reads ────────────────────────────────────────────────────────
    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Any]:
        model = self.model(table)
        stmt = (
            select(model)
            .where(*self._where(model, filters))
            .order_by(*self._order(model, order_by))
            .execution_options(populate_existing=True)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._guard("read", table):
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def get(self, table: str, filters: Filters) -> Any | None:
        rows = await self.select(table, filters, limit=1)
        return rows[0] if rows else None

    async def one(self, table: str, filters: Filters, label: str | None = None) -> Any:
        """Like :meth:`get` but raises :class:`NotFound` when nothing matches."""
        row = await self.get(table, filters)
        if row is None:
            raise NotFound(f"{label or table} not found")
        return row

    async def execute(self, stmt: Any, table: str, action: str = "query") -> Any:
        """Run a raw statement (used by stored procedures)."""
        async with self._guard(action, table):
            return await self.session.execute(stmt)

    async def commit(self) -> None:
        async with self._guard("commit", "session"):
            await self._finish()

    # ── Writes ───────────────────────────────────────────────────────
    async def insert(self, table: str, values: Mapping[str, Any]) -> Any:
        model = self.model(table)
        row = model(**values)
        async with self._guard("insert into", table):
            self.session.add(row)
            await self.session.flush()
            await self._finish([Change(table, INSERT, row_to_dict(row))])
        return row

    async def insert_missing(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict: Sequence[str],
    ) -> None:
        """Insert *rows*, silently skipping any whose *conflict* key already exists."""
        model = self.model(table)
        insert = self._dialect_insert()
        async with self._guard("insert into", table):
            for values in rows:
                stmt = insert(model).values(**values).on_conflict_do_nothing(
                    index_elements=list(conflict)
                )
                await self.session.execute(stmt)
            await self._finish([Change(table, INSERT, dict(values)) for values in rows])

    async def update(self, table: str, values: Mapping[str, Any], filters: Filters) -> list[Any]:
        rows = await self.select(table, filters)
        async with self._guard("update", table):
            for row in rows:
                for name, value in values.items():
                    setattr(row, name, value)
            await self.session.flush()
            await self._finish([Change(table, UPDATE, row_to_dict(row)) for row in rows])
        return rows

    async def delete(self, table: str, filters: Filters) -> int:
        model = self.model(table)
        rows = await self.select(table, filters)
        if not rows:
            return 0
        snapshots = [row_to_dict(row) for row in rows]
        async with self._guard("delete from", table):
            await self.session.execute(
                sa_delete(model)
                .where(*self._where(model, filters))
                .execution_options(synchronize_session=False)
            )
            for row in rows:
                self.session.expunge(row)
            await self._finish([Change(table, DELETE, snap) for snap in snapshots])
        return len(rows)

    async def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        conflict: Sequence[str],
        update_columns: Sequence[str] | None = None,
    ) -> Any:
        """Atomic ``INSERT .. ON CONFLICT``.

        On conflict only *update_columns* are overwritten (default: every
        column in *values* that is not part of the key); an empty sequence
        leaves the existing row untouched.
        """
        model = self.model(table)
        insert = self._dialect_insert()
        if update_columns is None:
            update_columns = [k for k in values if k not in conflict]
        stmt = insert(model).values(**values)
        if update_columns:
            stmt = stmt.on_conflict_do_update(
                index_elements=list(conflict),
                set_={name: stmt.excluded[name] for name in update_columns},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict))
        async with self._guard("upsert into", table):
            await self.session.execute(stmt)
            await self.session.flush()
        row = await self.one(table, {k: values[k] for k in conflict})
        async with self._guard("upsert into", table):
            await self._finish([Change(table, UPDATE, row_to_dict(row))])
        return row

    # ── Remote procedures ───────────────────────────────────────────
    async def rpc(self, name: str, **params: Any) -> Any:
        from app.db.procedures import PROCEDURES

        try:
            procedure = PROCEDURES[name]
        except KeyError:
            raise NotFound(f"Unknown procedure '{name}'") from None
        return await procedure(self, **params)
