"""
SQL Backend Collection Store.

SQLAlchemy async Core over the tables declared in ``setlist.db.models``.
Each call runs in its own session and commits before the change notice is
published, so a subscriber that reloads on the notice sees the write.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from setlist.contracts.row_types import Collection, Row
from setlist.db.database import Base, create_engine, create_session_factory
from setlist.db.models import generate_uuid
from setlist.errors import BackendError
from setlist.services.change_feed import ChangeFeed
from setlist.services.collection_store import CollectionStore, Match

logger = logging.getLogger(__name__)


class SqlCollectionStore(CollectionStore):
    """Collection store backed by any SQLAlchemy async database."""

    name = "sql"

    def __init__(
        self,
        engine: AsyncEngine | str,
        feed: ChangeFeed | None = None,
        echo: bool = False,
    ) -> None:
        super().__init__(feed)
        self._engine = create_engine(engine, echo=echo) if isinstance(engine, str) else engine
        self._sessions: async_sessionmaker[AsyncSession] = create_session_factory(self._engine)

    async def create_all(self) -> None:
        """Create every collection table that does not exist yet."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✅ SQL collection tables ready")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _table(collection: Collection) -> Table:
        return Base.metadata.tables[collection.value]

    @staticmethod
    def _check_columns(table: Table, collection: Collection, operation: str, columns: Iterable[str]) -> None:
        unknown = [c for c in columns if c not in table.c]
        if unknown:
            raise BackendError(collection.value, operation, f"unknown columns {unknown}")

    def _where(self, table: Table, collection: Collection, operation: str, match: Match | None) -> list[ColumnElement[bool]]:
        if not match:
            return []
        self._check_columns(table, collection, operation, match.keys())
        return [
            table.c[column].is_(None) if value is None else table.c[column] == value
            for column, value in match.items()
        ]

    def _prepare(self, table: Table, collection: Collection, operation: str, row: Row) -> Row:
        self._check_columns(table, collection, operation, row.keys())
        prepared = dict(row)
        if "id" in table.c and table.c["id"].primary_key and not prepared.get("id"):
            prepared["id"] = generate_uuid()
        return prepared

    # ------------------------------------------------------------------
    # CollectionStore
    # ------------------------------------------------------------------

    async def select(
        self,
        collection: Collection,
        match: Match | None = None,
        order_by: str | None = None,
    ) -> list[Row]:
        table = self._table(collection)
        stmt = select(table).where(*self._where(table, collection, "select", match))
        if order_by:
            self._check_columns(table, collection, "select", [order_by])
            stmt = stmt.order_by(table.c[order_by].is_(None), table.c[order_by])
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return [dict(r._mapping) for r in result]
        except SQLAlchemyError as exc:
            raise BackendError(collection.value, "select", str(exc)) from exc

    async def insert(self, collection: Collection, rows: Sequence[Row]) -> list[Row]:
        if not rows:
            return []
        table = self._table(collection)
        prepared = [self._prepare(table, collection, "insert", row) for row in rows]
        try:
            async with self._sessions() as session:
                for stored in prepared:
                    await session.execute(insert(table).values(**stored))
                await session.commit()
        except SQLAlchemyError as exc:
            raise BackendError(collection.value, "insert", str(exc)) from exc
        self._published(collection, len(prepared))
        return prepared

    async def update(self, collection: Collection, values: Row, match: Match) -> int:
        table = self._table(collection)
        self._check_columns(table, collection, "update", values.keys())
        stmt = (
            update(table)
            .where(*self._where(table, collection, "update", match))
            .values(**values)
        )
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise BackendError(collection.value, "update", str(exc)) from exc
        count = result.rowcount or 0
        self._published(collection, count)
        return count

    async def upsert(
        self,
        collection: Collection,
        row: Row,
        on_conflict: Sequence[str],
    ) -> Row:
        table = self._table(collection)
        key = {column: row.get(column) for column in on_conflict}
        where = self._where(table, collection, "upsert", key)
        try:
            async with self._sessions() as session:
                existing = (await session.execute(select(table).where(*where))).first()
                if existing is None:
                    stored = self._prepare(table, collection, "upsert", row)
                    await session.execute(insert(table).values(**stored))
                else:
                    self._check_columns(table, collection, "upsert", row.keys())
                    await session.execute(update(table).where(*where).values(**row))
                    stored = {**dict(existing._mapping), **row}
                await session.commit()
        except SQLAlchemyError as exc:
            raise BackendError(collection.value, "upsert", str(exc)) from exc
        self._published(collection, 1)
        return stored

    async def delete(self, collection: Collection, match: Match) -> int:
        table = self._table(collection)
        stmt = delete(table).where(*self._where(table, collection, "delete", match))
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise BackendError(collection.value, "delete", str(exc)) from exc
        count = result.rowcount or 0
        self._published(collection, count)
        return count

    async def close(self) -> None:
        await super().close()
        await self._engine.dispose()
        logger.info("Database connection closed")
