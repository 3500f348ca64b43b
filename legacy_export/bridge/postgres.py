"""
Postgres bridge.

The legacy store is reached through a Postgres server that exposes it as
foreign tables and views in one schema (an FDW over the vendor's ODBC driver).
This module owns the dialect: catalog queries against `information_schema`,
identifier quoting through `psycopg.sql`, and a server-side cursor for reads.

A single-connection `AsyncConnectionPool` holds the bridge connection. It
enforces one statement at a time against the bridge and replaces the
connection after the bridge drops it, which the unreliable source does on
timeouts. Opening the pool is retried with tenacity for transient failures.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Dict, List, Optional, Sequence

import psycopg
from psycopg import sql
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from legacy_export.bridge.stream import RowStream
from legacy_export.config import Settings, get_settings
from legacy_export.domain.models import CatalogEntry, ColumnMetadata, EntityKind
from legacy_export.utils.logging import get_logger

log = get_logger(__name__)

_cursor_ids = itertools.count(1)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def _connection_kwargs(settings: Settings) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "autocommit": True,
        "connect_timeout": settings.db_connect_timeout_s,
    }
    if settings.db_statement_timeout_ms > 0:
        kwargs["options"] = f"-c statement_timeout={settings.db_statement_timeout_ms}"
    return kwargs


class PostgresBridge:
    """
    Bridge implementation over a Postgres foreign schema.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        dsn_override: Optional[str] = None,
        schema: Optional[str] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._dsn = dsn_override or build_dsn(self._settings)
        self.schema = schema or self._settings.source_schema
        self.fetch_size = self._settings.fetch_batch_size
        self.high_water = self._settings.stream_high_water
        self._pool: AsyncConnectionPool | None = None

    # Connection lifecycle ------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((psycopg.OperationalError, PoolTimeout)),
        reraise=True,
    )
    async def open(self) -> None:
        """
        Open the single-connection pool, retrying transient connection errors.

        Raises
        ------
        psycopg.OperationalError | psycopg_pool.PoolTimeout
            If the bridge is still unreachable after all attempts.
        """
        if self._pool is not None:
            return
        pool = AsyncConnectionPool(
            conninfo=self._dsn,
            min_size=1,
            max_size=1,
            open=False,
            kwargs=_connection_kwargs(self._settings),
            check=AsyncConnectionPool.check_connection,
            name="legacy-bridge",
        )
        try:
            await pool.open(wait=True, timeout=float(self._settings.db_connect_timeout_s))
        except BaseException:
            await pool.close()
            raise
        self._pool = pool
        log.info("Bridge connected", extra={"schema": self.schema})

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        log.info("Bridge connection released", extra={"schema": self.schema})

    def _require_pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise RuntimeError("Bridge is not open; call open() first")
        return self._pool

    # Dialect -------------------------------------------------------------

    def _relation(self, entity: str) -> sql.Composable:
        return sql.Identifier(self.schema, entity)

    def _select(self, entity: str, columns: Optional[Sequence[str]]) -> sql.Composed:
        fields: sql.Composable
        if columns:
            fields = sql.SQL(", ").join(sql.Identifier(name) for name in columns)
        else:
            fields = sql.SQL("*")
        return sql.SQL("SELECT {fields} FROM {relation}").format(
            fields=fields, relation=self._relation(entity)
        )

    # Catalog -------------------------------------------------------------

    async def enumerate(self) -> List[CatalogEntry]:
        query = (
            "SELECT table_name, table_type FROM information_schema.tables "
            "WHERE table_schema = %s ORDER BY table_name"
        )
        async with self._require_pool().connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, (self.schema,))
                rows = await cur.fetchall()
        return [
            CatalogEntry(
                name=name,
                kind=EntityKind.VIEW if table_type == "VIEW" else EntityKind.TABLE,
            )
            for name, table_type in rows
        ]

    async def list_columns(self, entity: str) -> List[ColumnMetadata]:
        query = (
            "SELECT column_name, data_type, is_nullable FROM information_schema.columns "
            "WHERE table_schema = %s AND table_name = %s ORDER BY ordinal_position"
        )
        async with self._require_pool().connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, (self.schema, entity))
                rows = await cur.fetchall()
        return [
            ColumnMetadata(name=name, index=index, data_type=data_type, nullable=nullable == "YES")
            for index, (name, data_type, nullable) in enumerate(rows)
        ]

    # Reads ---------------------------------------------------------------

    async def probe(
        self, entity: str, columns: Optional[Sequence[str]] = None
    ) -> List[ColumnMetadata]:
        """
        Read at most one row so type conversion errors surface before a full read.
        """
        query = self._select(entity, columns) + sql.SQL(" LIMIT 1")
        async with self._require_pool().connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query)
                await cur.fetchall()
                description = cur.description or []
                types = conn.adapters.types
                return [
                    ColumnMetadata(
                        name=column.name,
                        index=index,
                        data_type=_type_name(types, column.type_code),
                    )
                    for index, column in enumerate(description)
                ]

    def stream(self, entity: str, columns: Optional[Sequence[str]] = None) -> RowStream:
        stream = RowStream(high_water=self.high_water, label=entity)
        query = self._select(entity, columns)
        stream.attach(
            asyncio.create_task(self._pump(query, stream), name=f"pump:{entity}")
        )
        return stream

    async def _pump(self, query: sql.Composed, stream: RowStream) -> None:
        """
        Producer side of a read: fetch batches from a server-side cursor and
        notify the stream row by row.
        """
        try:
            async with self._require_pool().connection() as conn:
                async with conn.transaction():
                    cursor_name = f"legacy_export_{next(_cursor_ids)}"
                    async with conn.cursor(name=cursor_name) as cur:
                        await cur.execute(query)
                        while True:
                            batch = await cur.fetchmany(self.fetch_size)
                            if not batch:
                                break
                            for row in batch:
                                stream.push_row(row)
                            await stream.wait_writable()
                            if stream.finished:
                                return
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - delivered to the consumer as a notification
            log.debug("Stream failed", extra={"entity": stream.label, "error": str(exc)})
            stream.push_error(exc)
        else:
            stream.push_done()

    async def count(self, entity: str) -> int:
        query = sql.SQL("SELECT COUNT(*) FROM {relation}").format(
            relation=self._relation(entity)
        )
        async with self._require_pool().connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query)
                row = await cur.fetchone()
        return int(row[0]) if row else 0


def _type_name(types: Any, oid: int) -> str:
    info = types.get(oid)
    return info.name if info is not None else str(oid)


__all__ = ["PostgresBridge", "build_dsn"]
