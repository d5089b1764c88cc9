"""
PostgreSQL connector backed by an asyncpg pool.

Statements outside a transaction borrow a pooled connection for the
duration of one call. A transaction pins one connection to the current
context until commit or rollback.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextvars import ContextVar
from typing import Any, Sequence

import asyncpg
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from usergate.core.errors import DatabaseError, UniqueViolation
from usergate.storage.base import DatabaseConfig, DatabaseConnector, Row

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PostgresConnector(DatabaseConnector):
    """PostgreSQL backend."""
    
    type = "postgres"
    
    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        if config.schema_name and not _IDENTIFIER.match(config.schema_name):
            raise DatabaseError(f"Invalid schema name: {config.schema_name}")
        self._pool: asyncpg.Pool | None = None
        self._tx_conn: ContextVar[asyncpg.Connection | None] = ContextVar(
            f"pg_tx_conn_{id(self)}", default=None
        )
        self._tx: ContextVar[Any] = ContextVar(f"pg_tx_{id(self)}", default=None)
    
    async def connect(self) -> None:
        if self._connected:
            return
        
        try:
            self._pool = await self._create_pool()
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
            logger.error("PostgreSQL connection error: %s", e)
            raise DatabaseError("Failed to connect to database") from e
        
        self._connected = True
        schema = f" (schema: {self.config.schema_name})" if self.config.schema_name else ""
        logger.info("PostgreSQL connected%s", schema)
    
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type((OSError, asyncio.TimeoutError)),
        reraise=True,
    )
    async def _create_pool(self) -> asyncpg.Pool:
        """Create the pool, retrying while the server is not accepting connections yet."""
        return await asyncpg.create_pool(
            host=self.config.host,
            port=self.config.port,
            database=self.config.database,
            user=self.config.user,
            password=self.config.password,
            ssl="require" if self.config.ssl else None,
            min_size=1,
            max_size=self.config.max_connections,
            max_inactive_connection_lifetime=self.config.idle_timeout_seconds,
            timeout=self.config.connect_timeout_seconds,
            init=self._init_connection,
        )
    
    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        schema = self.config.schema_name
        if schema:
            await conn.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")
            await conn.execute(f"SET search_path TO {schema}, public")
    
    async def disconnect(self) -> None:
        if self._pool is None:
            return
        
        if self.in_transaction:
            await self.rollback()
        
        try:
            await asyncio.wait_for(self._pool.close(), timeout=10)
        except asyncio.TimeoutError:
            logger.warning("PostgreSQL pool did not close in time, terminating")
            self._pool.terminate()
        
        self._pool = None
        self._connected = False
        logger.info("PostgreSQL disconnected")
    
    # =========================================================================
    # Queries
    # =========================================================================
    
    async def query(self, sql: str, params: Sequence[Any] | None = None) -> list[Row]:
        if self._pool is None:
            raise DatabaseError("Database not connected")
        
        args = list(params or ())
        try:
            conn = self._tx_conn.get()
            if conn is not None:
                records = await conn.fetch(sql, *args)
            else:
                async with self._pool.acquire() as conn:
                    records = await conn.fetch(sql, *args)
        except asyncpg.UniqueViolationError as e:
            raise UniqueViolation("Duplicate value") from e
        except asyncpg.PostgresError as e:
            logger.error("PostgreSQL query error: %s | %s", e, sql)
            raise DatabaseError() from e
        
        return [dict(record) for record in records]
    
    # =========================================================================
    # Transactions
    # =========================================================================
    
    @property
    def in_transaction(self) -> bool:
        return self._tx_conn.get() is not None
    
    async def begin_transaction(self) -> None:
        self._refuse_nested_transaction()
        if self._pool is None:
            raise DatabaseError("Database not connected")
        
        conn = await self._pool.acquire()
        tx = conn.transaction()
        try:
            await tx.start()
        except asyncpg.PostgresError as e:
            await self._pool.release(conn)
            logger.error("PostgreSQL begin transaction error: %s", e)
            raise DatabaseError() from e
        
        self._tx_conn.set(conn)
        self._tx.set(tx)
    
    async def commit(self) -> None:
        self._require_transaction()
        try:
            await self._tx.get().commit()
        except asyncpg.PostgresError as e:
            logger.error("PostgreSQL commit error: %s", e)
            raise DatabaseError() from e
        finally:
            await self._finish_transaction()
    
    async def rollback(self) -> None:
        self._require_transaction()
        try:
            await self._tx.get().rollback()
        except asyncpg.PostgresError as e:
            logger.error("PostgreSQL rollback error: %s", e)
            raise DatabaseError() from e
        finally:
            await self._finish_transaction()
    
    async def _finish_transaction(self) -> None:
        conn = self._tx_conn.get()
        self._tx_conn.set(None)
        self._tx.set(None)
        if conn is not None and self._pool is not None:
            await self._pool.release(conn)
