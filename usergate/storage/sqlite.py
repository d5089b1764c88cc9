"""
SQLite connector.

One shared `sqlite3` connection in autocommit mode, with explicit
BEGIN/COMMIT/ROLLBACK. Statements from different tasks are serialized by
an asyncio lock; a task that owns the open transaction holds the lock for
the whole transaction, so other tasks never see or join its writes.

Timestamps are stored as fixed-width UTC ISO strings, which keeps
`expires_at > $1` style comparisons correct as plain string comparisons.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from usergate.core.errors import DatabaseError, UniqueViolation
from usergate.core.utils import as_utc
from usergate.storage.base import DatabaseConfig, DatabaseConnector, Row

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

_PLACEHOLDER = re.compile(r"\$(\d+)")


def _adapt(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value).strftime(TIMESTAMP_FORMAT)
    if isinstance(value, bool):
        return int(value)
    return value


class SQLiteConnector(DatabaseConnector):
    """SQLite backend (development, single-node deployments, tests)."""
    
    type = "sqlite"
    
    def __init__(self, config: DatabaseConfig):
        super().__init__(config)
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()
        self._tx_active: ContextVar[bool] = ContextVar(f"sqlite_tx_{id(self)}", default=False)
    
    async def connect(self) -> None:
        if self._connected:
            return
        
        path = self.config.database
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        
        try:
            conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            if path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as e:
            logger.error("SQLite connection error for %s: %s", path, e)
            raise DatabaseError("Failed to connect to database") from e
        
        self._conn = conn
        self._connected = True
        logger.info("SQLite connected: %s", path)
    
    async def disconnect(self) -> None:
        if self._conn is None:
            return
        
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")
        self._conn.close()
        self._conn = None
        self._connected = False
        if self._lock.locked():
            self._lock.release()
        logger.info("SQLite disconnected: %s", self.config.database)
    
    # =========================================================================
    # Queries
    # =========================================================================
    
    async def query(self, sql: str, params: Sequence[Any] | None = None) -> list[Row]:
        if self._tx_active.get():
            return self._execute(sql, params)
        async with self._lock:
            return self._execute(sql, params)
    
    def _execute(self, sql: str, params: Sequence[Any] | None) -> list[Row]:
        if self._conn is None:
            raise DatabaseError("Database not connected")
        
        statement = _PLACEHOLDER.sub(r"?\1", sql)
        values = [_adapt(p) for p in params or ()]
        
        try:
            cursor = self._conn.execute(statement, values)
            rows = cursor.fetchall()
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise UniqueViolation("Duplicate value") from e
            logger.error("SQLite integrity error: %s", e)
            raise DatabaseError() from e
        except sqlite3.Error as e:
            logger.error("SQLite query error: %s | %s", e, sql)
            raise DatabaseError() from e
        
        return [dict(row) for row in rows]
    
    # =========================================================================
    # Transactions
    # =========================================================================
    
    @property
    def in_transaction(self) -> bool:
        return self._tx_active.get()
    
    async def begin_transaction(self) -> None:
        self._refuse_nested_transaction()
        if self._conn is None:
            raise DatabaseError("Database not connected")
        
        await self._lock.acquire()
        try:
            self._conn.execute("BEGIN")
        except sqlite3.Error as e:
            self._lock.release()
            logger.error("SQLite begin transaction error: %s", e)
            raise DatabaseError() from e
        self._tx_active.set(True)
    
    async def commit(self) -> None:
        self._require_transaction()
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error("SQLite commit error: %s", e)
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise DatabaseError() from e
        finally:
            self._finish_transaction()
    
    async def rollback(self) -> None:
        self._require_transaction()
        try:
            if self._conn is not None and self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        finally:
            self._finish_transaction()
    
    def _finish_transaction(self) -> None:
        self._tx_active.set(False)
        if self._lock.locked():
            self._lock.release()
