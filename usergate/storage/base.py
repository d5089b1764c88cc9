"""
Database connector abstraction.

All persistence goes through `DatabaseConnector`. SQL is written once with
`$1, $2, ...` placeholders and every value is a bound parameter; connectors
for other backends translate the placeholder style if they need to.

Transactions are tracked per task through a context variable, so a
transaction opened by one request never captures statements issued by
another. Opening a second transaction in the same context while one is
active fails fast with `TransactionError`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Sequence

from pydantic import BaseModel

from usergate.core.errors import TransactionError


Row = dict[str, Any]


# =============================================================================
# Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Connection settings for a connector."""
    
    type: str
    host: str | None = None
    port: int | None = None
    database: str
    user: str | None = None
    password: str | None = None
    schema_name: str | None = None
    ssl: bool = False
    max_connections: int = 10
    idle_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 2.0
    
    @property
    def key(self) -> tuple[str, str | None, int | None, str, str | None]:
        """Identity of the pool this configuration maps to."""
        return (self.type, self.host, self.port, self.database, self.user)


# =============================================================================
# Connector Interface
# =============================================================================


class DatabaseConnector(ABC):
    """
    Query contract every backend implements.
    
    Implementations: SQLiteConnector (local/dev/tests),
    PostgresConnector (asyncpg pool).
    """
    
    type: str = ""
    
    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._connected = False
    
    @property
    def dialect(self) -> str:
        return self.type
    
    @property
    def is_connected(self) -> bool:
        return self._connected
    
    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection or pool."""
        pass
    
    @abstractmethod
    async def disconnect(self) -> None:
        """Close everything. An active transaction is rolled back first."""
        pass
    
    @abstractmethod
    async def query(self, sql: str, params: Sequence[Any] | None = None) -> list[Row]:
        """Execute a statement and return all resulting rows."""
        pass
    
    async def query_one(self, sql: str, params: Sequence[Any] | None = None) -> Row | None:
        """Execute a statement and return the first row, or None."""
        rows = await self.query(sql, params)
        return rows[0] if rows else None
    
    @abstractmethod
    async def begin_transaction(self) -> None:
        """Start a transaction in the current context."""
        pass
    
    @abstractmethod
    async def commit(self) -> None:
        pass
    
    @abstractmethod
    async def rollback(self) -> None:
        pass
    
    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        """Whether the current context has an open transaction."""
        pass
    
    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[DatabaseConnector]:
        """
        Run a block all-or-nothing.
        
        Usage:
            async with db.transaction():
                await db.query("INSERT INTO users ...", [...])
                await db.query("INSERT INTO user_groups ...", [...])
        
        Commits when the block exits cleanly; rolls back and re-raises
        otherwise.
        """
        await self.begin_transaction()
        try:
            yield self
        except BaseException:
            await self.rollback()
            raise
        await self.commit()
    
    def _require_transaction(self) -> None:
        if not self.in_transaction:
            raise TransactionError("No active transaction")
    
    def _refuse_nested_transaction(self) -> None:
        if self.in_transaction:
            raise TransactionError("Transaction already active")


@asynccontextmanager
async def atomic(db: DatabaseConnector) -> AsyncIterator[DatabaseConnector]:
    """
    Join the current transaction if there is one, otherwise open one.
    
    Store methods that need several statements to succeed together use
    this so they compose inside a caller's transaction.
    """
    if db.in_transaction:
        yield db
        return
    async with db.transaction():
        yield db
