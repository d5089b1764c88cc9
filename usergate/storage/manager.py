"""
Connector lifecycle management.

`DatabaseManager` is constructed once at process start and handed to
whoever needs a connector (the app keeps it on `app.state`). It keeps at
most one live connector per (type, host, port, database, user) and drains
all of them on shutdown.
"""

from __future__ import annotations

import asyncio
import logging

from usergate.core.errors import DatabaseError
from usergate.storage.base import DatabaseConfig, DatabaseConnector
from usergate.storage.postgres import PostgresConnector
from usergate.storage.sqlite import SQLiteConnector

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Registry of connector types and live connector instances."""
    
    def __init__(self):
        self._connector_types: dict[str, type[DatabaseConnector]] = {
            SQLiteConnector.type: SQLiteConnector,
            PostgresConnector.type: PostgresConnector,
        }
        self._instances: dict[tuple, DatabaseConnector] = {}
        self._lock = asyncio.Lock()
    
    def register_connector(self, type_name: str, connector_class: type[DatabaseConnector]) -> None:
        """Make a custom connector available under `type_name`."""
        self._connector_types[type_name] = connector_class
    
    def available_types(self) -> list[str]:
        return list(self._connector_types.keys())
    
    async def acquire(self, config: DatabaseConfig) -> DatabaseConnector:
        """
        Get the connector for this configuration, connecting on first use.
        
        A cached connector that has been disconnected is replaced.
        """
        async with self._lock:
            existing = self._instances.get(config.key)
            if existing is not None and existing.is_connected:
                return existing
            
            connector_class = self._connector_types.get(config.type)
            if connector_class is None:
                raise DatabaseError(
                    f"Unsupported database type: {config.type}. "
                    f"Available types: {', '.join(self.available_types())}"
                )
            
            connector = connector_class(config)
            await connector.connect()
            self._instances[config.key] = connector
            return connector
    
    def get(self, config: DatabaseConfig) -> DatabaseConnector | None:
        """Existing connector for this configuration, without creating one."""
        return self._instances.get(config.key)
    
    async def release(self, config: DatabaseConfig) -> None:
        """Disconnect and forget one connector."""
        async with self._lock:
            connector = self._instances.pop(config.key, None)
        if connector is not None:
            await connector.disconnect()
    
    async def shutdown(self) -> None:
        """Disconnect every connector."""
        async with self._lock:
            connectors = list(self._instances.values())
            self._instances.clear()
        
        if not connectors:
            return
        
        logger.info("Closing %d database connection(s)", len(connectors))
        results = await asyncio.gather(
            *(c.disconnect() for c in connectors),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Error closing database connection: %s", result)
