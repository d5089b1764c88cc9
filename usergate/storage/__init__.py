"""
Storage layer: connector contract, backends, lifecycle, schema.
"""

from usergate.storage.base import DatabaseConfig, DatabaseConnector, Row, atomic
from usergate.storage.manager import DatabaseManager
from usergate.storage.sqlite import SQLiteConnector
from usergate.storage.postgres import PostgresConnector
from usergate.storage.schema import initialize_schema

__all__ = [
    "DatabaseConfig",
    "DatabaseConnector",
    "Row",
    "atomic",
    "DatabaseManager",
    "SQLiteConnector",
    "PostgresConnector",
    "initialize_schema",
]
