"""
Database schema.

DDL is kept per dialect because the column types differ (SERIAL vs
AUTOINCREMENT, TIMESTAMPTZ vs ISO text); the table shapes are identical.
Statements are issued one at a time, in foreign-key order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from usergate.core.errors import DatabaseError
from usergate.core.utils import utc_now
from usergate.storage.base import DatabaseConnector

if TYPE_CHECKING:
    from usergate.core.registry import PermissionRegistry
    from usergate.config import Settings

logger = logging.getLogger(__name__)


def _tables(id_column: str, timestamp: str, boolean: str) -> list[str]:
    return [
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id {id_column},
            username VARCHAR(50) UNIQUE NOT NULL,
            email VARCHAR(255) UNIQUE,
            password VARCHAR(255) NOT NULL,
            created_at {timestamp} NOT NULL,
            updated_at {timestamp} NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_users_username ON users(username)",
        "CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)",
        f"""
        CREATE TABLE IF NOT EXISTS sessions (
            id VARCHAR(255) PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            expires_at {timestamp} NOT NULL,
            created_at {timestamp} NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
        "CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions(expires_at)",
        f"""
        CREATE TABLE IF NOT EXISTS settings (
            key VARCHAR(100) PRIMARY KEY,
            value TEXT NOT NULL,
            description TEXT,
            updated_at {timestamp} NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS access_groups (
            id {id_column},
            name VARCHAR(100) UNIQUE NOT NULL,
            description TEXT,
            is_public {boolean} NOT NULL DEFAULT FALSE,
            created_at {timestamp} NOT NULL,
            updated_at {timestamp} NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_access_groups_name ON access_groups(name)",
        "CREATE INDEX IF NOT EXISTS idx_access_groups_is_public ON access_groups(is_public)",
        f"""
        CREATE TABLE IF NOT EXISTS user_groups (
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            group_id INTEGER NOT NULL REFERENCES access_groups(id) ON DELETE CASCADE,
            created_at {timestamp} NOT NULL,
            PRIMARY KEY (user_id, group_id)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_user_groups_user_id ON user_groups(user_id)",
        "CREATE INDEX IF NOT EXISTS idx_user_groups_group_id ON user_groups(group_id)",
        f"""
        CREATE TABLE IF NOT EXISTS permissions (
            id {id_column},
            group_id INTEGER NOT NULL REFERENCES access_groups(id) ON DELETE CASCADE,
            permission_key VARCHAR(255) NOT NULL,
            created_at {timestamp} NOT NULL,
            UNIQUE (group_id, permission_key)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_permissions_group_id ON permissions(group_id)",
        "CREATE INDEX IF NOT EXISTS idx_permissions_key ON permissions(permission_key)",
        f"""
        CREATE TABLE IF NOT EXISTS api_tokens (
            id {id_column},
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash VARCHAR(255) UNIQUE NOT NULL,
            name VARCHAR(100) NOT NULL,
            last_used_at {timestamp},
            created_at {timestamp} NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_api_tokens_user_id ON api_tokens(user_id)",
        "CREATE INDEX IF NOT EXISTS idx_api_tokens_token_hash ON api_tokens(token_hash)",
    ]


SCHEMAS: dict[str, list[str]] = {
    "postgres": _tables("SERIAL PRIMARY KEY", "TIMESTAMPTZ", "BOOLEAN"),
    "sqlite": _tables("INTEGER PRIMARY KEY AUTOINCREMENT", "TEXT", "BOOLEAN"),
}


DEFAULT_SETTINGS: list[tuple[str, str, str]] = [
    ("registration_enabled", "true", "Allow public user registration"),
    ("notify_user_creation", "true", "Send email to user when account is created"),
    ("notify_admin_registration", "false", "Send email to admins when new user registers"),
]


async def create_tables(db: DatabaseConnector) -> None:
    """Create every table and index that does not exist yet."""
    statements = SCHEMAS.get(db.dialect)
    if statements is None:
        raise DatabaseError(f"No schema defined for dialect '{db.dialect}'")
    
    for statement in statements:
        await db.query(statement)


async def seed_settings(db: DatabaseConnector) -> None:
    """Insert default application settings, keeping existing values."""
    now = utc_now()
    for key, value, description in DEFAULT_SETTINGS:
        await db.query(
            """INSERT INTO settings (key, value, description, updated_at)
               VALUES ($1, $2, $3, $4)
               ON CONFLICT (key) DO NOTHING""",
            [key, value, description, now],
        )


async def initialize_schema(
    db: DatabaseConnector,
    settings: Settings | None = None,
    registry: PermissionRegistry | None = None,
) -> None:
    """
    Bring a database up to date and reconcile the permission registry.
    
    Safe to run on every boot.
    """
    from usergate.services.sync import sync_permissions
    
    logger.info("Initializing database schema (%s)", db.dialect)
    await create_tables(db)
    await seed_settings(db)
    await sync_permissions(db, settings=settings, registry=registry)
    logger.info("Database schema initialized")
