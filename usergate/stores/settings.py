"""
Application settings stored in the database (toggled from the admin UI).

Values are persisted as the strings "true"/"false".
"""

from __future__ import annotations

from usergate.core.models import AppSettings
from usergate.core.utils import utc_now
from usergate.storage.base import DatabaseConnector, atomic

SETTING_KEYS = ("registration_enabled", "notify_user_creation", "notify_admin_registration")


class SettingsStore:
    
    def __init__(self, db: DatabaseConnector):
        self.db = db
    
    async def get_all(self) -> AppSettings:
        rows = await self.db.query(
            "SELECT key, value FROM settings WHERE key IN ($1, $2, $3)",
            list(SETTING_KEYS),
        )
        values = {row["key"]: row["value"] == "true" for row in rows}
        return AppSettings(**values)
    
    async def get(self, key: str) -> bool | None:
        row = await self.db.query_one("SELECT value FROM settings WHERE key = $1", [key])
        return row["value"] == "true" if row else None
    
    async def update(self, changes: dict[str, bool]) -> dict[str, bool]:
        """
        Write the provided keys; unknown keys are ignored.
        
        Returns the previous values of the keys that were written.
        """
        current = (await self.get_all()).model_dump()
        previous: dict[str, bool] = {}
        
        async with atomic(self.db):
            for key, value in changes.items():
                if key not in SETTING_KEYS:
                    continue
                await self.db.query(
                    "UPDATE settings SET value = $1, updated_at = $2 WHERE key = $3",
                    ["true" if value else "false", utc_now(), key],
                )
                previous[key] = current[key]
        return previous
