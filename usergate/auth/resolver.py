"""
Effective capabilities.

A user's capability set is the union of the keys granted to every group
they belong to. Matching is exact and case-sensitive; there is no
wildcard, prefix or hierarchy.
"""

from __future__ import annotations

from typing import Iterable

from usergate.storage.base import DatabaseConnector


class PermissionResolver:
    """Computes capability sets from group membership."""
    
    def __init__(self, db: DatabaseConnector):
        self.db = db
    
    async def effective_capabilities(self, user_id: int) -> set[str]:
        rows = await self.db.query(
            """SELECT DISTINCT p.permission_key
               FROM permissions p
               INNER JOIN user_groups ug ON ug.group_id = p.group_id
               WHERE ug.user_id = $1""",
            [user_id],
        )
        return {row["permission_key"] for row in rows}


def has_capability(capabilities: Iterable[str], key: str) -> bool:
    return key in set(capabilities)


def has_any(capabilities: Iterable[str], keys: Iterable[str]) -> bool:
    """True if at least one of `keys` is held. An empty `keys` is never satisfied."""
    held = set(capabilities)
    return any(key in held for key in keys)


def has_all(capabilities: Iterable[str], keys: Iterable[str]) -> bool:
    held = set(capabilities)
    return all(key in held for key in keys)
