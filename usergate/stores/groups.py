"""
Group / membership / capability-grant persistence.

This layer holds no authorization logic. It enforces only the structural
invariants of the data:

- the protected Admins group cannot be deleted, renamed or made public;
- the Admins group's mandatory capability cannot be removed;
- a group holds each capability key at most once;
- the last member of the Admins group cannot be removed from it.

Ordinary not-found cases return None/False; invariant violations raise.
"""

from __future__ import annotations

import logging

from usergate.core.registry import KnownPermission, is_valid_permission_key
from usergate.core.errors import ConflictingState, NotFound, UniqueViolation, ValidationFailed
from usergate.core.models import Group, GroupWithCount, Permission, User
from usergate.core.utils import utc_now
from usergate.storage.base import DatabaseConnector, atomic

logger = logging.getLogger(__name__)

ADMIN_GROUP_NAME = "Admins"
ADMIN_GROUP_DESCRIPTION = "System administrators with full access"

_GROUP_COLUMNS = "id, name, description, is_public, created_at, updated_at"

_UNSET = object()


class GroupStore:
    """CRUD over groups, memberships and capability grants."""
    
    def __init__(
        self,
        db: DatabaseConnector,
        admin_group_name: str = ADMIN_GROUP_NAME,
        admin_permission_key: str = KnownPermission.ADMIN_MANAGE.value,
        admin_group_description: str = ADMIN_GROUP_DESCRIPTION,
    ):
        self.db = db
        self.admin_group_name = admin_group_name
        self.admin_group_description = admin_group_description
        self.admin_permission_key = admin_permission_key
    
    # =========================================================================
    # Groups
    # =========================================================================
    
    def is_protected(self, group: Group) -> bool:
        return group.name == self.admin_group_name
    
    async def get_group(self, group_id: int) -> Group | None:
        row = await self.db.query_one(
            f"SELECT {_GROUP_COLUMNS} FROM access_groups WHERE id = $1",
            [group_id],
        )
        return Group(**row) if row else None
    
    async def get_group_by_name(self, name: str) -> Group | None:
        row = await self.db.query_one(
            f"SELECT {_GROUP_COLUMNS} FROM access_groups WHERE name = $1",
            [name],
        )
        return Group(**row) if row else None
    
    async def get_admin_group(self) -> Group | None:
        return await self.get_group_by_name(self.admin_group_name)
    
    async def list_groups(self) -> list[GroupWithCount]:
        """All groups with member counts, public groups first."""
        rows = await self.db.query(
            """SELECT g.id, g.name, g.description, g.is_public, g.created_at, g.updated_at,
                      COUNT(ug.user_id) AS member_count
               FROM access_groups g
               LEFT JOIN user_groups ug ON g.id = ug.group_id
               GROUP BY g.id, g.name, g.description, g.is_public, g.created_at, g.updated_at
               ORDER BY g.is_public DESC, g.name ASC"""
        )
        return [GroupWithCount(**row) for row in rows]
    
    async def list_public_groups(self) -> list[Group]:
        rows = await self.db.query(
            f"SELECT {_GROUP_COLUMNS} FROM access_groups WHERE is_public = $1 ORDER BY name ASC",
            [True],
        )
        return [Group(**row) for row in rows]
    
    async def create_group(
        self,
        name: str,
        description: str | None = None,
        is_public: bool = False,
    ) -> Group:
        _validate_group_name(name)
        if name == self.admin_group_name and is_public:
            raise ConflictingState(f"The {self.admin_group_name} group cannot be public")
        
        now = utc_now()
        try:
            row = await self.db.query_one(
                f"""INSERT INTO access_groups (name, description, is_public, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {_GROUP_COLUMNS}""",
                [name, description or None, is_public, now, now],
            )
        except UniqueViolation:
            raise ConflictingState("A group with this name already exists")
        
        return Group(**row)
    
    async def update_group(
        self,
        group_id: int,
        *,
        name: str | None = None,
        description: str | None | object = _UNSET,
        is_public: bool | None = None,
    ) -> Group:
        """
        Partially update a group.
        
        Raises:
            NotFound: no such group
            ConflictingState: protected-group rename/publicize, or duplicate name
        """
        if name is not None:
            _validate_group_name(name)
        
        async with atomic(self.db):
            current = await self.get_group(group_id)
            if current is None:
                raise NotFound("Group not found")
            
            if self.is_protected(current):
                if name is not None and name != self.admin_group_name:
                    raise ConflictingState(f"The {self.admin_group_name} group cannot be renamed")
                if is_public:
                    raise ConflictingState(
                        f"The {self.admin_group_name} group cannot be changed to public"
                    )
            
            updates: list[str] = []
            values: list = []
            
            if name is not None:
                values.append(name)
                updates.append(f"name = ${len(values)}")
            if description is not _UNSET:
                values.append(description or None)
                updates.append(f"description = ${len(values)}")
            if is_public is not None:
                values.append(is_public)
                updates.append(f"is_public = ${len(values)}")
            
            values.append(utc_now())
            updates.append(f"updated_at = ${len(values)}")
            values.append(group_id)
            
            try:
                row = await self.db.query_one(
                    f"""UPDATE access_groups SET {', '.join(updates)}
                        WHERE id = ${len(values)}
                        RETURNING {_GROUP_COLUMNS}""",
                    values,
                )
            except UniqueViolation:
                raise ConflictingState("A group with this name already exists")
        
        return Group(**row)
    
    async def delete_group(self, group_id: int) -> Group | None:
        """Delete a group with its memberships and grants. None if absent."""
        async with atomic(self.db):
            group = await self.get_group(group_id)
            if group is None:
                return None
            if self.is_protected(group):
                raise ConflictingState(f"The {self.admin_group_name} group cannot be deleted")
            await self.db.query("DELETE FROM access_groups WHERE id = $1", [group_id])
        return group
    
    async def ensure_admin_group(self) -> tuple[Group, bool]:
        """Get or create the protected group. Returns (group, created)."""
        group = await self.get_admin_group()
        if group is not None:
            return group, False
        
        now = utc_now()
        await self.db.query(
            """INSERT INTO access_groups (name, description, is_public, created_at, updated_at)
               VALUES ($1, $2, $3, $4, $5)
               ON CONFLICT (name) DO NOTHING""",
            [self.admin_group_name, self.admin_group_description, False, now, now],
        )
        group = await self.get_admin_group()
        return group, True
    
    # =========================================================================
    # Memberships
    # =========================================================================
    
    async def add_member(self, group_id: int, user_id: int) -> bool:
        """
        Add a user to a group. Adding an existing member is a no-op.
        
        Returns True if a new membership was created.
        """
        async with atomic(self.db):
            await self._require_group(group_id)
            await self._require_user(user_id)
            rows = await self.db.query(
                """INSERT INTO user_groups (user_id, group_id, created_at)
                   VALUES ($1, $2, $3)
                   ON CONFLICT (user_id, group_id) DO NOTHING
                   RETURNING user_id""",
                [user_id, group_id, utc_now()],
            )
        return bool(rows)
    
    async def remove_member(self, group_id: int, user_id: int) -> bool:
        """
        Remove a user from a group. Removing a non-member is a no-op.
        
        Raises:
            ConflictingState: the user is the last member of the Admins group
        """
        async with atomic(self.db):
            group = await self.get_group(group_id)
            if group is None:
                return False
            if self.is_protected(group) and await self.is_last_admin(user_id):
                raise ConflictingState("Cannot remove the last member of the Admins group")
            rows = await self.db.query(
                """DELETE FROM user_groups WHERE user_id = $1 AND group_id = $2
                   RETURNING user_id""",
                [user_id, group_id],
            )
        return bool(rows)
    
    async def is_member(self, group_id: int, user_id: int) -> bool:
        row = await self.db.query_one(
            "SELECT 1 AS found FROM user_groups WHERE user_id = $1 AND group_id = $2",
            [user_id, group_id],
        )
        return row is not None
    
    async def count_members(self, group_id: int) -> int:
        row = await self.db.query_one(
            "SELECT COUNT(*) AS count FROM user_groups WHERE group_id = $1",
            [group_id],
        )
        return int(row["count"]) if row else 0
    
    async def list_members(self, group_id: int) -> list[User]:
        rows = await self.db.query(
            """SELECT u.id, u.username, u.email, u.created_at, u.updated_at
               FROM users u
               INNER JOIN user_groups ug ON u.id = ug.user_id
               WHERE ug.group_id = $1
               ORDER BY u.username ASC""",
            [group_id],
        )
        return [User(**row) for row in rows]
    
    async def list_user_groups(self, user_id: int) -> list[Group]:
        rows = await self.db.query(
            """SELECT g.id, g.name, g.description, g.is_public, g.created_at, g.updated_at
               FROM access_groups g
               INNER JOIN user_groups ug ON g.id = ug.group_id
               WHERE ug.user_id = $1
               ORDER BY g.name ASC""",
            [user_id],
        )
        return [Group(**row) for row in rows]
    
    async def is_last_admin(self, user_id: int) -> bool:
        """True if the user is the only member of the Admins group."""
        admin_group = await self.get_admin_group()
        if admin_group is None:
            return False
        if not await self.is_member(admin_group.id, user_id):
            return False
        return await self.count_members(admin_group.id) <= 1
    
    # =========================================================================
    # Capability grants
    # =========================================================================
    
    async def get_permission(self, permission_id: int) -> Permission | None:
        row = await self.db.query_one(
            "SELECT id, group_id, permission_key, created_at FROM permissions WHERE id = $1",
            [permission_id],
        )
        return Permission(**row) if row else None
    
    async def list_group_permissions(self, group_id: int) -> list[Permission]:
        rows = await self.db.query(
            """SELECT id, group_id, permission_key, created_at
               FROM permissions
               WHERE group_id = $1
               ORDER BY permission_key""",
            [group_id],
        )
        return [Permission(**row) for row in rows]
    
    async def add_permission(self, group_id: int, permission_key: str) -> Permission:
        """
        Grant a capability to a group.
        
        Raises:
            ValidationFailed: malformed key
            NotFound: no such group
            ConflictingState: the group already holds this key
        """
        if not is_valid_permission_key(permission_key):
            raise ValidationFailed(f"Invalid permission key: {permission_key}")
        
        async with atomic(self.db):
            await self._require_group(group_id)
            try:
                row = await self.db.query_one(
                    """INSERT INTO permissions (group_id, permission_key, created_at)
                       VALUES ($1, $2, $3)
                       RETURNING id, group_id, permission_key, created_at""",
                    [group_id, permission_key, utc_now()],
                )
            except UniqueViolation:
                raise ConflictingState("The group already has this permission")
        return Permission(**row)
    
    async def grant_if_missing(self, group_id: int, permission_key: str) -> bool:
        """Conflict-safe upsert. Returns True if the grant was newly created."""
        rows = await self.db.query(
            """INSERT INTO permissions (group_id, permission_key, created_at)
               VALUES ($1, $2, $3)
               ON CONFLICT (group_id, permission_key) DO NOTHING
               RETURNING id""",
            [group_id, permission_key, utc_now()],
        )
        return bool(rows)
    
    async def remove_permission(self, permission_id: int) -> Permission | None:
        """
        Revoke a grant by id. None if it does not exist.
        
        Raises:
            ConflictingState: the grant is the Admins group's mandatory capability
        """
        async with atomic(self.db):
            permission = await self.get_permission(permission_id)
            if permission is None:
                return None
            await self._refuse_protected_grant(permission.group_id, permission.permission_key)
            await self.db.query("DELETE FROM permissions WHERE id = $1", [permission_id])
        return permission
    
    async def remove_permission_key(self, group_id: int, permission_key: str) -> bool:
        """Revoke a grant by (group, key). False if it was not held."""
        async with atomic(self.db):
            await self._refuse_protected_grant(group_id, permission_key)
            rows = await self.db.query(
                """DELETE FROM permissions WHERE group_id = $1 AND permission_key = $2
                   RETURNING id""",
                [group_id, permission_key],
            )
        return bool(rows)
    
    # =========================================================================
    # Internal
    # =========================================================================
    
    async def _refuse_protected_grant(self, group_id: int, permission_key: str) -> None:
        if permission_key != self.admin_permission_key:
            return
        group = await self.get_group(group_id)
        if group is not None and self.is_protected(group):
            raise ConflictingState(
                f"The {self.admin_permission_key} permission cannot be removed "
                f"from the {self.admin_group_name} group"
            )
    
    async def _require_group(self, group_id: int) -> Group:
        group = await self.get_group(group_id)
        if group is None:
            raise NotFound("Group not found")
        return group
    
    async def _require_user(self, user_id: int) -> None:
        row = await self.db.query_one("SELECT id FROM users WHERE id = $1", [user_id])
        if row is None:
            raise NotFound("User not found")


def _validate_group_name(name: str) -> None:
    if not name or not 2 <= len(name) <= 100:
        raise ValidationFailed("Group name must be between 2 and 100 characters")
