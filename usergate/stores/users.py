"""
User persistence.

Password hashes never leave this module: every public method returns the
`User` model, which has no password field.
"""

from __future__ import annotations

import logging

from usergate.auth.credentials import PASSWORD_HASH_ITERATIONS, hash_password, verify_password
from usergate.core.errors import ConflictingState, UniqueViolation
from usergate.core.models import User
from usergate.core.utils import utc_now
from usergate.storage.base import DatabaseConnector, atomic
from usergate.stores.groups import GroupStore

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, username, email, created_at, updated_at"

_UNSET = object()


class UserStore:
    """CRUD over users."""
    
    def __init__(
        self,
        db: DatabaseConnector,
        groups: GroupStore | None = None,
        password_iterations: int = PASSWORD_HASH_ITERATIONS,
    ):
        self.db = db
        self.groups = groups or GroupStore(db)
        self.password_iterations = password_iterations
    
    async def create_user(self, username: str, password: str, email: str | None = None) -> User:
        """
        Insert a user with a freshly hashed password.
        
        Raises:
            ConflictingState: username or email already taken
        """
        password_hash = hash_password(password, self.password_iterations)
        now = utc_now()
        try:
            row = await self.db.query_one(
                f"""INSERT INTO users (username, email, password, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING {_USER_COLUMNS}""",
                [username, email or None, password_hash, now, now],
            )
        except UniqueViolation:
            raise ConflictingState("Username or email already exists")
        return User(**row)
    
    async def get_user_by_id(self, user_id: int) -> User | None:
        row = await self.db.query_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
            [user_id],
        )
        return User(**row) if row else None
    
    async def get_user_by_username(self, username: str) -> User | None:
        row = await self.db.query_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE username = $1",
            [username],
        )
        return User(**row) if row else None
    
    async def get_user_by_email(self, email: str) -> User | None:
        row = await self.db.query_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE email = $1",
            [email],
        )
        return User(**row) if row else None
    
    async def authenticate(self, username_or_email: str, password: str) -> User | None:
        """
        Check credentials. Looks up by email when the identifier contains '@'.
        
        Returns None for an unknown user and for a wrong password alike.
        """
        field = "email" if "@" in username_or_email else "username"
        row = await self.db.query_one(
            f"SELECT {_USER_COLUMNS}, password FROM users WHERE {field} = $1",
            [username_or_email],
        )
        if row is None:
            return None
        
        stored = row.pop("password")
        if not verify_password(password, stored, self.password_iterations):
            return None
        return User(**row)
    
    async def list_users(self) -> list[User]:
        rows = await self.db.query(
            f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at DESC"
        )
        return [User(**row) for row in rows]
    
    async def update_user(
        self,
        user_id: int,
        *,
        username: str | None = None,
        email: str | None | object = _UNSET,
        password: str | None = None,
    ) -> User | None:
        """Partially update a user. None if the user does not exist."""
        updates: list[str] = []
        values: list = []
        
        if username is not None:
            values.append(username)
            updates.append(f"username = ${len(values)}")
        if email is not _UNSET:
            values.append(email or None)
            updates.append(f"email = ${len(values)}")
        if password is not None:
            values.append(hash_password(password, self.password_iterations))
            updates.append(f"password = ${len(values)}")
        
        if not updates:
            return await self.get_user_by_id(user_id)
        
        values.append(utc_now())
        updates.append(f"updated_at = ${len(values)}")
        values.append(user_id)
        
        try:
            row = await self.db.query_one(
                f"""UPDATE users SET {', '.join(updates)}
                    WHERE id = ${len(values)}
                    RETURNING {_USER_COLUMNS}""",
                values,
            )
        except UniqueViolation:
            raise ConflictingState("Username or email already exists")
        return User(**row) if row else None
    
    async def set_password(self, user_id: int, password: str) -> bool:
        return await self.update_user(user_id, password=password) is not None
    
    async def delete_user(self, user_id: int) -> bool:
        """
        Delete a user with their sessions, tokens and memberships.
        
        Raises:
            ConflictingState: the user is the last member of the Admins group
        """
        async with atomic(self.db):
            if await self.groups.is_last_admin(user_id):
                raise ConflictingState("Cannot delete the last administrator")
            rows = await self.db.query(
                "DELETE FROM users WHERE id = $1 RETURNING id",
                [user_id],
            )
        return bool(rows)
    
    async def count_users(self) -> int:
        row = await self.db.query_one("SELECT COUNT(*) AS count FROM users")
        return int(row["count"]) if row else 0
    
    async def username_exists(self, username: str) -> bool:
        row = await self.db.query_one(
            "SELECT 1 AS found FROM users WHERE username = $1",
            [username],
        )
        return row is not None
    
    async def email_exists(self, email: str) -> bool:
        row = await self.db.query_one(
            "SELECT 1 AS found FROM users WHERE email = $1",
            [email],
        )
        return row is not None
