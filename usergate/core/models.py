"""
Core data models.

Rows come back from the connectors as plain dicts; these models give them
types. Timestamps arrive as datetimes from PostgreSQL and as ISO strings
from SQLite; pydantic parses both.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """A user as seen by the rest of the system (no password hash)."""
    
    model_config = ConfigDict(from_attributes=True)
    
    id: int
    username: str
    email: str | None = None
    created_at: datetime
    updated_at: datetime


class UserWithPermissions(User):
    """A principal with its effective capability set attached."""
    
    permissions: set[str] = Field(default_factory=set)


class Session(BaseModel):
    id: str
    user_id: int
    expires_at: datetime
    created_at: datetime


class ApiToken(BaseModel):
    """Token metadata. The plaintext is never part of this model."""
    
    id: int
    user_id: int
    name: str
    last_used_at: datetime | None = None
    created_at: datetime


class IssuedToken(BaseModel):
    """Returned exactly once, when a token is created."""
    
    token: str
    id: int
    name: str
    created_at: datetime


class Group(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_public: bool = False
    created_at: datetime
    updated_at: datetime


class GroupWithCount(Group):
    member_count: int = 0


class Permission(BaseModel):
    """A capability grant: (group, capability key)."""
    
    id: int
    group_id: int
    permission_key: str
    created_at: datetime | None = None


class AppSettings(BaseModel):
    registration_enabled: bool = True
    notify_user_creation: bool = True
    notify_admin_registration: bool = False
