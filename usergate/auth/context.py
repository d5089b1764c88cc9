"""
Auth context - the "who can do what" for each request.

This is the lightweight object handed to route handlers once the
principal has been identified and its capabilities resolved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from usergate.auth.resolver import has_all, has_any, has_capability
from usergate.core.errors import PermissionDenied
from usergate.core.models import User, UserWithPermissions

logger = logging.getLogger(__name__)

AuthMethod = Literal["session", "token"]


@dataclass
class AuthContext:
    """
    Authorization context for a request.
    
    Usage in routes:
        async def my_route(ctx: AuthContext = Depends(require("admin.manage"))):
            print(f"User {ctx.user_id} is an admin")
            if ctx.can("reports.view"):
                ...
    """
    
    user: User
    permissions: set[str] = field(default_factory=set)
    via: AuthMethod = "session"
    session_id: str | None = None
    
    @property
    def user_id(self) -> int:
        return self.user.id
    
    @property
    def username(self) -> str:
        return self.user.username
    
    def can(self, capability: str) -> bool:
        """Exact, case-sensitive membership test."""
        return has_capability(self.permissions, capability)
    
    def can_any(self, *capabilities: str) -> bool:
        return has_any(self.permissions, capabilities)
    
    def can_all(self, *capabilities: str) -> bool:
        return has_all(self.permissions, capabilities)
    
    def require(self, capability: str) -> None:
        """Raise if the principal does not hold `capability`."""
        if not self.can(capability):
            logger.info("Denied %s: missing %s", self.username, capability)
            raise PermissionDenied()
    
    def principal(self) -> UserWithPermissions:
        return UserWithPermissions(**self.user.model_dump(), permissions=set(self.permissions))
