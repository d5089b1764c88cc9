"""
Self-service registration.

The very first account is the bootstrap administrator: it may register
even when registration is switched off, and it joins the Admins group in
the same transaction that creates it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from usergate.auth.credentials import is_valid_email, is_valid_password, is_valid_username
from usergate.core.errors import ConflictingState, PermissionDenied, ValidationFailed
from usergate.core.logs import log_user_event
from usergate.core.models import User
from usergate.storage.base import atomic
from usergate.stores.groups import GroupStore
from usergate.stores.settings import SettingsStore
from usergate.stores.users import UserStore

logger = logging.getLogger(__name__)


@dataclass
class Registration:
    user: User
    is_first_user: bool


def validate_new_user(username: str, password: str, email: str | None = None) -> None:
    """
    Raises:
        ValidationFailed: on the first malformed field
    """
    if not username or not password:
        raise ValidationFailed("Username and password are required")
    if not is_valid_username(username):
        raise ValidationFailed(
            "Username must be 3-50 characters and contain only letters, numbers, and underscores"
        )
    if email and not is_valid_email(email):
        raise ValidationFailed("Invalid email format")
    if not is_valid_password(password):
        raise ValidationFailed("Password must be at least 8 characters long")


class RegistrationService:
    
    def __init__(self, users: UserStore, groups: GroupStore, settings: SettingsStore):
        self.users = users
        self.groups = groups
        self.settings = settings
    
    async def register(self, username: str, password: str, email: str | None = None) -> Registration:
        """
        Create an account.
        
        Raises:
            PermissionDenied: registration is disabled and users already exist
            ValidationFailed: malformed username, email or password
            ConflictingState: username or email already taken
        """
        username = (username or "").strip()
        email = (email or "").strip() or None
        
        if await self.users.count_users() > 0 and not await self.settings.get("registration_enabled"):
            raise PermissionDenied("Registration is currently disabled")
        
        validate_new_user(username, password, email)
        
        db = self.users.db
        async with atomic(db):
            if await self.users.username_exists(username):
                raise ConflictingState("Username already exists")
            if email and await self.users.email_exists(email):
                raise ConflictingState("Email already exists")
            
            is_first_user = await self.users.count_users() == 0
            user = await self.users.create_user(username, password, email)
            
            if is_first_user:
                admin_group, _ = await self.groups.ensure_admin_group()
                await self.groups.add_member(admin_group.id, user.id)
        
        if is_first_user:
            logger.info("First user %s registered and added to %s", username, self.groups.admin_group_name)
        log_user_event("registered", user.id, user.username)
        return Registration(user=user, is_first_user=is_first_user)
