# =============================================================================
# User API Routes
# =============================================================================
#
# Endpoints:
#   POST /api/users/register              - Create account (first user becomes admin)
#   POST /api/users/login                 - Start a cookie session
#   POST /api/users/logout                - End the cookie session
#   GET  /api/users/me                    - Current user with permissions
#   PATCH /api/users/profile              - Update own username/email/password
#   GET  /api/users/groups?userId=        - Groups a user belongs to (admin)
#
# Admin (admin.manage):
#   GET  /api/users/admin/list            - All users
#   POST /api/users/admin/add             - Create a user
#   POST /api/users/admin/delete          - Delete a user (not yourself)
#   POST /api/users/admin/reset-password  - Generate a new password (not yours)
#
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import BaseModel, ConfigDict, Field

from usergate.api.deps import get_groups, get_registration, get_sessions, get_users
from usergate.auth.context import AuthContext
from usergate.auth.credentials import generate_password, is_valid_email, is_valid_password, is_valid_username
from usergate.auth.guard import require, require_auth
from usergate.auth.sessions import SessionManager
from usergate.core.errors import (
    ConflictingState,
    InvalidCredentials,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from usergate.core.logs import log_user_event
from usergate.core.models import User
from usergate.core.registry import KnownPermission
from usergate.services.registration import RegistrationService, validate_new_user
from usergate.stores.groups import GroupStore
from usergate.stores.users import UserStore

router = APIRouter(prefix="/api/users", tags=["users"])

ADMIN = KnownPermission.ADMIN_MANAGE.value


# =============================================================================
# Request Models
# =============================================================================


class RegisterRequest(BaseModel):
    username: str = ""
    password: str = ""
    email: str | None = None


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    username: str | None = None
    email: str | None = None
    current_password: str | None = Field(default=None, alias="currentPassword")
    new_password: str | None = Field(default=None, alias="newPassword")


class UserIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    user_id: int | None = Field(default=None, alias="userId")


def user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "createdAt": user.created_at,
        "updatedAt": user.updated_at,
    }


# =============================================================================
# Public Endpoints
# =============================================================================


@router.post("/register")
async def register(
    data: RegisterRequest,
    response: Response,
    registration: RegistrationService = Depends(get_registration),
    sessions: SessionManager = Depends(get_sessions),
):
    """
    Create an account and log it in.
    
    The first account ever created joins the Admins group.
    """
    result = await registration.register(data.username, data.password, data.email)
    
    session_id = await sessions.create_session(result.user.id)
    sessions.set_cookie(response, session_id)
    
    return {
        "success": True,
        "user": {"id": result.user.id, "username": result.user.username, "email": result.user.email},
        "message": (
            "Admin account created successfully"
            if result.is_first_user
            else "Account created successfully"
        ),
    }


@router.post("/login")
async def login(
    data: LoginRequest,
    response: Response,
    users: UserStore = Depends(get_users),
    sessions: SessionManager = Depends(get_sessions),
):
    if not data.username or not data.password:
        raise ValidationFailed("Username and password are required")
    
    user = await users.authenticate(data.username, data.password)
    if user is None:
        raise InvalidCredentials()
    
    session_id = await sessions.create_session(user.id)
    sessions.set_cookie(response, session_id)
    
    return {
        "success": True,
        "user": {"id": user.id, "username": user.username, "email": user.email},
    }


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_sessions),
):
    session_id = request.cookies.get(sessions.cookie_name)
    if session_id:
        await sessions.delete_session(session_id)
    sessions.clear_cookie(response)
    return {"success": True, "message": "Logged out successfully"}


# =============================================================================
# Authenticated Endpoints
# =============================================================================


@router.get("/me")
async def me(ctx: AuthContext = Depends(require_auth())):
    """Current user with their effective permissions."""
    return {
        "success": True,
        "user": {**user_summary(ctx.user), "permissions": sorted(ctx.permissions)},
    }


@router.patch("/profile")
async def update_profile(
    data: ProfileUpdateRequest,
    ctx: AuthContext = Depends(require_auth()),
    users: UserStore = Depends(get_users),
):
    """Update own profile. A password change needs the current password."""
    if not data.username and data.email is None and not data.new_password:
        raise ValidationFailed("At least one field must be provided to update")
    
    user = ctx.user
    changes: dict = {}
    
    if data.username and data.username != user.username:
        if not is_valid_username(data.username):
            raise ValidationFailed(
                "Username must be 3-50 characters and contain only letters, numbers, and underscores"
            )
        if await users.username_exists(data.username):
            raise ConflictingState("Username already exists")
        changes["username"] = data.username
    
    if data.email is not None and data.email != user.email:
        if data.email == "":
            changes["email"] = None
        else:
            if not is_valid_email(data.email):
                raise ValidationFailed("Invalid email format")
            if await users.email_exists(data.email):
                raise ConflictingState("Email already exists")
            changes["email"] = data.email
    
    if data.new_password:
        if not data.current_password:
            raise ValidationFailed("Current password is required to change password")
        if not is_valid_password(data.new_password):
            raise ValidationFailed("New password must be at least 8 characters long")
        if await users.authenticate(user.username, data.current_password) is None:
            raise InvalidCredentials("Current password is incorrect")
        changes["password"] = data.new_password
    
    updated = await users.update_user(user.id, **changes)
    if updated is None:
        raise NotFound("User not found")
    
    log_user_event("profile_updated", updated.id, updated.username, by=updated.username)
    return {
        "success": True,
        "user": {
            "id": updated.id,
            "username": updated.username,
            "email": updated.email,
            "updatedAt": updated.updated_at,
        },
        "message": "Profile updated successfully",
    }


@router.get("/groups")
async def user_groups(
    user_id: int | None = Query(default=None, alias="userId"),
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    """Groups a user belongs to."""
    if user_id is None:
        raise ValidationFailed("User ID is required")
    
    memberships = await groups.list_user_groups(user_id)
    return {
        "success": True,
        "groups": [
            {"id": g.id, "name": g.name, "description": g.description}
            for g in memberships
        ],
    }


# =============================================================================
# Admin Endpoints
# =============================================================================


@router.get("/admin/list")
async def admin_list_users(
    ctx: AuthContext = Depends(require(ADMIN)),
    users: UserStore = Depends(get_users),
):
    return {"success": True, "users": [user_summary(u) for u in await users.list_users()]}


@router.post("/admin/add")
async def admin_add_user(
    data: RegisterRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    users: UserStore = Depends(get_users),
):
    """Create a user without touching the caller's session."""
    username = (data.username or "").strip()
    email = (data.email or "").strip() or None
    validate_new_user(username, data.password, email)
    
    if await users.username_exists(username):
        raise ConflictingState("Username already exists")
    if email and await users.email_exists(email):
        raise ConflictingState("Email already exists")
    
    user = await users.create_user(username, data.password, email)
    log_user_event("created", user.id, user.username, by=ctx.username)
    
    return {
        "success": True,
        "message": "User added successfully",
        "user": {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "createdAt": user.created_at,
        },
    }


@router.post("/admin/delete")
async def admin_delete_user(
    data: UserIdRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    users: UserStore = Depends(get_users),
):
    if not data.user_id:
        raise ValidationFailed("User ID is required")
    if data.user_id == ctx.user_id:
        raise ValidationFailed("You cannot delete your own account")
    
    user = await users.get_user_by_id(data.user_id)
    if user is None:
        raise NotFound("User not found")
    
    await users.delete_user(user.id)
    log_user_event("deleted", user.id, user.username, by=ctx.username)
    
    return {"success": True, "message": f"User {user.username} deleted successfully"}


@router.post("/admin/reset-password")
async def admin_reset_password(
    data: UserIdRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    users: UserStore = Depends(get_users),
    sessions: SessionManager = Depends(get_sessions),
):
    """
    Set a random password and return it. This is the only time it is shown.
    
    Every session the user holds is ended, so the old password stops
    working everywhere at once.
    """
    if not data.user_id:
        raise ValidationFailed("User ID is required")
    
    user = await users.get_user_by_id(data.user_id)
    if user is None:
        raise NotFound("User not found")
    if user.id == ctx.user_id:
        raise PermissionDenied("You cannot reset your own password. Use the profile page instead.")
    
    password = generate_password(16)
    await users.set_password(user.id, password)
    await sessions.delete_user_sessions(user.id)
    log_user_event("password_reset", user.id, user.username, by=ctx.username)
    
    return {"success": True, "message": "Password reset successfully", "password": password}
