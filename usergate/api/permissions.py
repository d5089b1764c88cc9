# =============================================================================
# Permission API Routes
# =============================================================================
#
#   GET  /api/permissions/registered       - Code-declared permissions (public)
#   GET  /api/permissions/group/{id}       - Grants held by a group (admin)
#   POST /api/permissions/add              - Grant a key to a group (admin)
#   POST /api/permissions/remove           - Revoke a grant by id (admin)
#
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from usergate.api.deps import get_groups, get_registry
from usergate.auth.context import AuthContext
from usergate.auth.guard import require
from usergate.core.errors import NotFound, ValidationFailed
from usergate.core.logs import log_permission_event
from usergate.core.models import Permission
from usergate.core.registry import KnownPermission, PermissionRegistry
from usergate.stores.groups import GroupStore

router = APIRouter(prefix="/api/permissions", tags=["permissions"])

ADMIN = KnownPermission.ADMIN_MANAGE.value


class AddPermissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    group_id: int | None = Field(default=None, alias="groupId")
    permission_key: str | None = Field(default=None, alias="permissionKey")


class RemovePermissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    permission_id: int | None = Field(default=None, alias="permissionId")


def permission_summary(permission: Permission) -> dict:
    return {
        "id": permission.id,
        "groupId": permission.group_id,
        "permissionKey": permission.permission_key,
        "createdAt": permission.created_at,
    }


@router.get("/registered")
async def registered_permissions(registry: PermissionRegistry = Depends(get_registry)):
    return {"success": True, "permissions": registry.registered_permissions()}


@router.get("/group/{group_id}")
async def group_permissions(
    group_id: int,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    if not group_id:
        raise ValidationFailed("Group ID is required")
    
    permissions = await groups.list_group_permissions(group_id)
    return {"success": True, "permissions": [permission_summary(p) for p in permissions]}


@router.post("/add")
async def add_permission(
    data: AddPermissionRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    if not data.group_id or not data.permission_key:
        raise ValidationFailed("Group ID and permission key are required")
    
    permission = await groups.add_permission(data.group_id, data.permission_key)
    group = await groups.get_group(data.group_id)
    log_permission_event(
        "added",
        data.group_id,
        group.name if group else "Unknown",
        permission.permission_key,
        ctx.username,
    )
    return {
        "success": True,
        "message": "Permission added successfully",
        "permission": permission_summary(permission),
    }


@router.post("/remove")
async def remove_permission(
    data: RemovePermissionRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    if not data.permission_id:
        raise ValidationFailed("Permission ID is required")
    
    permission = await groups.remove_permission(data.permission_id)
    if permission is None:
        raise NotFound("Permission not found")
    
    group = await groups.get_group(permission.group_id)
    log_permission_event(
        "removed",
        permission.group_id,
        group.name if group else "Unknown",
        permission.permission_key,
        ctx.username,
    )
    return {"success": True, "message": "Permission removed successfully"}
