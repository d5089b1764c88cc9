# =============================================================================
# Group API Routes (admin.manage)
# =============================================================================
#
#   GET   /api/groups/list                 - All groups with member counts
#   POST  /api/groups/create               - Create a group
#   PATCH /api/groups/update               - Rename / describe / publicize
#   POST  /api/groups/delete               - Delete a group
#   GET   /api/groups/members?groupId=     - Members of a group
#   POST  /api/groups/add-member           - Add a user to a group
#   POST  /api/groups/remove-member        - Remove a user from a group
#
# The Admins group cannot be deleted, renamed or made public, and its last
# member cannot be removed; those attempts answer 409.
#
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from usergate.api.deps import get_groups, get_users
from usergate.auth.context import AuthContext
from usergate.auth.guard import require
from usergate.core.errors import NotFound, ValidationFailed
from usergate.core.logs import log_group_event
from usergate.core.models import Group, GroupWithCount
from usergate.core.registry import KnownPermission
from usergate.stores.groups import GroupStore
from usergate.stores.users import UserStore

router = APIRouter(prefix="/api/groups", tags=["groups"])

ADMIN = KnownPermission.ADMIN_MANAGE.value


class CreateGroupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    name: str = ""
    description: str | None = None
    is_public: bool = Field(default=False, alias="isPublic")


class UpdateGroupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    group_id: int | None = Field(default=None, alias="groupId")
    name: str | None = None
    description: str | None = None
    is_public: bool | None = Field(default=None, alias="isPublic")


class GroupIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    group_id: int | None = Field(default=None, alias="groupId")


class MembershipRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    group_id: int | None = Field(default=None, alias="groupId")
    user_id: int | None = Field(default=None, alias="userId")


def group_summary(group: Group) -> dict:
    summary = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "isPublic": group.is_public,
        "createdAt": group.created_at,
        "updatedAt": group.updated_at,
    }
    if isinstance(group, GroupWithCount):
        summary["memberCount"] = group.member_count
    return summary


def _require_membership_ids(data: MembershipRequest) -> tuple[int, int]:
    if not data.group_id or not data.user_id:
        raise ValidationFailed("Group ID and User ID are required")
    return data.group_id, data.user_id


@router.get("/list")
async def list_groups(
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    return {"success": True, "groups": [group_summary(g) for g in await groups.list_groups()]}


@router.post("/create")
async def create_group(
    data: CreateGroupRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    if not data.name:
        raise ValidationFailed("Group name is required")
    
    group = await groups.create_group(data.name, data.description, data.is_public)
    log_group_event("created", group.id, group.name, ctx.username)
    
    return {"success": True, "message": "Group created successfully", "group": group_summary(group)}


@router.patch("/update")
async def update_group(
    data: UpdateGroupRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    if not data.group_id:
        raise ValidationFailed("Group ID is required")
    
    changes: dict = {"name": data.name, "is_public": data.is_public}
    if "description" in data.model_fields_set:
        changes["description"] = data.description
    
    group = await groups.update_group(data.group_id, **changes)
    
    fields = [
        label
        for attr, label in (("name", "name"), ("description", "description"), ("is_public", "isPublic"))
        if attr in data.model_fields_set
    ]
    log_group_event("updated", group.id, group.name, ctx.username, fields=fields)
    
    return {"success": True, "message": "Group updated successfully", "group": group_summary(group)}


@router.post("/delete")
async def delete_group(
    data: GroupIdRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    if not data.group_id:
        raise ValidationFailed("Group ID is required")
    
    group = await groups.delete_group(data.group_id)
    if group is None:
        raise NotFound("Group not found")
    
    log_group_event("deleted", group.id, group.name, ctx.username)
    return {"success": True, "message": "Group deleted successfully"}


@router.get("/members")
async def list_members(
    group_id: int | None = Query(default=None, alias="groupId"),
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
):
    if not group_id:
        raise ValidationFailed("Group ID is required")
    
    members = await groups.list_members(group_id)
    return {
        "success": True,
        "members": [{"id": u.id, "username": u.username, "email": u.email} for u in members],
    }


@router.post("/add-member")
async def add_member(
    data: MembershipRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
    users: UserStore = Depends(get_users),
):
    group_id, user_id = _require_membership_ids(data)
    
    await groups.add_member(group_id, user_id)
    
    group = await groups.get_group(group_id)
    user = await users.get_user_by_id(user_id)
    log_group_event(
        "member_added",
        group_id,
        group.name if group else "Unknown",
        ctx.username,
        addedUser=user.username if user else f"ID:{user_id}",
    )
    return {"success": True, "message": "User added to group successfully"}


@router.post("/remove-member")
async def remove_member(
    data: MembershipRequest,
    ctx: AuthContext = Depends(require(ADMIN)),
    groups: GroupStore = Depends(get_groups),
    users: UserStore = Depends(get_users),
):
    group_id, user_id = _require_membership_ids(data)
    
    await groups.remove_member(group_id, user_id)
    
    group = await groups.get_group(group_id)
    user = await users.get_user_by_id(user_id)
    log_group_event(
        "member_removed",
        group_id,
        group.name if group else "Unknown",
        ctx.username,
        removedUser=user.username if user else f"ID:{user_id}",
    )
    return {"success": True, "message": "User removed from group successfully"}
