# =============================================================================
# Application Settings Routes
# =============================================================================
#
#   GET   /api/settings          - Current settings (public)
#   PATCH /api/settings/update   - Change settings (admin.manage)
#
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from usergate.api.deps import get_app_settings
from usergate.auth.context import AuthContext
from usergate.auth.guard import require
from usergate.core.logs import log_settings_event
from usergate.core.registry import KnownPermission
from usergate.stores.settings import SettingsStore

router = APIRouter(prefix="/api/settings", tags=["settings"])


class UpdateSettingsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    
    registration_enabled: bool | None = Field(default=None, alias="registrationEnabled")
    notify_user_creation: bool | None = Field(default=None, alias="notifyUserCreation")
    notify_admin_registration: bool | None = Field(default=None, alias="notifyAdminRegistration")


@router.get("")
async def get_settings(store: SettingsStore = Depends(get_app_settings)):
    current = await store.get_all()
    return {
        "success": True,
        "settings": {
            "registrationEnabled": current.registration_enabled,
            "notifyUserCreation": current.notify_user_creation,
            "notifyAdminRegistration": current.notify_admin_registration,
        },
    }


@router.patch("/update")
async def update_settings(
    data: UpdateSettingsRequest,
    ctx: AuthContext = Depends(require(KnownPermission.ADMIN_MANAGE.value)),
    store: SettingsStore = Depends(get_app_settings),
):
    changes = data.model_dump(exclude_none=True)
    previous = await store.update(changes)
    
    for key, old_value in previous.items():
        if old_value != changes[key]:
            log_settings_event(key, old_value, changes[key], ctx.username)
    
    return {"success": True, "message": "Settings updated successfully"}
