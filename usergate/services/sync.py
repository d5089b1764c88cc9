"""
Permission registry sync.

Runs once at startup and is safe to run on every boot. It makes sure the
protected Admins group exists and holds every registered permission that
defaults to admins. It is additive only: grants that are no longer
declared are left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from usergate.core.registry import PermissionRegistry
from usergate.storage.base import DatabaseConnector, atomic
from usergate.stores.groups import GroupStore

if TYPE_CHECKING:
    from usergate.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    admin_group_id: int
    admin_group_created: bool = False
    granted: list[str] = field(default_factory=list)
    already_present: list[str] = field(default_factory=list)


async def sync_permissions(
    db: DatabaseConnector,
    settings: Settings | None = None,
    registry: PermissionRegistry | None = None,
) -> SyncResult:
    """Reconcile the registry's default-admin permissions into the Admins group."""
    registry = registry or PermissionRegistry.default()
    if settings is not None:
        groups = GroupStore(
            db,
            admin_group_name=settings.admin_group_name,
            admin_permission_key=settings.admin_permission_key,
            admin_group_description=settings.admin_group_description,
        )
    else:
        groups = GroupStore(db)
    
    async with atomic(db):
        admin_group, created = await groups.ensure_admin_group()
        if created:
            logger.info("Created %s group", groups.admin_group_name)
        
        result = SyncResult(admin_group_id=admin_group.id, admin_group_created=created)
        
        keys = [p.key for p in registry.default_admin_permissions()]
        # The mandatory key is held even if a custom registry forgot to flag it
        if groups.admin_permission_key not in keys:
            keys.append(groups.admin_permission_key)
        
        for key in keys:
            if await groups.grant_if_missing(admin_group.id, key):
                result.granted.append(key)
            else:
                result.already_present.append(key)
    
    logger.info(
        "Permission sync complete: %d granted, %d already present",
        len(result.granted),
        len(result.already_present),
    )
    return result
