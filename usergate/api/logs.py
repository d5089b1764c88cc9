"""
Activity log viewer (admin.manage).

    GET /api/logs?search=&limit=&offset=

`limit` defaults to 100 and is capped at 1000.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from usergate.api.deps import get_settings
from usergate.auth.context import AuthContext
from usergate.auth.guard import require
from usergate.config import Settings
from usergate.core.logs import read_activity_log
from usergate.core.registry import KnownPermission

router = APIRouter(prefix="/api", tags=["logs"])

MAX_LOG_LIMIT = 1000


@router.get("/logs")
async def get_logs(
    search: str = "",
    limit: int = 100,
    offset: int = 0,
    ctx: AuthContext = Depends(require(KnownPermission.ADMIN_MANAGE.value)),
    settings: Settings = Depends(get_settings),
):
    limit = min(max(limit, 1), MAX_LOG_LIMIT)
    offset = max(offset, 0)
    
    entries, total = read_activity_log(settings.log_dir, search=search, limit=limit, offset=offset)
    
    result = {
        "success": True,
        "logs": entries,
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + limit < total,
    }
    if total == 0 and not search:
        result["message"] = "No logs available yet"
    return result
