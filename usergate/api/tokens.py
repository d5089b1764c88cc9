# =============================================================================
# API Token Routes (authenticated)
# =============================================================================
#
#   POST   /api/tokens/create    - Issue a token (plaintext shown once)
#   GET    /api/tokens/list      - Own tokens, newest first
#   DELETE /api/tokens/{id}      - Revoke an own token
#
# =============================================================================

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from usergate.api.deps import get_tokens
from usergate.auth.context import AuthContext
from usergate.auth.guard import require_auth
from usergate.auth.tokens import TokenManager
from usergate.core.errors import NotFound
from usergate.core.logs import log_token_event

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


class CreateTokenRequest(BaseModel):
    name: str = ""


@router.post("/create")
async def create_token(
    data: CreateTokenRequest,
    ctx: AuthContext = Depends(require_auth()),
    tokens: TokenManager = Depends(get_tokens),
):
    issued = await tokens.issue_token(ctx.user_id, data.name)
    log_token_event("created", issued.id, issued.name, ctx.user_id, ctx.username)
    return {
        "success": True,
        "token": issued.token,
        "id": issued.id,
        "name": issued.name,
        "created_at": issued.created_at,
    }


@router.get("/list")
async def list_tokens(
    ctx: AuthContext = Depends(require_auth()),
    tokens: TokenManager = Depends(get_tokens),
):
    return {
        "success": True,
        "tokens": [
            {
                "id": t.id,
                "name": t.name,
                "last_used_at": t.last_used_at,
                "created_at": t.created_at,
            }
            for t in await tokens.list_tokens(ctx.user_id)
        ],
    }


@router.delete("/{token_id}")
async def delete_token(
    token_id: int,
    ctx: AuthContext = Depends(require_auth()),
    tokens: TokenManager = Depends(get_tokens),
):
    revoked = await tokens.revoke_token(token_id, ctx.user_id)
    if revoked is None:
        raise NotFound("Token not found or does not belong to you")
    
    log_token_event("deleted", revoked.id, revoked.name, ctx.user_id, ctx.username)
    return {"success": True, "message": "Token deleted successfully"}
