"""
Guard - the clean interface for route authorization.

Just use: `ctx: AuthContext = Depends(require("admin.manage"))`

Design:
- `AuthGuard` composes sessions, tokens and the resolver into one decision
- `require()` returns a FastAPI dependency that resolves to AuthContext
- No identity raises AuthenticationRequired (401), a missing capability
  raises PermissionDenied (403), an over-used token raises RateLimited (429)
- A 403 never names the capabilities involved; the detail goes to the log

Identity resolution order: a bearer token is tried first. If it is unknown
the guard falls back to the session cookie, so a stale token in a client
does not lock out a valid browser session. A rate-limited token does not
fall back; the 429 is returned as is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from usergate.auth.context import AuthContext
from usergate.auth.resolver import PermissionResolver
from usergate.auth.sessions import SessionManager
from usergate.auth.tokens import TokenManager
from usergate.core.errors import AuthenticationRequired, PermissionDenied

logger = logging.getLogger(__name__)


def bearer_token(request: Request) -> str | None:
    """The token from `Authorization: Bearer <token>`, if any."""
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# =============================================================================
# Policy - what a route needs
# =============================================================================


@dataclass(frozen=True)
class Policy:
    """
    A capability requirement.
    
        Policy()                                   # authenticated only
        Policy(("admin.manage",))                  # this capability
        Policy(("a.view", "b.view"), match_all=False)  # any of these
    """
    
    capabilities: tuple[str, ...] = ()
    match_all: bool = True
    
    def check(self, ctx: AuthContext) -> tuple[bool, str | None]:
        """Returns: (allowed, error_message)"""
        if not self.capabilities:
            return True, None
        if self.match_all:
            if not ctx.can_all(*self.capabilities):
                missing = [c for c in self.capabilities if not ctx.can(c)]
                return False, f"Missing permissions: {', '.join(missing)}"
        elif not ctx.can_any(*self.capabilities):
            return False, f"Requires one of: {', '.join(self.capabilities)}"
        return True, None


# =============================================================================
# AuthGuard
# =============================================================================


class AuthGuard:
    """Per-request identity and capability checks. Holds no request state."""
    
    def __init__(
        self,
        sessions: SessionManager,
        tokens: TokenManager,
        resolver: PermissionResolver,
    ):
        self.sessions = sessions
        self.tokens = tokens
        self.resolver = resolver
    
    async def resolve_identity(self, request: Request) -> AuthContext | None:
        """Bearer token first, then the session cookie. None if neither matches."""
        token = bearer_token(request)
        if token:
            user = await self.tokens.resolve_token(token)
            if user is not None:
                return AuthContext(user=user, via="token")
        
        session_id = request.cookies.get(self.sessions.cookie_name)
        if session_id:
            user = await self.sessions.lookup_session(session_id)
            if user is not None:
                return AuthContext(user=user, via="session", session_id=session_id)
        
        return None
    
    async def require_auth(self, request: Request) -> AuthContext:
        ctx = await self.resolve_identity(request)
        if ctx is None:
            raise AuthenticationRequired()
        ctx.permissions = await self.resolver.effective_capabilities(ctx.user_id)
        return ctx
    
    async def authorize(self, request: Request, policy: Policy) -> AuthContext:
        ctx = await self.require_auth(request)
        allowed, error = policy.check(ctx)
        if not allowed:
            logger.info("Denied %s on %s %s: %s", ctx.username, request.method, request.url.path, error)
            raise PermissionDenied()
        return ctx
    
    async def require_permission(self, request: Request, permission_key: str) -> AuthContext:
        return await self.authorize(request, Policy((permission_key,)))
    
    async def require_any_permission(self, request: Request, *keys: str) -> AuthContext:
        return await self.authorize(request, Policy(tuple(keys), match_all=False))
    
    async def require_all_permissions(self, request: Request, *keys: str) -> AuthContext:
        return await self.authorize(request, Policy(tuple(keys)))


# =============================================================================
# Main Interface - FastAPI dependencies
# =============================================================================


def get_guard(request: Request) -> AuthGuard:
    return request.app.state.guard


def _create_dependency(policy: Policy) -> Callable:
    """Create a FastAPI dependency from a policy."""
    
    async def dependency(request: Request) -> AuthContext:
        return await get_guard(request).authorize(request, policy)
    
    return dependency


def require(*capabilities: str) -> Callable:
    """
    Require capabilities to access a route (all must be held).
    
    Usage:
        @router.get("/admin/list")
        async def list_users(ctx: AuthContext = Depends(require("admin.manage"))):
            ...
    """
    return _create_dependency(Policy(tuple(capabilities)))


def require_any(*capabilities: str) -> Callable:
    """Require ANY of the listed capabilities."""
    return _create_dependency(Policy(tuple(capabilities), match_all=False))


def require_all(*capabilities: str) -> Callable:
    """Require ALL of the listed capabilities (same as require)."""
    return require(*capabilities)


def require_auth() -> Callable:
    """Just require authentication, no specific capability."""
    return _create_dependency(Policy())
