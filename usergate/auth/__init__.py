"""
Authentication and authorization.

Credentials, sessions and API tokens establish who is calling; the
resolver and guard decide what they may do.
"""

from usergate.auth.context import AuthContext
from usergate.auth.credentials import (
    hash_password,
    verify_password,
    generate_token,
    hash_token,
    generate_password,
)
from usergate.auth.guard import (
    AuthGuard,
    Policy,
    require,
    require_any,
    require_all,
    require_auth,
)
from usergate.auth.rate_limit import RateLimiter, RateLimitConfig
from usergate.auth.resolver import PermissionResolver, has_capability, has_any, has_all
from usergate.auth.sessions import SessionManager
from usergate.auth.tokens import TokenManager

__all__ = [
    # Main interface
    "require",
    "require_any",
    "require_all",
    "require_auth",
    "AuthContext",
    "AuthGuard",
    "Policy",
    # Components
    "SessionManager",
    "TokenManager",
    "PermissionResolver",
    "RateLimiter",
    "RateLimitConfig",
    # Pure checks
    "has_capability",
    "has_any",
    "has_all",
    # Credentials
    "hash_password",
    "verify_password",
    "generate_token",
    "hash_token",
    "generate_password",
]
