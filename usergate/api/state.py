"""
Application state - the services a running app holds.

Everything is built once per app from the settings and one connector,
then kept on `app.state` for the request dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from usergate.auth.guard import AuthGuard
from usergate.auth.rate_limit import RateLimitConfig, RateLimiter
from usergate.auth.resolver import PermissionResolver
from usergate.auth.sessions import SessionManager
from usergate.auth.tokens import TokenManager
from usergate.config import Settings
from usergate.core.registry import PermissionRegistry
from usergate.services.registration import RegistrationService
from usergate.storage.base import DatabaseConnector
from usergate.stores.groups import GroupStore
from usergate.stores.settings import SettingsStore
from usergate.stores.users import UserStore


@dataclass
class AppState:
    """Application state - initialized at startup."""
    
    settings: Settings
    db: DatabaseConnector
    registry: PermissionRegistry
    users: UserStore
    groups: GroupStore
    app_settings: SettingsStore
    sessions: SessionManager
    tokens: TokenManager
    rate_limiter: RateLimiter
    resolver: PermissionResolver
    guard: AuthGuard
    registration: RegistrationService


def build_state(
    settings: Settings,
    db: DatabaseConnector,
    registry: PermissionRegistry,
) -> AppState:
    groups = GroupStore(
        db,
        admin_group_name=settings.admin_group_name,
        admin_permission_key=settings.admin_permission_key,
        admin_group_description=settings.admin_group_description,
    )
    users = UserStore(db, groups=groups, password_iterations=settings.password_hash_iterations)
    app_settings = SettingsStore(db)
    
    rate_limiter = RateLimiter(RateLimitConfig(
        max_requests=settings.token_rate_limit,
        window_seconds=settings.token_rate_window_seconds,
        prune_interval_seconds=settings.rate_limit_prune_interval_seconds,
    ))
    sessions = SessionManager(
        db,
        lifetime=timedelta(days=settings.session_lifetime_days),
        cookie_name=settings.session_cookie_name,
        secure_cookie=settings.is_production,
    )
    tokens = TokenManager(db, rate_limiter)
    resolver = PermissionResolver(db)
    
    return AppState(
        settings=settings,
        db=db,
        registry=registry,
        users=users,
        groups=groups,
        app_settings=app_settings,
        sessions=sessions,
        tokens=tokens,
        rate_limiter=rate_limiter,
        resolver=resolver,
        guard=AuthGuard(sessions, tokens, resolver),
        registration=RegistrationService(users, groups, app_settings),
    )
