"""
Request dependencies.
"""

from __future__ import annotations

from fastapi import Request

from usergate.api.state import AppState
from usergate.auth.sessions import SessionManager
from usergate.auth.tokens import TokenManager
from usergate.config import Settings
from usergate.core.registry import PermissionRegistry
from usergate.services.registration import RegistrationService
from usergate.storage.base import DatabaseConnector
from usergate.stores.groups import GroupStore
from usergate.stores.settings import SettingsStore
from usergate.stores.users import UserStore


def get_state(request: Request) -> AppState:
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return get_state(request).settings


def get_db(request: Request) -> DatabaseConnector:
    return get_state(request).db


def get_registry(request: Request) -> PermissionRegistry:
    return get_state(request).registry


def get_users(request: Request) -> UserStore:
    return get_state(request).users


def get_groups(request: Request) -> GroupStore:
    return get_state(request).groups


def get_app_settings(request: Request) -> SettingsStore:
    return get_state(request).app_settings


def get_sessions(request: Request) -> SessionManager:
    return get_state(request).sessions


def get_tokens(request: Request) -> TokenManager:
    return get_state(request).tokens


def get_registration(request: Request) -> RegistrationService:
    return get_state(request).registration
