"""
Permission registry: the capabilities this application declares in code.

A capability is a flat, dot-namespaced string such as "admin.manage". The
registry says which ones exist, what they unlock, and which must always be
granted to the Admins group. Groups may still hold keys the registry does
not list (forward compatibility); those are stored and matched like any
other key.

The actual checking happens in usergate.auth (resolver.py, guard.py).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

import yaml

_KEY_PATTERN = re.compile(r"^[a-z0-9_]+(\.[a-z0-9_]+)*$")


class KnownPermission(str, Enum):
    """Capabilities the application itself checks."""
    
    ADMIN_MANAGE = "admin.manage"          # Users, groups, settings, permissions
    PERMISSIONS_LIST = "permissions.list"  # Permissions page


def is_valid_permission_key(key: str) -> bool:
    """Dot-namespaced lowercase identifier, no wildcards."""
    return bool(_KEY_PATTERN.match(key or ""))


@dataclass(frozen=True)
class RegisteredPermission:
    """A code-declared capability."""
    
    key: str
    description: str
    includes_access: tuple[str, ...] = ()
    requires_admin_by_default: bool = False
    
    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "description": self.description,
            "includesAccess": list(self.includes_access),
            "defaultAdmin": self.requires_admin_by_default,
        }


BUILTIN_PERMISSIONS: tuple[RegisteredPermission, ...] = (
    RegisteredPermission(
        key=KnownPermission.ADMIN_MANAGE.value,
        description="Manage Page (Admin)",
        includes_access=(
            "API: /api/users/admin/* (all user management)",
            "API: /api/groups/* (all group management)",
            "API: /api/settings/update (app settings)",
            "API: /api/permissions/* (permission management)",
            "API: /api/logs (activity log)",
        ),
        requires_admin_by_default=True,
    ),
    RegisteredPermission(
        key=KnownPermission.PERMISSIONS_LIST.value,
        description="View Permissions Page",
        includes_access=(
            "Page: /permissions",
            "Section: Permission list view",
        ),
        requires_admin_by_default=False,
    ),
)


class RegistryError(Exception):
    """Raised when a registry definition is invalid."""
    pass


@dataclass
class PermissionRegistry:
    """Ordered, duplicate-free collection of registered permissions."""
    
    _permissions: dict[str, RegisteredPermission] = field(default_factory=dict)
    
    @classmethod
    def default(cls) -> PermissionRegistry:
        registry = cls()
        registry.register_all(BUILTIN_PERMISSIONS)
        return registry
    
    def register(self, permission: RegisteredPermission) -> None:
        if not is_valid_permission_key(permission.key):
            raise RegistryError(f"Invalid permission key '{permission.key}'")
        if permission.key in self._permissions:
            raise RegistryError(f"Permission '{permission.key}' is already registered")
        self._permissions[permission.key] = permission
    
    def register_all(self, permissions: Iterable[RegisteredPermission]) -> None:
        for permission in permissions:
            self.register(permission)
    
    def load_yaml(self, path: Path | str) -> int:
        """
        Register permissions from a YAML file.
        
        Expected shape:
            permissions:
              - key: reports.view
                description: View Reports
                includes_access: ["Page: /reports"]
                requires_admin_by_default: false
        
        Returns the number of permissions added.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        
        entries = data.get("permissions", []) if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise RegistryError(f"{path}: expected a 'permissions' list")
        
        for entry in entries:
            if not isinstance(entry, dict) or "key" not in entry:
                raise RegistryError(f"{path}: every permission needs a 'key'")
            self.register(RegisteredPermission(
                key=entry["key"],
                description=entry.get("description", ""),
                includes_access=tuple(entry.get("includes_access", [])),
                requires_admin_by_default=bool(entry.get("requires_admin_by_default", False)),
            ))
        return len(entries)
    
    def all(self) -> list[RegisteredPermission]:
        return list(self._permissions.values())
    
    def default_admin_permissions(self) -> list[RegisteredPermission]:
        """Permissions that must always be granted to the Admins group."""
        return [p for p in self._permissions.values() if p.requires_admin_by_default]
    
    def is_registered(self, key: str) -> bool:
        return key in self._permissions
    
    def get(self, key: str) -> RegisteredPermission | None:
        return self._permissions.get(key)
    
    def registered_permissions(self) -> list[dict[str, Any]]:
        """Registry view for the admin UI."""
        return [p.to_dict() for p in self._permissions.values()]
    
    def __len__(self) -> int:
        return len(self._permissions)
    
    def __contains__(self, key: object) -> bool:
        return key in self._permissions


def build_registry(permissions_file: str | None = None) -> PermissionRegistry:
    """Built-in permissions, extended from YAML when a file is configured."""
    registry = PermissionRegistry.default()
    if permissions_file:
        registry.load_yaml(permissions_file)
    return registry
