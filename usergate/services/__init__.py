"""
Application services built on the stores.
"""

from usergate.services.registration import Registration, RegistrationService, validate_new_user
from usergate.services.sync import SyncResult, sync_permissions

__all__ = [
    "Registration",
    "RegistrationService",
    "validate_new_user",
    "SyncResult",
    "sync_permissions",
]
