"""
Core types shared by every layer: models, errors, logging, utilities.
"""

from usergate.core.errors import (
    UsergateError,
    InvalidCredentials,
    AuthenticationRequired,
    PermissionDenied,
    RateLimited,
    ConflictingState,
    NotFound,
    ValidationFailed,
    DatabaseError,
    TransactionError,
    UniqueViolation,
)
from usergate.core.models import (
    User,
    UserWithPermissions,
    Session,
    ApiToken,
    IssuedToken,
    Group,
    GroupWithCount,
    Permission,
    AppSettings,
)
from usergate.core.utils import utc_now

__all__ = [
    # Errors
    "UsergateError",
    "InvalidCredentials",
    "AuthenticationRequired",
    "PermissionDenied",
    "RateLimited",
    "ConflictingState",
    "NotFound",
    "ValidationFailed",
    "DatabaseError",
    "TransactionError",
    "UniqueViolation",
    # Models
    "User",
    "UserWithPermissions",
    "Session",
    "ApiToken",
    "IssuedToken",
    "Group",
    "GroupWithCount",
    "Permission",
    "AppSettings",
    # Utils
    "utc_now",
]
