"""
Error taxonomy.

Every failure that can reach a client is a `UsergateError` carrying the
HTTP status it maps to and a message that is safe to show. Internal
detail (SQL text, driver errors) goes to the log, never into `message`.
"""

from __future__ import annotations


class UsergateError(Exception):
    """Base class for all application errors."""
    
    status_code: int = 500
    default_message: str = "Internal server error"
    
    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(UsergateError):
    """Bad username/password. Never says which part was wrong."""
    
    status_code = 401
    default_message = "Invalid credentials"


class AuthenticationRequired(UsergateError):
    """No valid session or token."""
    
    status_code = 401
    default_message = "Authentication required"


class PermissionDenied(UsergateError):
    """Valid identity, insufficient capability."""
    
    status_code = 403
    default_message = "Permission denied"


class RateLimited(UsergateError):
    """Token lookup over threshold."""
    
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."


class ConflictingState(UsergateError):
    """Duplicate names or a protected-group invariant violation."""
    
    status_code = 409
    default_message = "Conflicting state"


class NotFound(UsergateError):
    """Referenced entity does not exist."""
    
    status_code = 404
    default_message = "Not found"


class ValidationFailed(UsergateError):
    """Request input is malformed."""
    
    status_code = 400
    default_message = "Invalid request"


# =============================================================================
# Storage errors
# =============================================================================


class DatabaseError(UsergateError):
    """Storage layer failure. The message stays generic."""
    
    status_code = 500
    default_message = "Database error"


class TransactionError(DatabaseError):
    """Transaction misuse: nested begin, or commit/rollback with none active."""
    pass


class UniqueViolation(DatabaseError):
    """A unique constraint rejected the write."""
    pass
