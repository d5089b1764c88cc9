# =============================================================================
# Credentials
# =============================================================================
#
# Password hashing, opaque token generation/hashing, and input validation.
#
#   - Passwords: PBKDF2-HMAC-SHA512 with a random per-call salt, stored as
#     "salt:hash" (both hex, so ':' never occurs inside either part).
#   - API tokens / session ids: secrets-generated, URL-safe.
#   - Token hashes: SHA-256. Tokens carry 256 bits of entropy, so a slow
#     KDF adds nothing; lookups need a deterministic digest.
#
# =============================================================================

from __future__ import annotations

import hashlib
import re
import secrets
import string

PASSWORD_HASH_ALGORITHM = "sha512"
PASSWORD_HASH_ITERATIONS = 100_000
PASSWORD_SALT_BYTES = 16
PASSWORD_KEY_BYTES = 64

TOKEN_BYTES = 32
SESSION_ID_BYTES = 32

_USERNAME = re.compile(r"^[a-zA-Z0-9_]{3,50}$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8


# =============================================================================
# Password Hashing
# =============================================================================


def _derive(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        PASSWORD_HASH_ALGORITHM,
        password.encode("utf-8"),
        salt.encode("utf-8"),
        iterations,
        dklen=PASSWORD_KEY_BYTES,
    ).hex()


def hash_password(password: str, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    """
    Hash a password.
    
    Returns: salt:hash format string
    """
    salt = secrets.token_hex(PASSWORD_SALT_BYTES)
    return f"{salt}:{_derive(password, salt, iterations)}"


def verify_password(
    password: str,
    password_hash: str,
    iterations: int = PASSWORD_HASH_ITERATIONS,
) -> bool:
    """Verify a password against its hash. Malformed hashes never verify."""
    try:
        salt, stored_hash = password_hash.split(":")
    except (ValueError, AttributeError):
        return False
    if not salt or not stored_hash:
        return False
    try:
        candidate = _derive(password, salt, iterations)
    except (TypeError, AttributeError):
        return False
    return secrets.compare_digest(candidate, stored_hash)


# =============================================================================
# Tokens
# =============================================================================


def generate_token() -> str:
    """A 32-byte random token in URL-safe base64 (43 characters)."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Deterministic SHA-256 hex digest used for storage and lookup."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def verify_token(token: str, token_hash: str) -> bool:
    return secrets.compare_digest(hash_token(token), token_hash)


def generate_session_id() -> str:
    return secrets.token_hex(SESSION_ID_BYTES)


def generate_password(length: int = 16) -> str:
    """
    Random password with at least one lowercase, uppercase, digit and symbol.
    
    Used for admin-initiated password resets.
    """
    symbols = "!@#$%^&*"
    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits, symbols]
    alphabet = "".join(pools)
    
    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


# =============================================================================
# Validation
# =============================================================================


def is_valid_username(username: str) -> bool:
    """3-50 characters, letters, digits and underscores."""
    return bool(_USERNAME.match(username or ""))


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL.match(email or ""))


def is_valid_password(password: str) -> bool:
    return len(password or "") >= MIN_PASSWORD_LENGTH
