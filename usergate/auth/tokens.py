"""
Personal API tokens.

The plaintext token is returned once, at issue time. Only its SHA-256
digest is stored, and resolution looks the digest up directly. Every
resolution counts against a per-digest rate limit; going over it raises
`RateLimited`, which is distinct from an unknown token (None).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from usergate.auth.credentials import generate_token, hash_token
from usergate.auth.rate_limit import RateLimiter
from usergate.core.errors import RateLimited, ValidationFailed
from usergate.core.models import ApiToken, IssuedToken, User
from usergate.core.utils import utc_now
from usergate.storage.base import DatabaseConnector

logger = logging.getLogger(__name__)

MAX_TOKEN_NAME_LENGTH = 100


class TokenManager:
    """Issue, resolve, list and revoke API tokens."""
    
    def __init__(
        self,
        db: DatabaseConnector,
        rate_limiter: RateLimiter,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.rate_limiter = rate_limiter
        self._clock = clock
        self._pending: set[asyncio.Task] = set()
    
    async def issue_token(self, user_id: int, name: str) -> IssuedToken:
        """Create a token. The returned plaintext is never retrievable again."""
        name = (name or "").strip()
        if not name:
            raise ValidationFailed("Token name is required")
        if len(name) > MAX_TOKEN_NAME_LENGTH:
            raise ValidationFailed(f"Token name must be {MAX_TOKEN_NAME_LENGTH} characters or less")
        
        token = generate_token()
        row = await self.db.query_one(
            """INSERT INTO api_tokens (user_id, token_hash, name, created_at)
               VALUES ($1, $2, $3, $4)
               RETURNING id, name, created_at""",
            [user_id, hash_token(token), name, self._clock()],
        )
        return IssuedToken(token=token, **row)
    
    async def resolve_token(self, token: str) -> User | None:
        """
        The owner of a presented token, or None if it is unknown.
        
        Raises:
            RateLimited: this token was presented too often in the current window
        """
        token_hash = hash_token(token)
        
        if not self.rate_limiter.check(f"token:{token_hash}"):
            raise RateLimited()
        
        row = await self.db.query_one(
            """SELECT u.id, u.username, u.email, u.created_at, u.updated_at, t.id AS token_id
               FROM users u
               INNER JOIN api_tokens t ON t.user_id = u.id
               WHERE t.token_hash = $1""",
            [token_hash],
        )
        if row is None:
            return None
        
        self._touch(row.pop("token_id"))
        return User(**row)
    
    async def list_tokens(self, user_id: int) -> list[ApiToken]:
        rows = await self.db.query(
            """SELECT id, user_id, name, last_used_at, created_at
               FROM api_tokens
               WHERE user_id = $1
               ORDER BY created_at DESC""",
            [user_id],
        )
        return [ApiToken(**row) for row in rows]
    
    async def get_token(self, token_id: int, owner_id: int) -> ApiToken | None:
        row = await self.db.query_one(
            """SELECT id, user_id, name, last_used_at, created_at
               FROM api_tokens
               WHERE id = $1 AND user_id = $2""",
            [token_id, owner_id],
        )
        return ApiToken(**row) if row else None
    
    async def revoke_token(self, token_id: int, owner_id: int) -> ApiToken | None:
        """
        Delete a token owned by `owner_id`.
        
        Returns the deleted token, or None when it does not exist or belongs
        to someone else (the two cases are indistinguishable to the caller).
        """
        row = await self.db.query_one(
            """DELETE FROM api_tokens WHERE id = $1 AND user_id = $2
               RETURNING id, user_id, name, last_used_at, created_at""",
            [token_id, owner_id],
        )
        return ApiToken(**row) if row else None
    
    # =========================================================================
    # Last-used bookkeeping
    # =========================================================================
    
    def _touch(self, token_id: int) -> None:
        """Record last use in the background; the caller does not wait."""
        task = asyncio.create_task(self._update_last_used(token_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
    
    async def _update_last_used(self, token_id: int) -> None:
        try:
            await self.db.query(
                "UPDATE api_tokens SET last_used_at = $1 WHERE id = $2",
                [self._clock(), token_id],
            )
        except Exception:
            logger.exception("Failed to update token last_used_at")
    
    async def drain(self) -> None:
        """Wait for outstanding last-used updates (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
