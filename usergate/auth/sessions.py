"""
Cookie sessions.

A session is an opaque random id mapped to a user with an absolute expiry.
Expired sessions are never returned by lookups, whether or not the sweeper
has deleted them yet. Logout deletes the row; deleting an unknown id is
not an error.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable

from starlette.responses import Response

from usergate.auth.credentials import generate_session_id
from usergate.core.models import Session, User
from usergate.core.utils import utc_now
from usergate.storage.base import DatabaseConnector

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "app_session"
SESSION_LIFETIME = timedelta(days=7)


class SessionManager:
    """Create, resolve and revoke sessions, and manage the cookie."""
    
    def __init__(
        self,
        db: DatabaseConnector,
        lifetime: timedelta = SESSION_LIFETIME,
        cookie_name: str = SESSION_COOKIE_NAME,
        secure_cookie: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.lifetime = lifetime
        self.cookie_name = cookie_name
        self.secure_cookie = secure_cookie
        self._clock = clock
    
    async def create_session(self, user_id: int) -> str:
        """Persist a new session and return its id."""
        session_id = generate_session_id()
        now = self._clock()
        await self.db.query(
            "INSERT INTO sessions (id, user_id, expires_at, created_at) VALUES ($1, $2, $3, $4)",
            [session_id, user_id, now + self.lifetime, now],
        )
        return session_id
    
    async def get_session(self, session_id: str) -> Session | None:
        row = await self.db.query_one(
            """SELECT id, user_id, expires_at, created_at FROM sessions
               WHERE id = $1 AND expires_at > $2""",
            [session_id, self._clock()],
        )
        return Session(**row) if row else None
    
    async def lookup_session(self, session_id: str) -> User | None:
        """The user behind a live session, or None."""
        if not session_id:
            return None
        row = await self.db.query_one(
            """SELECT u.id, u.username, u.email, u.created_at, u.updated_at
               FROM users u
               INNER JOIN sessions s ON u.id = s.user_id
               WHERE s.id = $1 AND s.expires_at > $2""",
            [session_id, self._clock()],
        )
        return User(**row) if row else None
    
    async def delete_session(self, session_id: str) -> None:
        await self.db.query("DELETE FROM sessions WHERE id = $1", [session_id])
    
    async def delete_user_sessions(self, user_id: int) -> int:
        rows = await self.db.query(
            "DELETE FROM sessions WHERE user_id = $1 RETURNING id",
            [user_id],
        )
        return len(rows)
    
    async def sweep_expired(self) -> int:
        """Delete expired rows. Lookups already ignore them."""
        rows = await self.db.query(
            "DELETE FROM sessions WHERE expires_at <= $1 RETURNING id",
            [self._clock()],
        )
        return len(rows)
    
    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep forever at a fixed interval. Cancel to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                removed = await self.sweep_expired()
            except Exception:
                logger.exception("Expired session sweep failed")
                continue
            if removed:
                logger.info("Removed %d expired sessions", removed)
    
    # =========================================================================
    # Cookie
    # =========================================================================
    
    @property
    def max_age_seconds(self) -> int:
        return int(self.lifetime.total_seconds())
    
    def set_cookie(self, response: Response, session_id: str) -> None:
        response.set_cookie(
            key=self.cookie_name,
            value=session_id,
            max_age=self.max_age_seconds,
            path="/",
            secure=self.secure_cookie,
            httponly=True,
            samesite="lax",
        )
    
    def clear_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.cookie_name,
            path="/",
            secure=self.secure_cookie,
            httponly=True,
            samesite="lax",
        )
