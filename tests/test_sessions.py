"""
Tests for cookie sessions.
"""

import pytest
from starlette.responses import Response

from usergate.auth.sessions import SessionManager


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_lookup_returns_owner(self, sessions, alice):
        session_id = await sessions.create_session(alice.id)
        
        user = await sessions.lookup_session(session_id)
        assert user is not None
        assert user.id == alice.id

    @pytest.mark.asyncio
    async def test_expiry_is_seven_days(self, sessions, alice, clock):
        session_id = await sessions.create_session(alice.id)
        session = await sessions.get_session(session_id)
        
        assert (session.expires_at - session.created_at).days == 7

    @pytest.mark.asyncio
    async def test_expired_session_resolves_to_none_without_deletion(self, sessions, alice, clock):
        session_id = await sessions.create_session(alice.id)
        
        clock.advance(days=6, hours=23)
        assert await sessions.lookup_session(session_id) is not None
        
        clock.advance(hours=2)
        assert await sessions.lookup_session(session_id) is None
        # Row still exists until swept
        rows = await sessions.db.query("SELECT id FROM sessions WHERE id = $1", [session_id])
        assert len(rows) == 1

    @pytest.mark.asyncio
    async def test_unknown_and_empty_ids(self, sessions):
        assert await sessions.lookup_session("nope") is None
        assert await sessions.lookup_session("") is None

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, sessions, alice):
        session_id = await sessions.create_session(alice.id)
        
        await sessions.delete_session(session_id)
        await sessions.delete_session(session_id)
        assert await sessions.lookup_session(session_id) is None

    @pytest.mark.asyncio
    async def test_multiple_sessions_per_user(self, sessions, alice):
        first = await sessions.create_session(alice.id)
        second = await sessions.create_session(alice.id)
        
        assert first != second
        await sessions.delete_session(first)
        assert await sessions.lookup_session(second) is not None
        
        assert await sessions.delete_user_sessions(alice.id) == 1

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(self, sessions, alice, clock):
        old = await sessions.create_session(alice.id)
        clock.advance(days=5)
        fresh = await sessions.create_session(alice.id)
        clock.advance(days=3)
        
        assert await sessions.sweep_expired() == 1
        assert await sessions.lookup_session(old) is None
        assert await sessions.lookup_session(fresh) is not None

    @pytest.mark.asyncio
    async def test_deleting_user_removes_sessions(self, sessions, users, alice):
        session_id = await sessions.create_session(alice.id)
        await users.delete_user(alice.id)
        
        assert await sessions.get_session(session_id) is None


class TestSessionCookie:
    def test_set_cookie_attributes(self, db):
        manager = SessionManager(db)
        response = Response()
        manager.set_cookie(response, "abc")
        
        header = response.headers["set-cookie"]
        assert header.startswith("app_session=abc")
        assert "HttpOnly" in header
        assert "Max-Age=604800" in header
        assert "Path=/" in header
        assert "SameSite=lax" in header
        assert "Secure" not in header

    def test_secure_in_production(self, db):
        manager = SessionManager(db, secure_cookie=True)
        response = Response()
        manager.set_cookie(response, "abc")
        assert "Secure" in response.headers["set-cookie"]

    def test_clear_cookie(self, db):
        manager = SessionManager(db)
        response = Response()
        manager.clear_cookie(response)
        
        header = response.headers["set-cookie"]
        assert header.startswith('app_session=""')
        assert "Max-Age=0" in header
