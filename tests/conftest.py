"""
Shared fixtures: an in-memory SQLite database with the schema applied,
and the stores and managers built on it.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from usergate.api import create_app
from usergate.auth.rate_limit import RateLimitConfig, RateLimiter
from usergate.auth.resolver import PermissionResolver
from usergate.auth.sessions import SessionManager
from usergate.auth.tokens import TokenManager
from usergate.config import Settings
from usergate.services.registration import RegistrationService
from usergate.storage import DatabaseConfig, SQLiteConnector, initialize_schema
from usergate.stores import GroupStore, SettingsStore, UserStore

# Fast hashing keeps the suite quick; the format is unchanged
TEST_ITERATIONS = 1_000


class FakeClock:
    """Controllable UTC clock for expiry tests."""
    
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    
    def __call__(self) -> datetime:
        return self.now
    
    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


# =============================================================================
# Storage
# =============================================================================


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database with schema, settings and Admins group."""
    connector = SQLiteConnector(DatabaseConfig(type="sqlite", database=":memory:"))
    await connector.connect()
    await initialize_schema(connector)
    yield connector
    await connector.disconnect()


@pytest.fixture
def groups(db):
    return GroupStore(db)


@pytest.fixture
def users(db, groups):
    return UserStore(db, groups=groups, password_iterations=TEST_ITERATIONS)


@pytest.fixture
def settings_store(db):
    return SettingsStore(db)


@pytest.fixture
def resolver(db):
    return PermissionResolver(db)


@pytest.fixture
def registration(users, groups, settings_store):
    return RegistrationService(users, groups, settings_store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sessions(db, clock):
    return SessionManager(db, lifetime=timedelta(days=7), clock=clock)


@pytest.fixture
def limiter():
    return RateLimiter(RateLimitConfig(max_requests=100, window_seconds=60))


@pytest_asyncio.fixture
async def tokens(db, limiter):
    manager = TokenManager(db, limiter)
    yield manager
    await manager.drain()


@pytest_asyncio.fixture
async def alice(users):
    return await users.create_user("alice", "password123", "alice@example.com")


@pytest_asyncio.fixture
async def bob(users):
    return await users.create_user("bob", "password456", "bob@example.com")


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def app_settings(tmp_path):
    return Settings(
        _env_file=None,
        environment="test",
        sqlite_path=":memory:",
        log_dir=str(tmp_path / "logs"),
        password_hash_iterations=TEST_ITERATIONS,
    )


@pytest.fixture
def client(app_settings):
    app = create_app(app_settings)
    with TestClient(app) as test_client:
        yield test_client
