"""
Tests for the storage layer: SQLite connector, transactions, manager, schema.
"""

import asyncio
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from usergate.core.errors import DatabaseError, TransactionError, UniqueViolation
from usergate.storage import DatabaseConfig, DatabaseManager, SQLiteConnector, atomic, initialize_schema
from usergate.storage.base import DatabaseConnector


def memory_config(name=":memory:"):
    return DatabaseConfig(type="sqlite", database=name)


@pytest_asyncio.fixture
async def raw_db():
    connector = SQLiteConnector(memory_config())
    await connector.connect()
    await connector.query("CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT UNIQUE, seen_at TEXT)")
    yield connector
    await connector.disconnect()


class TestSQLiteQueries:
    @pytest.mark.asyncio
    async def test_positional_placeholders(self, raw_db):
        await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["a"])
        await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["b"])
        
        rows = await raw_db.query("SELECT name FROM items WHERE name IN ($2, $1) ORDER BY name", ["a", "b"])
        assert [r["name"] for r in rows] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_query_one(self, raw_db):
        assert await raw_db.query_one("SELECT name FROM items") is None
        await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["a"])
        assert await raw_db.query_one("SELECT name FROM items") == {"name": "a"}

    @pytest.mark.asyncio
    async def test_unique_violation(self, raw_db):
        await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["a"])
        with pytest.raises(UniqueViolation):
            await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["a"])

    @pytest.mark.asyncio
    async def test_sql_error_is_generic(self, raw_db):
        with pytest.raises(DatabaseError) as exc_info:
            await raw_db.query("SELECT * FROM missing_table")
        assert "missing_table" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_datetimes_stored_as_sortable_utc_text(self, raw_db):
        moment = datetime(2025, 3, 4, 5, 6, 7, 890, tzinfo=timezone.utc)
        await raw_db.query("INSERT INTO items (name, seen_at) VALUES ($1, $2)", ["a", moment])
        
        row = await raw_db.query_one("SELECT seen_at FROM items")
        assert row["seen_at"] == "2025-03-04T05:06:07.000890+00:00"

    @pytest.mark.asyncio
    async def test_query_when_disconnected(self):
        connector = SQLiteConnector(memory_config())
        with pytest.raises(DatabaseError):
            await connector.query("SELECT 1")


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit(self, raw_db):
        async with raw_db.transaction():
            await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["a"])
        
        assert not raw_db.in_transaction
        assert len(await raw_db.query("SELECT * FROM items")) == 1

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, raw_db):
        with pytest.raises(RuntimeError):
            async with raw_db.transaction():
                await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["a"])
                raise RuntimeError("boom")
        
        assert not raw_db.in_transaction
        assert await raw_db.query("SELECT * FROM items") == []

    @pytest.mark.asyncio
    async def test_nested_begin_fails_fast(self, raw_db):
        await raw_db.begin_transaction()
        try:
            with pytest.raises(TransactionError):
                await raw_db.begin_transaction()
        finally:
            await raw_db.rollback()

    @pytest.mark.asyncio
    async def test_commit_without_transaction(self, raw_db):
        with pytest.raises(TransactionError):
            await raw_db.commit()
        with pytest.raises(TransactionError):
            await raw_db.rollback()

    @pytest.mark.asyncio
    async def test_atomic_joins_outer_transaction(self, raw_db):
        with pytest.raises(RuntimeError):
            async with raw_db.transaction():
                async with atomic(raw_db):
                    await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["inner"])
                raise RuntimeError("outer fails")
        
        assert await raw_db.query("SELECT * FROM items") == []

    @pytest.mark.asyncio
    async def test_transactions_are_per_task(self, raw_db):
        async def failing_writer():
            async with raw_db.transaction():
                await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["a"])
                await asyncio.sleep(0)
                raise RuntimeError("boom")

        async def concurrent_writer():
            assert not raw_db.in_transaction
            async with atomic(raw_db):
                await raw_db.query("INSERT INTO items (name) VALUES ($1)", ["b"])

        results = await asyncio.gather(failing_writer(), concurrent_writer(), return_exceptions=True)

        assert isinstance(results[0], RuntimeError)
        assert results[1] is None
        rows = await raw_db.query("SELECT name FROM items")
        assert [row["name"] for row in rows] == ["b"]

    @pytest.mark.asyncio
    async def test_store_write_survives_other_tasks_rollback(self, db, groups):
        reports = await groups.create_group("Reports")

        async def failing_grant():
            async with db.transaction():
                await db.query(
                    "INSERT INTO permissions (group_id, permission_key, created_at) VALUES ($1, $2, $3)",
                    [reports.id, "a.fail", datetime.now(timezone.utc)],
                )
                await asyncio.sleep(0)
                raise RuntimeError("boom")

        results = await asyncio.gather(
            failing_grant(),
            groups.add_permission(reports.id, "b.ok"),
            return_exceptions=True,
        )

        assert isinstance(results[0], RuntimeError)
        keys = {p.permission_key for p in await groups.list_group_permissions(reports.id)}
        assert keys == {"b.ok"}

    @pytest.mark.asyncio
    async def test_atomic_opens_transaction(self, raw_db):
        async with atomic(raw_db):
            assert raw_db.in_transaction
        assert not raw_db.in_transaction


class DummyConnector(DatabaseConnector):
    type = "dummy"
    
    async def connect(self):
        self._connected = True
    
    async def disconnect(self):
        self._connected = False
    
    async def query(self, sql, params=None):
        return []
    
    async def begin_transaction(self):
        pass
    
    async def commit(self):
        pass
    
    async def rollback(self):
        pass
    
    @property
    def in_transaction(self):
        return False


class TestDatabaseManager:
    @pytest.mark.asyncio
    async def test_one_connector_per_config(self):
        manager = DatabaseManager()
        first = await manager.acquire(memory_config())
        second = await manager.acquire(memory_config())
        
        assert first is second
        assert first.is_connected
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_distinct_configs_get_distinct_connectors(self, tmp_path):
        manager = DatabaseManager()
        first = await manager.acquire(memory_config())
        second = await manager.acquire(memory_config(str(tmp_path / "other.db")))
        
        assert first is not second
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_type(self):
        manager = DatabaseManager()
        with pytest.raises(DatabaseError):
            await manager.acquire(DatabaseConfig(type="oracle", database="x"))

    @pytest.mark.asyncio
    async def test_register_connector(self):
        manager = DatabaseManager()
        manager.register_connector("dummy", DummyConnector)
        
        assert "dummy" in manager.available_types()
        connector = await manager.acquire(DatabaseConfig(type="dummy", database="x"))
        assert isinstance(connector, DummyConnector)
        await manager.shutdown()

    @pytest.mark.asyncio
    async def test_release_and_shutdown(self):
        manager = DatabaseManager()
        config = memory_config()
        connector = await manager.acquire(config)
        
        await manager.release(config)
        assert not connector.is_connected
        assert manager.get(config) is None
        
        connector = await manager.acquire(config)
        await manager.shutdown()
        assert not connector.is_connected

    @pytest.mark.asyncio
    async def test_disconnected_connector_is_replaced(self):
        manager = DatabaseManager()
        config = memory_config()
        first = await manager.acquire(config)
        await first.disconnect()
        
        second = await manager.acquire(config)
        assert second is not first
        assert second.is_connected
        await manager.shutdown()


class TestSchema:
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, db):
        await initialize_schema(db)
        
        settings = await db.query("SELECT key FROM settings ORDER BY key")
        assert [r["key"] for r in settings] == [
            "notify_admin_registration",
            "notify_user_creation",
            "registration_enabled",
        ]
        admins = await db.query("SELECT id FROM access_groups WHERE name = $1", ["Admins"])
        assert len(admins) == 1

    @pytest.mark.asyncio
    async def test_seed_keeps_existing_values(self, db):
        await db.query("UPDATE settings SET value = $1 WHERE key = $2", ["false", "registration_enabled"])
        await initialize_schema(db)
        
        row = await db.query_one("SELECT value FROM settings WHERE key = $1", ["registration_enabled"])
        assert row["value"] == "false"
