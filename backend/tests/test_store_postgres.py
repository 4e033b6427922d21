"""
Tests for PostgresStore against a real database.

Skipped unless TEST_DATABASE_URL points at a disposable PostgreSQL database
(tables are truncated):
    TEST_DATABASE_URL=postgresql://localhost/voice_todo_test pytest backend/tests/test_store_postgres.py -v
"""
import os
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from errors import NotFound
from todo_store import PostgresStore

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")
MIGRATION = Path(__file__).parent.parent / "migrations" / "001_create_tables.sql"

pytestmark = pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set")


@asynccontextmanager
async def fresh_store():
    store = PostgresStore(TEST_DATABASE_URL, use_ssl=False)
    pool = await store.get_pool()
    async with pool.acquire() as conn:
        await conn.execute(MIGRATION.read_text())
        await conn.execute("TRUNCATE todos, accounts, users RESTART IDENTITY CASCADE")
    try:
        yield store
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_create_list_update_delete():
    async with fresh_store() as store:
        owner = await store.upsert_oauth_user("pg@example.com", "Pg", None, "google", "pg-1")
        todos = store.for_owner(owner.id)

        first = await todos.create("Buy groceries", 30)
        second = await todos.create("Call mom", 15)
        assert (first.order, second.order) == (0, 1)
        assert first.completed is False

        updated = await todos.update(first.id, {"completed": True, "order": 5})
        assert updated.completed is True
        assert updated.updated_at >= first.updated_at

        assert [t.id for t in await todos.list()] == [second.id, first.id]
        assert (await todos.create("Third", 10)).order == 6

        await todos.delete(second.id)
        with pytest.raises(NotFound):
            await todos.delete(second.id)


@pytest.mark.asyncio
async def test_other_owner_cannot_touch_todo():
    async with fresh_store() as store:
        owner = await store.upsert_oauth_user("a@example.com", "A", None, "google", "a")
        intruder = await store.upsert_oauth_user("b@example.com", "B", None, "google", "b")
        todo = await store.create_todo(owner.id, "Private", 20)

        with pytest.raises(NotFound):
            await store.update_todo(todo.id, intruder.id, {"title": "Mine now"})
        with pytest.raises(NotFound):
            await store.delete_todo(todo.id, intruder.id)
        assert (await store.list_todos(owner.id))[0].title == "Private"


@pytest.mark.asyncio
async def test_upsert_refreshes_existing_user():
    async with fresh_store() as store:
        first = await store.upsert_oauth_user("Pg@Example.com", "Pg", None, "google", "pg-1")
        again = await store.upsert_oauth_user("pg@example.com", "Pg Renamed", "https://img", "google", "pg-1")

        assert again.id == first.id
        assert again.name == "Pg Renamed"
        assert (await store.get_user_by_email("PG@example.com")).image == "https://img"
