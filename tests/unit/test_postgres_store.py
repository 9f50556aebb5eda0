"""
PostgreSQL Store and Pool Tests

asyncpg is replaced by fakes: these tests pin parameter binding, row
mapping and pool lifecycle, not SQL execution.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from storage.pool import PostgresPool
from storage.postgres import PostgresStore
from storage.types import StorageUnavailableError


class FakePool:
    """Stands in for PostgresPool; hands out one mocked connection."""

    def __init__(self):
        self.conn = MagicMock()
        self.conn.fetch = AsyncMock(return_value=[])
        self.conn.fetchrow = AsyncMock(return_value=None)
        self.conn.fetchval = AsyncMock(return_value=None)
        self.conn.execute = AsyncMock(return_value="INSERT 0 1")
        self.get = AsyncMock()
        self.close = AsyncMock()

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


TENANT_ROW = {
    "id": "acct-1",
    "chatbot_id": "bot-1",
    "phone_number_id": "PNID-1",
    "access_token": "token-1",
    "waba_id": "waba-1",
    "phone_number": "+15550000001",
    "verify_token": "verify-1",
    "status": "active",
}


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def store(pool):
    return PostgresStore(pool)


class TestTenantQueries:

    @pytest.mark.asyncio
    async def test_routing_key_maps_every_row(self, store, pool):
        pool.conn.fetch.return_value = [TENANT_ROW, {**TENANT_ROW, "id": "acct-2", "chatbot_id": "bot-2"}]

        tenants = await store.find_by_routing_key("PNID-1")

        assert [t.id for t in tenants] == ["acct-1", "acct-2"]
        assert tenants[1].chatbot_id == "bot-2"
        query, param = pool.conn.fetch.call_args.args
        assert "status = 'active'" in query
        assert param == "PNID-1"

    @pytest.mark.asyncio
    async def test_verify_token_no_row(self, store, pool):
        assert await store.find_by_verify_token("nope") is None

    @pytest.mark.asyncio
    async def test_chatbot_row(self, store, pool):
        pool.conn.fetchrow.return_value = {"id": "bot-1", "api_key": "key-1"}
        chatbot = await store.get_chatbot("bot-1")
        assert chatbot.api_key == "key-1"


class TestConversationWrites:

    @pytest.mark.asyncio
    async def test_upsert_binds_seed_and_patch(self, store, pool, tenant):
        pool.conn.fetchval.return_value = "contact-1"
        seen_at = datetime(2024, 2, 9, tzinfo=timezone.utc)

        contact_id = await store.upsert_contact("bot-1", "155512", "Ada", seen_at, "wamid.in.1", tenant)

        assert contact_id == "contact-1"
        query, _new_id, chatbot_id, phone, name, seeded, patch_json = pool.conn.fetchval.call_args.args
        assert "ON CONFLICT (chatbot_id, phone_number)" in query
        assert (chatbot_id, phone, name) == ("bot-1", "155512", "Ada")
        assert json.loads(seeded)["first_seen_at"] == seen_at.isoformat()
        assert json.loads(patch_json) == {
            "last_seen_at": seen_at.isoformat(),
            "last_inbound_message_id": "wamid.in.1",
        }

    @pytest.mark.asyncio
    async def test_append_message_binds_citations_as_text(self, store, pool):
        await store.append_message(
            "bot-1", "whatsapp_155512_bot-1", "assistant", "Answer",
            ["a", {"title": "b"}], {"waMessageId": "wamid.out.1"},
        )

        args = pool.conn.execute.call_args.args
        assert args[3:7] == ("WHATSAPP", "assistant", "Answer", "whatsapp_155512_bot-1")
        assert args[7] == ["a", '{"title": "b"}']
        assert json.loads(args[8]) == {"waMessageId": "wamid.out.1"}

    @pytest.mark.asyncio
    async def test_status_update_matched(self, store, pool):
        pool.conn.execute.return_value = "UPDATE 1"
        assert await store.update_delivery_status("wamid.out.1", "delivered") is True

    @pytest.mark.asyncio
    async def test_status_update_unmatched(self, store, pool):
        pool.conn.execute.return_value = "UPDATE 0"
        assert await store.update_delivery_status("wamid.unknown", "delivered") is False

    @pytest.mark.asyncio
    async def test_history_rows_become_turns(self, store, pool):
        pool.conn.fetch.return_value = [
            {"content": "hi", "type": "user"},
            {"content": "hello", "type": "assistant"},
        ]

        history = await store.fetch_recent_history("bot-1", "whatsapp_155512_bot-1", limit=5)

        assert [t.as_dict() for t in history] == [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]
        assert pool.conn.fetch.call_args.args[-1] == 5


class TestPostgresPool:
    """Lazy, single, retryable pool initialization."""

    @pytest.mark.asyncio
    async def test_concurrent_get_creates_one_pool(self):
        fake = MagicMock()
        create = AsyncMock(return_value=fake)
        handle = PostgresPool("postgresql://localhost/test", max_size=5)

        with patch("storage.pool.asyncpg.create_pool", create):
            results = await asyncio.gather(*(handle.get() for _ in range(5)))

        assert all(result is fake for result in results)
        create.assert_awaited_once()
        assert create.call_args.kwargs["max_size"] == 5
        assert create.call_args.kwargs["max_inactive_connection_lifetime"] == 30.0

    @pytest.mark.asyncio
    async def test_failed_init_raises_unavailable_and_retries(self):
        fake = MagicMock()
        create = AsyncMock(side_effect=[OSError("connection refused"), fake])
        handle = PostgresPool("postgresql://localhost/test")

        with patch("storage.pool.asyncpg.create_pool", create):
            with pytest.raises(StorageUnavailableError):
                await handle.get()
            assert handle.initialized is False
            assert await handle.get() is fake

    @pytest.mark.asyncio
    async def test_close_without_init_is_noop(self):
        await PostgresPool("postgresql://localhost/test").close()

    @pytest.mark.asyncio
    async def test_close_releases_pool(self):
        fake = MagicMock()
        fake.close = AsyncMock()
        handle = PostgresPool("postgresql://localhost/test")

        with patch("storage.pool.asyncpg.create_pool", AsyncMock(return_value=fake)):
            await handle.get()
        await handle.close()

        fake.close.assert_awaited_once()
        assert handle.initialized is False

    @pytest.mark.asyncio
    async def test_acquire_returns_connection(self):
        conn = object()
        fake = MagicMock()
        fake.acquire = AsyncMock(return_value=conn)
        fake.release = AsyncMock()
        handle = PostgresPool("postgresql://localhost/test")

        with patch("storage.pool.asyncpg.create_pool", AsyncMock(return_value=fake)):
            async with handle.acquire() as acquired:
                assert acquired is conn

        fake.release.assert_awaited_once_with(conn)
