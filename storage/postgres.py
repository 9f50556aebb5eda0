"""
PostgreSQL-backed tenant directory and conversation store (asyncpg).

Tables are provisioned by the external management API:
  whatsapp_accounts, chatbot, whatsapp_contacts, messages

Metadata columns are `json`; merges cast through jsonb so each update is a
single statement and other keys survive.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from storage.base import (
    DEFAULT_HISTORY_LIMIT,
    Store,
    citations_as_text,
    new_contact_metadata,
    seen_metadata_patch,
)
from storage.pool import PostgresPool
from storage.types import (
    CHANNEL_WHATSAPP,
    Chatbot,
    Direction,
    HistoryTurn,
    Tenant,
)

logger = logging.getLogger(__name__)

_TENANT_COLUMNS = (
    "id, chatbot_id, phone_number_id, access_token, waba_id, phone_number, verify_token, status"
)

_SELECT_TENANT_BY_VERIFY_TOKEN = f"""
    SELECT {_TENANT_COLUMNS} FROM whatsapp_accounts
    WHERE verify_token = $1 AND status = 'active'
    LIMIT 1
"""

_SELECT_TENANTS_BY_ROUTING_KEY = f"""
    SELECT {_TENANT_COLUMNS} FROM whatsapp_accounts
    WHERE phone_number_id = $1 AND status = 'active'
    ORDER BY id
"""

_SELECT_CHATBOT = "SELECT id, api_key FROM chatbot WHERE id = $1 LIMIT 1"

_UPSERT_CONTACT = """
    INSERT INTO whatsapp_contacts
        (id, chatbot_id, phone_number, display_name, whatsapp_user_metadata, created_at, updated_at)
    VALUES ($1, $2, $3, $4, $5::json, NOW(), NOW())
    ON CONFLICT (chatbot_id, phone_number) DO UPDATE
    SET display_name = EXCLUDED.display_name,
        whatsapp_user_metadata = (
            COALESCE(whatsapp_contacts.whatsapp_user_metadata::jsonb, '{}'::jsonb) || $6::jsonb
        )::json,
        updated_at = NOW()
    RETURNING id
"""

_INSERT_MESSAGE = """
    INSERT INTO messages
        (id, chatbot_id, channel, type, content, unique_conv_id, citations,
         channel_message_metadata, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7::text[], $8::json, $9)
"""

_UPDATE_DELIVERY_STATUS = """
    UPDATE messages
    SET channel_message_metadata = (
        COALESCE(channel_message_metadata::jsonb, '{}'::jsonb)
        || jsonb_build_object('status', $1::text)
    )::json
    WHERE id = (
        SELECT id FROM messages
        WHERE channel = $3
          AND channel_message_metadata->>'waMessageId' = $2
        ORDER BY created_at DESC
        LIMIT 1
    )
"""

_SELECT_RECENT_HISTORY = """
    SELECT content, type FROM (
        SELECT content, type, created_at FROM messages
        WHERE chatbot_id = $1 AND unique_conv_id = $2 AND channel = $3
        ORDER BY created_at DESC
        LIMIT $4
    ) recent
    ORDER BY created_at ASC
"""


class PostgresStore(Store):
    """
    asyncpg implementation of TenantDirectory + ConversationStore.

    The pool handle is injected; this store owns its lifecycle.
    """

    def __init__(self, pool: PostgresPool):
        self.pool = pool

    async def connect(self) -> None:
        await self.pool.get()

    async def close(self) -> None:
        await self.pool.close()

    # ── Tenant directory ────────────────────────────────────────────────

    async def find_by_verify_token(self, verify_token: str) -> Optional[Tenant]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(_SELECT_TENANT_BY_VERIFY_TOKEN, verify_token)
        return Tenant.from_row(dict(row)) if row is not None else None

    async def find_by_routing_key(self, phone_number_id: str) -> List[Tenant]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(_SELECT_TENANTS_BY_ROUTING_KEY, phone_number_id)
        return [Tenant.from_row(dict(row)) for row in rows]

    async def get_chatbot(self, chatbot_id: str) -> Optional[Chatbot]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(_SELECT_CHATBOT, chatbot_id)
        return Chatbot.from_row(dict(row)) if row is not None else None

    # ── Conversation store ──────────────────────────────────────────────

    async def upsert_contact(
        self,
        chatbot_id: str,
        phone_number: str,
        display_name: str,
        seen_at: datetime,
        inbound_message_id: str,
        tenant: Tenant,
    ) -> str:
        seeded = new_contact_metadata(
            phone_number, display_name, seen_at, inbound_message_id, tenant
        )
        patch = seen_metadata_patch(seen_at, inbound_message_id)
        async with self.pool.acquire() as conn:
            contact_id = await conn.fetchval(
                _UPSERT_CONTACT,
                str(uuid4()),
                chatbot_id,
                phone_number,
                display_name,
                json.dumps(seeded),
                json.dumps(patch),
            )
        return contact_id

    async def append_message(
        self,
        chatbot_id: str,
        conversation_marker: str,
        direction: Direction,
        content: str,
        citations: Sequence[Any],
        metadata: Dict[str, Any],
        occurred_at: Optional[datetime] = None,
    ) -> str:
        message_id = str(uuid4())
        async with self.pool.acquire() as conn:
            await conn.execute(
                _INSERT_MESSAGE,
                message_id,
                chatbot_id,
                CHANNEL_WHATSAPP,
                direction,
                content,
                conversation_marker,
                citations_as_text(citations),
                json.dumps(metadata),
                occurred_at or datetime.now(timezone.utc),
            )
        return message_id

    async def update_delivery_status(self, provider_message_id: str, status: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                _UPDATE_DELIVERY_STATUS, status, provider_message_id, CHANNEL_WHATSAPP
            )
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        updated = result.rsplit(" ", 1)[-1] != "0"
        if not updated:
            logger.info(
                f"No stored message for status update {provider_message_id}",
                extra={"wa_message_id": provider_message_id, "status": status},
            )
        return updated

    async def fetch_recent_history(
        self,
        chatbot_id: str,
        conversation_marker: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryTurn]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                _SELECT_RECENT_HISTORY, chatbot_id, conversation_marker, CHANNEL_WHATSAPP, limit
            )
        return [HistoryTurn.from_row(dict(row)) for row in rows]
