"""
SQLite-backed tenant directory and conversation store.

Local-development and test backend with the same interface as PostgresStore:
- Implements exactly the same interface (swappable without pipeline changes)
- One connection per operation, run on a worker thread
- Metadata columns hold JSON text; merges use the JSON1 functions so each
  update stays a single statement

Tenants and chatbots are normally provisioned externally; seed_tenant() and
seed_chatbot() exist for local runs and fixtures.
"""

import asyncio
import json
import logging
import sqlite3
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
from storage.types import (
    CHANNEL_WHATSAPP,
    Chatbot,
    Contact,
    Direction,
    HistoryTurn,
    StorageUnavailableError,
    StoredMessage,
    Tenant,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chatbot (
    id TEXT PRIMARY KEY,
    api_key TEXT
);

CREATE TABLE IF NOT EXISTS whatsapp_accounts (
    id TEXT PRIMARY KEY,
    chatbot_id TEXT NOT NULL REFERENCES chatbot(id),
    phone_number TEXT,
    waba_id TEXT,
    phone_number_id TEXT NOT NULL,
    access_token TEXT,
    verify_token TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_accounts_routing ON whatsapp_accounts(phone_number_id, status);
CREATE INDEX IF NOT EXISTS idx_accounts_verify ON whatsapp_accounts(verify_token, status);

CREATE TABLE IF NOT EXISTS whatsapp_contacts (
    id TEXT PRIMARY KEY,
    chatbot_id TEXT NOT NULL,
    phone_number TEXT NOT NULL,
    display_name TEXT,
    whatsapp_user_metadata TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE(chatbot_id, phone_number)
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    unique_conv_id TEXT,
    chatbot_id TEXT NOT NULL,
    channel TEXT NOT NULL DEFAULT 'WIDGET',
    type TEXT NOT NULL DEFAULT 'user',
    content TEXT NOT NULL,
    citations TEXT NOT NULL DEFAULT '[]',
    channel_message_metadata TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_messages_conv_created ON messages(unique_conv_id, created_at);
"""

_TENANT_COLUMNS = (
    "id, chatbot_id, phone_number_id, access_token, waba_id, phone_number, verify_token, status"
)


def _timestamp(value: Optional[datetime] = None) -> str:
    """UTC ISO-8601 text; lexical order equals chronological order."""
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteStore(Store):
    """
    SQLite implementation of TenantDirectory + ConversationStore.

    Design:
    - Tables mirror the PostgreSQL layout (json columns become TEXT)
    - Schema is created on construction; existing files are left intact
    - Errors propagate; sqlite3.OperationalError on connect becomes
      StorageUnavailableError so the resolver can fall back
    """

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._initialize_db()

    def _initialize_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
            conn.commit()
        finally:
            conn.close()
        logger.debug(f"SQLite store initialized: {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
        except sqlite3.OperationalError as e:
            raise StorageUnavailableError(f"SQLite unavailable: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            return [dict(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    def _execute(self, query: str, params: Sequence[Any] = ()) -> int:
        conn = self._connect()
        try:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    # ── Tenant directory ────────────────────────────────────────────────

    async def find_by_verify_token(self, verify_token: str) -> Optional[Tenant]:
        rows = await asyncio.to_thread(
            self._fetch_all,
            f"SELECT {_TENANT_COLUMNS} FROM whatsapp_accounts "
            "WHERE verify_token = ? AND status = 'active' LIMIT 1",
            (verify_token,),
        )
        return Tenant.from_row(rows[0]) if rows else None

    async def find_by_routing_key(self, phone_number_id: str) -> List[Tenant]:
        rows = await asyncio.to_thread(
            self._fetch_all,
            f"SELECT {_TENANT_COLUMNS} FROM whatsapp_accounts "
            "WHERE phone_number_id = ? AND status = 'active' ORDER BY id",
            (phone_number_id,),
        )
        return [Tenant.from_row(row) for row in rows]

    async def get_chatbot(self, chatbot_id: str) -> Optional[Chatbot]:
        rows = await asyncio.to_thread(
            self._fetch_all, "SELECT id, api_key FROM chatbot WHERE id = ? LIMIT 1", (chatbot_id,)
        )
        return Chatbot.from_row(rows[0]) if rows else None

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
        return await asyncio.to_thread(
            self._upsert_contact, chatbot_id, phone_number, display_name, seeded, patch
        )

    def _upsert_contact(
        self,
        chatbot_id: str,
        phone_number: str,
        display_name: str,
        seeded: Dict[str, Any],
        patch: Dict[str, Any],
    ) -> str:
        now = _timestamp()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO whatsapp_contacts
                    (id, chatbot_id, phone_number, display_name, whatsapp_user_metadata,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (chatbot_id, phone_number) DO UPDATE
                SET display_name = excluded.display_name,
                    whatsapp_user_metadata = json_patch(
                        COALESCE(whatsapp_contacts.whatsapp_user_metadata, '{}'), ?
                    ),
                    updated_at = excluded.updated_at
                """,
                (
                    str(uuid4()),
                    chatbot_id,
                    phone_number,
                    display_name,
                    json.dumps(seeded),
                    now,
                    now,
                    json.dumps(patch),
                ),
            )
            row = conn.execute(
                "SELECT id FROM whatsapp_contacts WHERE chatbot_id = ? AND phone_number = ?",
                (chatbot_id, phone_number),
            ).fetchone()
            conn.commit()
            return row["id"]
        finally:
            conn.close()

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
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO messages
                (id, chatbot_id, channel, type, content, unique_conv_id, citations,
                 channel_message_metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message_id,
                chatbot_id,
                CHANNEL_WHATSAPP,
                direction,
                content,
                conversation_marker,
                json.dumps(citations_as_text(citations)),
                json.dumps(metadata),
                _timestamp(occurred_at),
            ),
        )
        return message_id

    async def update_delivery_status(self, provider_message_id: str, status: str) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE messages
            SET channel_message_metadata = json_set(
                COALESCE(channel_message_metadata, '{}'), '$.status', ?
            )
            WHERE id = (
                SELECT id FROM messages
                WHERE channel = ?
                  AND json_extract(channel_message_metadata, '$.waMessageId') = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
            )
            """,
            (status, CHANNEL_WHATSAPP, provider_message_id),
        )
        if not updated:
            logger.info(
                f"No stored message for status update {provider_message_id}",
                extra={"wa_message_id": provider_message_id, "status": status},
            )
        return updated > 0

    async def fetch_recent_history(
        self,
        chatbot_id: str,
        conversation_marker: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryTurn]:
        rows = await asyncio.to_thread(
            self._fetch_all,
            """
            SELECT content, type FROM (
                SELECT content, type, created_at, rowid AS seq FROM messages
                WHERE chatbot_id = ? AND unique_conv_id = ? AND channel = ?
                ORDER BY created_at DESC, seq DESC
                LIMIT ?
            )
            ORDER BY created_at ASC, seq ASC
            """,
            (chatbot_id, conversation_marker, CHANNEL_WHATSAPP, limit),
        )
        return [HistoryTurn.from_row(row) for row in rows]

    # ── Provisioning and inspection (local runs, fixtures) ─────────────

    def seed_chatbot(self, chatbot_id: str, api_key: Optional[str]) -> None:
        self._execute(
            "INSERT OR REPLACE INTO chatbot (id, api_key) VALUES (?, ?)", (chatbot_id, api_key)
        )

    def seed_tenant(self, tenant: Tenant) -> None:
        self._execute(
            f"INSERT OR REPLACE INTO whatsapp_accounts ({_TENANT_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                tenant.id,
                tenant.chatbot_id,
                tenant.phone_number_id,
                tenant.access_token,
                tenant.waba_id,
                tenant.phone_number,
                tenant.verify_token,
                tenant.status,
            ),
        )

    def get_contact(self, chatbot_id: str, phone_number: str) -> Optional[Contact]:
        rows = self._fetch_all(
            "SELECT * FROM whatsapp_contacts WHERE chatbot_id = ? AND phone_number = ?",
            (chatbot_id, phone_number),
        )
        return Contact.from_row(rows[0]) if rows else None

    def count_contacts(self, chatbot_id: str, phone_number: str) -> int:
        rows = self._fetch_all(
            "SELECT COUNT(*) AS n FROM whatsapp_contacts WHERE chatbot_id = ? AND phone_number = ?",
            (chatbot_id, phone_number),
        )
        return rows[0]["n"]

    def list_messages(self, conversation_marker: Optional[str] = None) -> List[StoredMessage]:
        if conversation_marker is None:
            rows = self._fetch_all("SELECT * FROM messages ORDER BY created_at, rowid")
        else:
            rows = self._fetch_all(
                "SELECT * FROM messages WHERE unique_conv_id = ? ORDER BY created_at, rowid",
                (conversation_marker,),
            )
        return [StoredMessage.from_row(row) for row in rows]
