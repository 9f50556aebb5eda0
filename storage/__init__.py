"""
Storage module exports.

Tenant directory and conversation persistence behind one interface.
"""

from storage.base import ConversationStore, Store, TenantDirectory, DEFAULT_HISTORY_LIMIT
from storage.pool import PostgresPool
from storage.postgres import PostgresStore
from storage.sqlite import SQLiteStore
from storage.types import (
    CHANNEL_WHATSAPP,
    Chatbot,
    Contact,
    HistoryTurn,
    StorageError,
    StorageUnavailableError,
    StoredMessage,
    Tenant,
    conversation_marker,
)

__all__ = [
    # Interfaces
    "TenantDirectory",
    "ConversationStore",
    "Store",
    "DEFAULT_HISTORY_LIMIT",
    # Backends
    "PostgresPool",
    "PostgresStore",
    "SQLiteStore",
    # Types
    "Tenant",
    "Chatbot",
    "Contact",
    "StoredMessage",
    "HistoryTurn",
    "CHANNEL_WHATSAPP",
    "conversation_marker",
    "StorageError",
    "StorageUnavailableError",
]
