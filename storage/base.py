"""
Abstract persistence interfaces.

The pipeline depends only on these interfaces, not on specific backends.
Tenant rows are provisioned externally; the core only reads them.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from storage.types import Chatbot, Direction, HistoryTurn, Tenant

DEFAULT_HISTORY_LIMIT = 10


class TenantDirectory(ABC):
    """Read-only lookups of tenants and their bots."""

    @abstractmethod
    async def find_by_verify_token(self, verify_token: str) -> Optional[Tenant]:
        """Active tenant whose verify token matches exactly, or None."""
        raise NotImplementedError

    @abstractmethod
    async def find_by_routing_key(self, phone_number_id: str) -> List[Tenant]:
        """Every active tenant registered for this provider phone number id."""
        raise NotImplementedError

    @abstractmethod
    async def get_chatbot(self, chatbot_id: str) -> Optional[Chatbot]:
        """Bot record holding the response-service API key."""
        raise NotImplementedError


class ConversationStore(ABC):
    """
    Contacts, messages and history for one conversation marker.

    Every operation is a single independently committed statement.
    Errors propagate to the caller; the caller decides whether they are
    fatal for the item being processed.
    """

    @abstractmethod
    async def upsert_contact(
        self,
        chatbot_id: str,
        phone_number: str,
        display_name: str,
        seen_at: datetime,
        inbound_message_id: str,
        tenant: Tenant,
    ) -> str:
        """
        Create the contact on first sight, otherwise refresh it.

        Existing rows get the new display name and a metadata merge of
        last_seen_at / last_inbound_message_id; other metadata keys survive.

        Returns:
            Contact id (stable across calls for the same pair)
        """
        raise NotImplementedError

    @abstractmethod
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
        """Insert an append-only message row and return its id."""
        raise NotImplementedError

    @abstractmethod
    async def update_delivery_status(self, provider_message_id: str, status: str) -> bool:
        """
        Merge a delivery status into the newest row carrying this provider id.

        Returns:
            False when no row matches (status events may race ahead of the
            message write). Not an error.
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_recent_history(
        self,
        chatbot_id: str,
        conversation_marker: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> List[HistoryTurn]:
        """Latest `limit` turns, ordered oldest first."""
        raise NotImplementedError


class Store(TenantDirectory, ConversationStore):
    """A backend that serves both interfaces from one connection source."""

    async def connect(self) -> None:
        """Warm up the backend. Default: nothing to do."""
        return None

    async def close(self) -> None:
        """Release backend resources. Default: nothing to do."""
        return None


def citations_as_text(citations: Sequence[Any]) -> List[str]:
    """Citations column is a text array; non-string items are JSON-encoded."""
    return [c if isinstance(c, str) else json.dumps(c) for c in citations or []]


def new_contact_metadata(
    phone_number: str,
    display_name: str,
    seen_at: datetime,
    inbound_message_id: str,
    tenant: Tenant,
) -> Dict[str, Any]:
    """Profile metadata seeded from the first inbound event."""
    seen = seen_at.isoformat()
    return {
        "wa_id": phone_number,
        "profile": {"name": display_name},
        "first_seen_at": seen,
        "last_seen_at": seen,
        "last_inbound_message_id": inbound_message_id,
        "waba_id": tenant.waba_id,
        "phone_number_id": tenant.phone_number_id,
        "display_phone_number": tenant.phone_number or "",
        "source": "organic",
        "opt_in_status": True,
    }


def seen_metadata_patch(seen_at: datetime, inbound_message_id: str) -> Dict[str, Any]:
    """Keys refreshed on every subsequent inbound message."""
    return {
        "last_seen_at": seen_at.isoformat(),
        "last_inbound_message_id": inbound_message_id,
    }
