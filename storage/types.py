"""
Storage boundary layer types.

Rows are converted into these records at the persistence boundary;
nothing above the store handles raw row mappings.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional

Direction = Literal["user", "assistant"]
TenantStatus = Literal["active", "inactive"]

CHANNEL_WHATSAPP = "WHATSAPP"


class StorageError(Exception):
    """Persistence operation failed."""
    pass


class StorageUnavailableError(StorageError):
    """Persistence collaborator cannot be reached (no pool, no connection)."""
    pass


def conversation_marker(phone_number: str, chatbot_id: str) -> str:
    """
    Deterministic thread key for one end user talking to one bot.

    Used both to write messages and to re-read history, so it must stay
    a pure function of its inputs.
    """
    return f"whatsapp_{phone_number}_{chatbot_id}"


def load_json(value: Any) -> Dict[str, Any]:
    """Decode a json/jsonb column that may arrive as text or mapping."""
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    try:
        decoded = json.loads(value)
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


@dataclass(frozen=True)
class Tenant:
    """One client's WhatsApp integration (whatsapp_accounts row)."""

    id: str
    chatbot_id: str
    phone_number_id: Optional[str]
    access_token: Optional[str]
    waba_id: Optional[str] = None
    phone_number: Optional[str] = None
    verify_token: Optional[str] = None
    status: TenantStatus = "active"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Tenant":
        return cls(
            id=row["id"],
            chatbot_id=row["chatbot_id"],
            phone_number_id=row.get("phone_number_id"),
            access_token=row.get("access_token"),
            waba_id=row.get("waba_id"),
            phone_number=row.get("phone_number"),
            verify_token=row.get("verify_token"),
            status=row.get("status") or "active",
        )


@dataclass(frozen=True)
class Chatbot:
    """Bot record referenced by a tenant. Only the API key matters here."""

    id: str
    api_key: Optional[str]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Chatbot":
        return cls(id=row["id"], api_key=row.get("api_key"))


@dataclass(frozen=True)
class Contact:
    """End user of one bot (whatsapp_contacts row)."""

    id: str
    chatbot_id: str
    phone_number: str
    display_name: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Contact":
        return cls(
            id=row["id"],
            chatbot_id=row["chatbot_id"],
            phone_number=row["phone_number"],
            display_name=row.get("display_name"),
            metadata=load_json(row.get("whatsapp_user_metadata")),
        )


@dataclass(frozen=True)
class StoredMessage:
    """Append-only message row."""

    id: str
    chatbot_id: str
    direction: Direction
    content: str
    unique_conv_id: Optional[str]
    created_at: Optional[datetime]
    citations: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    channel: str = CHANNEL_WHATSAPP

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StoredMessage":
        citations = row.get("citations") or []
        if isinstance(citations, str):
            citations = json.loads(citations)
        return cls(
            id=row["id"],
            chatbot_id=row["chatbot_id"],
            direction=row["type"],
            content=row["content"],
            unique_conv_id=row.get("unique_conv_id"),
            created_at=row.get("created_at"),
            citations=list(citations),
            metadata=load_json(row.get("channel_message_metadata")),
            channel=row.get("channel") or CHANNEL_WHATSAPP,
        )


@dataclass(frozen=True)
class HistoryTurn:
    """One conversation turn as sent to the response service."""

    role: Direction
    content: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "HistoryTurn":
        role: Direction = "user" if row["type"] == "user" else "assistant"
        return cls(role=role, content=row["content"])

    def as_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}
