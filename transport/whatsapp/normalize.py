"""
WhatsApp Input Normalization

PURE CONVERSION - NO I/O, NO MODEL CALLS

Projects each inbound message variant onto the single text line that is
stored and, for conversational types, forwarded to the response service.
- TEXT / BUTTON / INTERACTIVE: the user's words, eligible for a reply
- MEDIA / LOCATION: a bracketed placeholder, stored only
- ANYTHING ELSE: "[<type>]"
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from .schemas import (
    AudioMessage,
    ButtonMessage,
    ContactPayload,
    DocumentMessage,
    ImageMessage,
    InboundMessage,
    InteractiveMessage,
    LocationMessage,
    TextMessage,
    VideoMessage,
)

# Types that reach the response service
AI_REPLY_TYPES = frozenset({"text", "button", "interactive"})

UNKNOWN_CONTACT_NAME = "Unknown"


def project_text(message: InboundMessage) -> str:
    """
    Convert a message into its stored text form.

    Args:
        message: Decoded inbound message variant

    Returns:
        Text for the message row. May be empty (e.g. a blank text body or
        an interactive reply without a title); callers treat empty as
        "nothing to process".
    """
    if isinstance(message, TextMessage):
        return message.text.body or ""

    if isinstance(message, ImageMessage):
        return message.image.caption or "[Image]"

    if isinstance(message, AudioMessage):
        return "[Voice message]"

    if isinstance(message, VideoMessage):
        return message.video.caption or "[Video]"

    if isinstance(message, DocumentMessage):
        return f"[Document: {message.document.filename or 'document'}]"

    if isinstance(message, LocationMessage):
        return f"[Location: {message.location.latitude}, {message.location.longitude}]"

    if isinstance(message, ButtonMessage):
        return message.button.text or ""

    if isinstance(message, InteractiveMessage):
        interactive = message.interactive
        if interactive.type == "button_reply" and interactive.button_reply is not None:
            return interactive.button_reply.title or ""
        if interactive.type == "list_reply" and interactive.list_reply is not None:
            return interactive.list_reply.title or ""
        return ""

    return f"[{message.type}]"


def is_ai_eligible(message: InboundMessage) -> bool:
    return message.type in AI_REPLY_TYPES


def storage_message_type(message: InboundMessage) -> str:
    """messageType recorded in row metadata: conversational types collapse to "text"."""
    return "text" if is_ai_eligible(message) else message.type


def find_contact_name(contacts: Iterable[ContactPayload], wa_id: str) -> str:
    """Profile name of the contact entry matching the sender, else "Unknown"."""
    for contact in contacts:
        if contact.wa_id == wa_id and contact.profile.name:
            return contact.profile.name
    return UNKNOWN_CONTACT_NAME


def message_timestamp(message: InboundMessage, default: Optional[datetime] = None) -> datetime:
    """
    Provider timestamp (epoch seconds as a string) as an aware UTC datetime.

    Falls back to `default` (or now) when absent or unparsable.
    """
    try:
        return datetime.fromtimestamp(int(message.timestamp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return default or datetime.now(timezone.utc)
