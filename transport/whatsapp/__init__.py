"""WhatsApp Transport Layer - Module Exports"""

from .normalize import (
    AI_REPLY_TYPES,
    find_contact_name,
    is_ai_eligible,
    message_timestamp,
    project_text,
    storage_message_type,
)
from .schemas import (
    AudioMessage,
    ButtonMessage,
    Change,
    ChangeMetadata,
    ChangeValue,
    ContactPayload,
    DocumentMessage,
    Entry,
    ImageMessage,
    InboundMessage,
    InteractiveMessage,
    LocationMessage,
    StatusError,
    StatusPayload,
    TextMessage,
    UnknownMessage,
    VideoMessage,
    WebhookEnvelope,
    parse_inbound_message,
)
from .security import compute_signature, verify_signature
from .sender import SendResult, WhatsAppSender
from .webhook import router

__all__ = [
    # Schemas
    "WebhookEnvelope",
    "Entry",
    "Change",
    "ChangeValue",
    "ChangeMetadata",
    "ContactPayload",
    "StatusPayload",
    "StatusError",
    "InboundMessage",
    "TextMessage",
    "ImageMessage",
    "AudioMessage",
    "VideoMessage",
    "DocumentMessage",
    "LocationMessage",
    "ButtonMessage",
    "InteractiveMessage",
    "UnknownMessage",
    "parse_inbound_message",
    # Normalization
    "AI_REPLY_TYPES",
    "project_text",
    "is_ai_eligible",
    "storage_message_type",
    "find_contact_name",
    "message_timestamp",
    # Security
    "verify_signature",
    "compute_signature",
    # Sender
    "WhatsAppSender",
    "SendResult",
    # Router
    "router",
]
