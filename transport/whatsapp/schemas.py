"""
WhatsApp Transport Layer - Pydantic Schemas

PURE DATA MODELS - NO LOGIC
Only defines the contract of the Cloud API webhook envelope.

ref: https://developers.facebook.com/docs/whatsapp/cloud-api/webhooks/payload-example
"""

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag, TypeAdapter

WHATSAPP_OBJECT = "whatsapp_business_account"


# ============================================================================
# MESSAGE CONTENT PAYLOADS
# ============================================================================
# Every content field is optional: the provider omits keys freely, and
# projection checks presence explicitly instead of failing the envelope.

class TextBody(BaseModel):
    """{"body": "..."}"""
    body: str = ""


class MediaPayload(BaseModel):
    """Image / audio / video / document reference."""
    id: Optional[str] = None
    mime_type: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None

    class Config:
        extra = "allow"


class LocationPayload(BaseModel):
    """Shared location. Coordinates are kept as sent."""
    latitude: Optional[Any] = None
    longitude: Optional[Any] = None
    name: Optional[str] = None
    address: Optional[str] = None


class ButtonPayload(BaseModel):
    """Quick-reply button on a template message."""
    text: Optional[str] = None
    payload: Optional[str] = None


class InteractiveReply(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class InteractivePayload(BaseModel):
    """Reply to an interactive message (button_reply | list_reply)."""
    type: Optional[str] = None
    button_reply: Optional[InteractiveReply] = None
    list_reply: Optional[InteractiveReply] = None


# ============================================================================
# INBOUND MESSAGE VARIANTS (SUM TYPE)
# ============================================================================

class BaseInboundMessage(BaseModel):
    """Fields every inbound message carries."""
    from_: str = Field(..., alias="from")
    id: str
    timestamp: Optional[str] = None
    type: str

    class Config:
        populate_by_name = True
        extra = "allow"  # context, referral, etc.


class TextMessage(BaseInboundMessage):
    type: Literal["text"]
    text: TextBody = Field(default_factory=TextBody)


class ImageMessage(BaseInboundMessage):
    type: Literal["image"]
    image: MediaPayload = Field(default_factory=MediaPayload)


class AudioMessage(BaseInboundMessage):
    type: Literal["audio"]
    audio: MediaPayload = Field(default_factory=MediaPayload)


class VideoMessage(BaseInboundMessage):
    type: Literal["video"]
    video: MediaPayload = Field(default_factory=MediaPayload)


class DocumentMessage(BaseInboundMessage):
    type: Literal["document"]
    document: MediaPayload = Field(default_factory=MediaPayload)


class LocationMessage(BaseInboundMessage):
    type: Literal["location"]
    location: LocationPayload = Field(default_factory=LocationPayload)


class ButtonMessage(BaseInboundMessage):
    type: Literal["button"]
    button: ButtonPayload = Field(default_factory=ButtonPayload)


class InteractiveMessage(BaseInboundMessage):
    type: Literal["interactive"]
    interactive: InteractivePayload = Field(default_factory=InteractivePayload)


class UnknownMessage(BaseInboundMessage):
    """Any type without a dedicated model (sticker, reaction, contacts, ...)."""
    pass


_KNOWN_MESSAGE_TYPES = frozenset(
    {"text", "image", "audio", "video", "document", "location", "button", "interactive"}
)


def _message_tag(value: Any) -> str:
    message_type = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return message_type if message_type in _KNOWN_MESSAGE_TYPES else "unknown"


InboundMessage = Annotated[
    Union[
        Annotated[TextMessage, Tag("text")],
        Annotated[ImageMessage, Tag("image")],
        Annotated[AudioMessage, Tag("audio")],
        Annotated[VideoMessage, Tag("video")],
        Annotated[DocumentMessage, Tag("document")],
        Annotated[LocationMessage, Tag("location")],
        Annotated[ButtonMessage, Tag("button")],
        Annotated[InteractiveMessage, Tag("interactive")],
        Annotated[UnknownMessage, Tag("unknown")],
    ],
    Discriminator(_message_tag),
]

_inbound_message_adapter = TypeAdapter(InboundMessage)


def parse_inbound_message(raw: dict) -> InboundMessage:
    """Decode one raw message object into its variant."""
    return _inbound_message_adapter.validate_python(raw)


# ============================================================================
# CHANGE VALUE PARTS
# ============================================================================

class ChangeMetadata(BaseModel):
    """Business number the change was delivered to."""
    display_phone_number: Optional[str] = None
    phone_number_id: Optional[str] = None


class ContactProfile(BaseModel):
    name: Optional[str] = None


class ContactPayload(BaseModel):
    """Sender profile attached to inbound messages."""
    wa_id: Optional[str] = None
    profile: ContactProfile = Field(default_factory=ContactProfile)


class StatusError(BaseModel):
    code: Optional[int] = None
    title: Optional[str] = None
    message: Optional[str] = None

    class Config:
        extra = "allow"


class StatusPayload(BaseModel):
    """Message status update (sent, delivered, read, failed)."""
    id: str
    status: str
    timestamp: Optional[str] = None
    recipient_id: Optional[str] = None
    errors: List[StatusError] = Field(default_factory=list)

    class Config:
        extra = "allow"  # conversation, pricing


class ChangeValue(BaseModel):
    """
    Body of one change.

    For `messages` changes it carries messages/statuses; other fields
    (template status updates, account alerts) use their own keys, which
    are kept as extras.
    """
    messaging_product: Optional[str] = None
    metadata: Optional[ChangeMetadata] = None
    contacts: List[ContactPayload] = Field(default_factory=list)
    messages: List[InboundMessage] = Field(default_factory=list)
    statuses: List[StatusPayload] = Field(default_factory=list)

    class Config:
        extra = "allow"


class Change(BaseModel):
    field: str
    value: ChangeValue = Field(default_factory=ChangeValue)


class Entry(BaseModel):
    """One business account's batch of changes."""
    id: Optional[str] = None
    changes: List[Change] = Field(default_factory=list)


# ============================================================================
# WEBHOOK ENVELOPE (INPUT)
# ============================================================================

class WebhookEnvelope(BaseModel):
    """Full WhatsApp webhook delivery."""

    object: str = Field(..., description="'whatsapp_business_account' for WhatsApp events")
    entry: List[Entry] = Field(default_factory=list)

    class Config:
        extra = "allow"  # WhatsApp may add fields
