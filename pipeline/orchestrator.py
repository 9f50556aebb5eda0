"""
Webhook orchestrator.

Drives one delivery from decoded envelope to per-tenant work:

    entry[].changes[] → routing key → tenants → messages, then statuses

Per message: project → contact → user row → (conversational only)
history → response service → send → assistant row.

Nothing here raises to the caller. Every item ends as an outcome; the
end user sees the reply or one of two apologies.
"""

import logging
import time
from typing import List, Optional

from inference.base import ResponseBackend
from storage.base import DEFAULT_HISTORY_LIMIT, Store
from storage.types import Tenant, conversation_marker
from transport.whatsapp.normalize import (
    find_contact_name,
    is_ai_eligible,
    message_timestamp,
    project_text,
    storage_message_type,
)
from transport.whatsapp.schemas import (
    Change,
    ChangeValue,
    ContactPayload,
    InboundMessage,
    StatusPayload,
    WebhookEnvelope,
)
from transport.whatsapp.sender import WhatsAppSender

from .outcomes import DeliveryReport, MessageOutcome, StatusOutcome
from .resolver import TenantResolver

logger = logging.getLogger(__name__)

APOLOGY_PROCESSING_TEXT = (
    "Sorry, I encountered an error processing your message. Please try again later."
)
APOLOGY_ERROR_TEXT = "Sorry, I encountered an error. Please try again later."

FIELD_MESSAGES = "messages"
FIELD_TEMPLATE_STATUS = "message_template_status_update"


class WebhookOrchestrator:
    """
    Per-delivery processing pipeline.

    Design:
    - Changes are isolated: one failing change never stops the next
    - Within one tenant, messages run in order, then statuses in order
    - A store of None (or a fallback resolution) means log-only mode
    """

    def __init__(
        self,
        resolver: TenantResolver,
        store: Optional[Store],
        responder: ResponseBackend,
        sender: WhatsAppSender,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.resolver = resolver
        self.store = store
        self.responder = responder
        self.sender = sender
        self.history_limit = history_limit

    async def handle_delivery(self, envelope: WebhookEnvelope) -> DeliveryReport:
        """
        Process every change in a delivery.

        Args:
            envelope: Decoded webhook body (object already checked by the caller)

        Returns:
            DeliveryReport with one outcome per message and status handled
        """
        report = DeliveryReport()

        for entry in envelope.entry:
            for change in entry.changes:
                try:
                    await self._handle_change(change, report)
                except Exception as e:
                    report.failed_changes += 1
                    logger.error(
                        f"Error processing webhook change ({change.field}): {e}",
                        exc_info=True,
                        extra={"entry_id": entry.id, "field": change.field},
                    )

        logger.info(
            "Webhook delivery processed",
            extra={
                "messages": report.message_counts(),
                "statuses": report.status_counts(),
                "skipped_changes": report.skipped_changes,
                "failed_changes": report.failed_changes,
            },
        )
        return report

    async def _handle_change(self, change: Change, report: DeliveryReport) -> None:
        metadata = change.value.metadata
        phone_number_id = metadata.phone_number_id if metadata else None
        if not phone_number_id:
            logger.warning(f"No phone_number_id in webhook change ({change.field})")
            report.skipped_changes += 1
            return

        resolution = await self.resolver.resolve_by_routing_key(phone_number_id)
        if resolution.empty:
            report.skipped_changes += 1
            return

        for tenant in resolution.tenants:
            if change.field == FIELD_MESSAGES:
                await self._handle_messages(tenant, change.value, resolution.fallback, report)
            elif change.field == FIELD_TEMPLATE_STATUS:
                self._handle_template_status(tenant, change.value)
            else:
                logger.info(
                    f"Unhandled webhook field: {change.field}",
                    extra={"tenant_id": tenant.id, "field": change.field},
                )

    async def _handle_messages(
        self,
        tenant: Tenant,
        value: ChangeValue,
        fallback: bool,
        report: DeliveryReport,
    ) -> None:
        for message in value.messages:
            report.messages.append(
                await self.process_message(tenant, message, value.contacts, fallback)
            )
        for status in value.statuses:
            report.statuses.append(await self.process_status(tenant, status, fallback))

    def _handle_template_status(self, tenant: Tenant, value: ChangeValue) -> None:
        extras = value.model_extra or {}
        logger.info(
            f"Template status update: {extras.get('event')}",
            extra={
                "tenant_id": tenant.id,
                "template_id": extras.get("message_template_id"),
                "template_name": extras.get("message_template_name"),
                "reason": extras.get("reason"),
            },
        )

    # ── Messages ────────────────────────────────────────────────────────

    async def process_message(
        self,
        tenant: Tenant,
        message: InboundMessage,
        contacts: List[ContactPayload],
        fallback: bool = False,
    ) -> MessageOutcome:
        """
        Handle one inbound message for one tenant.

        Returns:
            MessageOutcome; never raises
        """
        phone = message.from_
        content = project_text(message)
        customer_name = find_contact_name(contacts, phone)
        log_ctx = {
            "tenant_id": tenant.id,
            "chatbot_id": tenant.chatbot_id,
            "sender": phone,
            "wa_message_id": message.id,
            "message_type": message.type,
        }

        if fallback or self.store is None:
            logger.info(
                f"Message received (no database) from {customer_name} ({phone}): {content}",
                extra=log_ctx,
            )
            return MessageOutcome("skipped", tenant.id, message.id, reason="fallback_mode")

        if not content:
            logger.warning("Message content is empty, skipping", extra=log_ctx)
            return MessageOutcome("skipped", tenant.id, message.id, reason="empty_content")

        logger.info(f"New message received from {customer_name} ({phone})", extra=log_ctx)

        try:
            return await self._persist_and_reply(tenant, message, content, customer_name, log_ctx)
        except Exception as e:
            logger.error(f"Error processing message: {e}", exc_info=True, extra=log_ctx)
            await self._send_apology(tenant, phone, APOLOGY_ERROR_TEXT, log_ctx)
            return MessageOutcome("fatal", tenant.id, message.id, reason=str(e))

    async def _persist_and_reply(
        self,
        tenant: Tenant,
        message: InboundMessage,
        content: str,
        customer_name: str,
        log_ctx: dict,
    ) -> MessageOutcome:
        phone = message.from_
        chatbot_id = tenant.chatbot_id
        marker = conversation_marker(phone, chatbot_id)
        seen_at = message_timestamp(message)

        contact_id = await self.store.upsert_contact(
            chatbot_id, phone, customer_name, seen_at, message.id, tenant
        )

        await self.store.append_message(
            chatbot_id,
            marker,
            "user",
            content,
            [],
            {
                "phoneNumber": phone,
                "waMessageId": message.id,
                "messageType": storage_message_type(message),
                "timestamp": seen_at.isoformat(),
                "contactId": contact_id,
            },
        )

        if not is_ai_eligible(message):
            logger.info(f"Stored non-conversational message: {message.type}", extra=log_ctx)
            return MessageOutcome("skipped", tenant.id, message.id, reason="not_ai_eligible")

        chatbot = await self.store.get_chatbot(chatbot_id)
        if chatbot is None or not chatbot.api_key:
            logger.error(f"Chatbot API key not found for {chatbot_id}", extra=log_ctx)
            return MessageOutcome("fatal", tenant.id, message.id, reason="missing_api_key")

        history = await self.store.fetch_recent_history(chatbot_id, marker, self.history_limit)
        reply = await self.responder.get_reply(chatbot.api_key, chatbot_id, phone, history)

        if not reply.success:
            logger.error(
                f"Response service failed: {reply.error_type}",
                extra={**log_ctx, "latency_ms": reply.latency_ms},
            )
            sent = await self._send_apology(tenant, phone, APOLOGY_PROCESSING_TEXT, log_ctx)
            return MessageOutcome(
                "recoverable",
                tenant.id,
                message.id,
                reason=reply.error_type or "response_failed",
                reply_sent=sent,
            )

        sent = await self.sender.send_text(
            tenant.phone_number_id, tenant.access_token, phone, reply.reply_text
        )
        if not sent.success:
            logger.error(f"Failed to send reply: {sent.error}", extra=log_ctx)

        await self.store.append_message(
            chatbot_id,
            marker,
            "assistant",
            reply.reply_text,
            reply.citations,
            {
                "phoneNumber": phone,
                "waMessageId": sent.message_id or f"ai_{int(time.time() * 1000)}",
                "messageType": "text",
                "responseTimeMs": reply.latency_ms,
                "contactId": contact_id,
            },
        )

        logger.info(
            "AI response sent",
            extra={**log_ctx, "latency_ms": reply.latency_ms, "reply_wa_message_id": sent.message_id},
        )
        return MessageOutcome("processed", tenant.id, message.id, reply_sent=sent.success)

    async def _send_apology(self, tenant: Tenant, to: str, text: str, log_ctx: dict) -> bool:
        try:
            result = await self.sender.send_text(tenant.phone_number_id, tenant.access_token, to, text)
        except Exception as e:
            logger.error(f"Failed to send error message: {e}", exc_info=True, extra=log_ctx)
            return False
        if not result.success:
            logger.error(f"Failed to send error message: {result.error}", extra=log_ctx)
        return result.success

    # ── Statuses ────────────────────────────────────────────────────────

    async def process_status(
        self,
        tenant: Tenant,
        status: StatusPayload,
        fallback: bool = False,
    ) -> StatusOutcome:
        """
        Record a delivery status transition for an outbound message.

        Persistence here is best effort: failures are logged and reported
        as recoverable.
        """
        log_ctx = {
            "tenant_id": tenant.id,
            "wa_message_id": status.id,
            "status": status.status,
            "recipient_id": status.recipient_id,
        }
        logger.info(f"Message status update: {status.status}", extra=log_ctx)

        if status.status == "failed" and status.errors:
            first = status.errors[0]
            logger.error(
                f"Message delivery failed: {first.code} {first.title}",
                extra={**log_ctx, "error_code": first.code, "error_title": first.title},
            )

        if fallback or self.store is None:
            return StatusOutcome(
                "skipped", tenant.id, status.id, status.status, reason="fallback_mode"
            )

        try:
            updated = await self.store.update_delivery_status(status.id, status.status)
        except Exception as e:
            logger.error(f"Error updating message status: {e}", exc_info=True, extra=log_ctx)
            return StatusOutcome("recoverable", tenant.id, status.id, status.status, reason=str(e))

        if not updated:
            return StatusOutcome(
                "skipped", tenant.id, status.id, status.status, reason="unknown_message"
            )
        return StatusOutcome("processed", tenant.id, status.id, status.status)
