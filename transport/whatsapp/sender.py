"""
WhatsApp Response Sender

Sends text replies back to WhatsApp through the Graph API.
No formatting intelligence. No retries. Never raises: every failure is
returned as a SendResult for the caller to log.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    """Outcome of one send attempt."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def _provider_error(response: httpx.Response) -> str:
    """Graph API error.message when present, else the HTTP status."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return f"WhatsApp API returned {response.status_code}"


class WhatsAppSender:
    """
    Graph API text sender shared by all tenants.

    Credentials are per call: each tenant sends from its own phone number
    id with its own access token.
    """

    def __init__(
        self,
        graph_base_url: str = "https://graph.facebook.com",
        api_version: str = "v18.0",
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.graph_base_url = graph_base_url.rstrip("/")
        self.api_version = api_version
        self.timeout_s = timeout_s
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        await self._client.aclose()

    def endpoint(self, phone_number_id: str) -> str:
        return f"{self.graph_base_url}/{self.api_version}/{phone_number_id}/messages"

    async def send_text(
        self,
        phone_number_id: Optional[str],
        access_token: Optional[str],
        to: str,
        text: str,
    ) -> SendResult:
        """
        Send a text message to a WhatsApp user.

        Args:
            phone_number_id: Tenant's business phone number id
            access_token: Tenant's Graph API token
            to: Recipient wa_id
            text: Message body

        Returns:
            SendResult with the provider message id on success
        """
        if not phone_number_id or not access_token:
            logger.error(
                "Cannot send WhatsApp message: tenant credentials missing",
                extra={"to": to, "phone_number_id": phone_number_id},
            )
            return SendResult(success=False, error="WhatsApp credentials not configured")

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": text},
        }
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._client.post(
                self.endpoint(phone_number_id),
                json=payload,
                headers=headers,
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as e:
            logger.error(
                f"HTTP request to WhatsApp failed: {e}",
                extra={"to": to, "error": str(e)},
            )
            return SendResult(success=False, error=str(e) or type(e).__name__)

        if not response.is_success:
            error = _provider_error(response)
            logger.error(
                f"WhatsApp API error: {response.status_code} - {error}",
                extra={"to": to, "status_code": response.status_code, "error_body": response.text},
            )
            return SendResult(success=False, error=error)

        try:
            result = response.json()
        except ValueError:
            result = {}
        messages = result.get("messages") if isinstance(result, dict) else None
        message_id = None
        if isinstance(messages, list) and messages and isinstance(messages[0], dict):
            message_id = messages[0].get("id")

        logger.info(
            f"Message sent to {to}",
            extra={"to": to, "wa_message_id": message_id},
        )
        return SendResult(success=True, message_id=message_id)
