"""
HTTP response service client.

One POST per inbound AI-eligible message. No retries; a failure becomes a
ReplyResult the pipeline turns into an apology.
"""

import json
import logging
import time
from typing import Any, Dict, Optional, Sequence

import httpx

from storage.types import HistoryTurn, conversation_marker

from .base import ResponseBackend
from .types import ReplyResult

logger = logging.getLogger(__name__)

ORIGIN_URL = "whatsapp://chat"


def build_reply_request(
    api_key: str,
    chatbot_id: str,
    phone_number: str,
    history: Sequence[HistoryTurn],
) -> Dict[str, Any]:
    """Request body understood by the response service's /response endpoint."""
    return {
        "query": json.dumps([turn.as_dict() for turn in history]),
        "mode": "default",
        "user": {
            "uniqueClientId": conversation_marker(phone_number, chatbot_id),
            "converslyWebId": api_key,
            "metadata": {"platform": "whatsapp", "phoneNumber": phone_number},
        },
        "metadata": {"originUrl": ORIGIN_URL},
        "chatbotId": chatbot_id,
    }


class ResponseApiBackend(ResponseBackend):
    """
    Response service reached over HTTP (httpx).

    The AsyncClient is created once and reused; aclose() releases it.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8030",
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Response service root, without the /response path
            timeout_s: Per-request timeout
            client: Pre-built client (tests inject one with a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_reply(
        self,
        api_key: str,
        chatbot_id: str,
        phone_number: str,
        history: Sequence[HistoryTurn],
    ) -> ReplyResult:
        """
        Request the assistant reply for this conversation.

        Returns:
            ReplyResult; success only on a 2xx body with a truthy `success`
            and a non-empty `response`
        """
        payload = build_reply_request(api_key, chatbot_id, phone_number, history)
        base_metadata = {"backend": "response_api", "chatbot_id": chatbot_id}
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            resp = await self._client.post(
                f"{self.base_url}/response",
                json=payload,
                timeout=self.timeout_s,
            )
        except httpx.TimeoutException:
            logger.error(
                f"Response service timed out after {self.timeout_s}s",
                extra={"chatbot_id": chatbot_id},
            )
            return ReplyResult(
                status="recoverable_error",
                error_type="timeout",
                latency_ms=elapsed_ms(),
                metadata=base_metadata,
            )
        except httpx.HTTPError as e:
            logger.error(
                f"Response service unreachable: {e}",
                extra={"chatbot_id": chatbot_id},
            )
            return ReplyResult(
                status="fatal_error",
                error_type="backend_unavailable",
                latency_ms=elapsed_ms(),
                metadata={**base_metadata, "error": str(e)},
            )

        latency_ms = elapsed_ms()

        if not resp.is_success:
            logger.error(
                f"Response service returned {resp.status_code}",
                extra={"chatbot_id": chatbot_id, "status_code": resp.status_code},
            )
            return ReplyResult(
                status="recoverable_error",
                error_type="http_error",
                latency_ms=latency_ms,
                metadata={**base_metadata, "status_code": resp.status_code},
            )

        try:
            data = resp.json()
        except ValueError:
            logger.error("Response service returned invalid JSON", extra={"chatbot_id": chatbot_id})
            return ReplyResult(
                status="recoverable_error",
                error_type="invalid_output",
                latency_ms=latency_ms,
                metadata=base_metadata,
            )

        reply_text = data.get("response") if isinstance(data, dict) else None
        citations = data.get("citations") if isinstance(data, dict) else None
        if citations is None:
            citations = []

        if (
            not isinstance(data, dict)
            or not data.get("success")
            or not isinstance(reply_text, str)
            or not reply_text
            or not isinstance(citations, list)
        ):
            logger.error(
                "Response service reported no usable reply",
                extra={"chatbot_id": chatbot_id},
            )
            return ReplyResult(
                status="recoverable_error",
                error_type="invalid_output",
                latency_ms=latency_ms,
                metadata=base_metadata,
            )

        return ReplyResult(
            status="success",
            reply_text=reply_text,
            citations=citations,
            latency_ms=latency_ms,
            metadata=base_metadata,
        )
