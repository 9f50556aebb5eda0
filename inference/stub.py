from typing import List, Optional, Sequence, Tuple

from storage.types import HistoryTurn

from .base import ResponseBackend
from .types import ReplyResult

StubCall = Tuple[str, str, str, List[HistoryTurn]]


class StubResponseBackend(ResponseBackend):
    """
    Deterministic fake response service for local runs and tests.

    Echoes the latest user turn. Every call is recorded so tests can
    assert on what reached the gateway.
    """

    def __init__(
        self,
        reply_prefix: str = "Echo: ",
        fail: bool = False,
        citations: Optional[List[str]] = None,
    ):
        self.reply_prefix = reply_prefix
        self.fail = fail
        self.citations = list(citations or [])
        self.calls: List[StubCall] = []

    async def get_reply(
        self,
        api_key: str,
        chatbot_id: str,
        phone_number: str,
        history: Sequence[HistoryTurn],
    ) -> ReplyResult:
        """
        Generate a deterministic reply from the conversation history.

        Args:
            api_key: Bot API key (recorded only)
            chatbot_id: Bot the conversation belongs to
            phone_number: End user's number
            history: Turns ordered oldest first

        Returns:
            ReplyResult echoing the last user turn, or a recoverable error
            when configured to fail
        """
        self.calls.append((api_key, chatbot_id, phone_number, list(history)))

        if self.fail:
            return ReplyResult(
                status="recoverable_error",
                error_type="invalid_output",
                metadata={"backend": "stub"},
            )

        last_user = next((t.content for t in reversed(history) if t.role == "user"), "")
        return ReplyResult(
            status="success",
            reply_text=f"{self.reply_prefix}{last_user}",
            citations=list(self.citations),
            metadata={"backend": "stub", "chatbot_id": chatbot_id},
        )
