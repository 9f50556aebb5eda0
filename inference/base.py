from abc import ABC, abstractmethod
from typing import Sequence

from storage.types import HistoryTurn

from .types import ReplyResult


class ResponseBackend(ABC):
    """
    Abstract response service boundary.
    Pipeline code must depend ONLY on this interface.
    """

    @abstractmethod
    async def get_reply(
        self,
        api_key: str,
        chatbot_id: str,
        phone_number: str,
        history: Sequence[HistoryTurn],
    ) -> ReplyResult:
        """Ask the response service for the next assistant turn."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release HTTP resources. Default: nothing to release."""
        return None
