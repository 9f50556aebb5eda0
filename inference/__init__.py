"""
Response service boundary.

This package provides a clean abstraction for fetching assistant replies,
allowing the pipeline to remain agnostic of the underlying backend.

Supported backends:
- StubResponseBackend: Deterministic echo (default for CI/tests)
- ResponseApiBackend: HTTP response service

Example usage:
    from inference import StubResponseBackend

    backend = StubResponseBackend()
    result = await backend.get_reply(api_key, chatbot_id, phone, history)
"""

from .types import ReplyResult, ReplyStatus
from .base import ResponseBackend
from .stub import StubResponseBackend
from .response_api import ResponseApiBackend, build_reply_request

__all__ = [
    "ReplyResult",
    "ReplyStatus",
    "ResponseBackend",
    "StubResponseBackend",
    "ResponseApiBackend",
    "build_reply_request",
]
