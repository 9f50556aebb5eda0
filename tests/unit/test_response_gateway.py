"""
Response Gateway Tests

ResponseApiBackend against an httpx.MockTransport, plus the stub backend.
"""

import json

import httpx
import pytest

from inference import ResponseApiBackend, StubResponseBackend, build_reply_request
from storage.types import HistoryTurn


HISTORY = [
    HistoryTurn(role="user", content="What are your hours?"),
    HistoryTurn(role="assistant", content="9 to 5."),
    HistoryTurn(role="user", content="On Saturday?"),
]


def _backend(handler) -> ResponseApiBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ResponseApiBackend(base_url="http://responses.local", client=client)


class TestRequestShape:

    def test_reply_request_body(self):
        body = build_reply_request("key-1", "bot-1", "15551234567", HISTORY)

        assert json.loads(body["query"]) == [turn.as_dict() for turn in HISTORY]
        assert body["mode"] == "default"
        assert body["user"] == {
            "uniqueClientId": "whatsapp_15551234567_bot-1",
            "converslyWebId": "key-1",
            "metadata": {"platform": "whatsapp", "phoneNumber": "15551234567"},
        }
        assert body["metadata"] == {"originUrl": "whatsapp://chat"}
        assert body["chatbotId"] == "bot-1"

    @pytest.mark.asyncio
    async def test_posts_to_response_endpoint(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True, "response": "ok"})

        await _backend(handler).get_reply("key-1", "bot-1", "15551234567", HISTORY)

        assert str(seen[0].url) == "http://responses.local/response"
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content)["chatbotId"] == "bot-1"


class TestReplyResults:

    @pytest.mark.asyncio
    async def test_success(self):
        backend = _backend(
            lambda r: httpx.Response(
                200, json={"success": True, "response": "Closed on Saturday.", "citations": ["faq#hours"]}
            )
        )

        result = await backend.get_reply("key-1", "bot-1", "15551234567", HISTORY)

        assert result.success
        assert result.reply_text == "Closed on Saturday."
        assert result.citations == ["faq#hours"]
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_success_flag_false(self):
        backend = _backend(lambda r: httpx.Response(200, json={"success": False, "response": "x"}))
        result = await backend.get_reply("key-1", "bot-1", "1", HISTORY)

        assert not result.success
        assert result.status == "recoverable_error"
        assert result.error_type == "invalid_output"

    @pytest.mark.asyncio
    async def test_empty_response_text(self):
        backend = _backend(lambda r: httpx.Response(200, json={"success": True, "response": ""}))
        assert not (await backend.get_reply("key-1", "bot-1", "1", HISTORY)).success

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"success": True, "response": {"text": "hi"}},
            {"success": True, "response": 42},
            {"success": True, "response": "hi", "citations": "faq#hours"},
            {"success": True, "response": "hi", "citations": {"url": "faq"}},
        ],
    )
    async def test_mistyped_reply_fields(self, body):
        backend = _backend(lambda r: httpx.Response(200, json=body))
        result = await backend.get_reply("key-1", "bot-1", "1", HISTORY)

        assert not result.success
        assert result.error_type == "invalid_output"
        assert result.reply_text is None

    @pytest.mark.asyncio
    async def test_missing_citations_default_empty(self):
        backend = _backend(lambda r: httpx.Response(200, json={"success": True, "response": "hi", "citations": None}))
        result = await backend.get_reply("key-1", "bot-1", "1", HISTORY)

        assert result.success
        assert result.citations == []

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        backend = _backend(lambda r: httpx.Response(500, json={"success": True, "response": "x"}))
        result = await backend.get_reply("key-1", "bot-1", "1", HISTORY)

        assert not result.success
        assert result.error_type == "http_error"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        backend = _backend(lambda r: httpx.Response(200, text="<html>"))
        result = await backend.get_reply("key-1", "bot-1", "1", HISTORY)

        assert not result.success
        assert result.error_type == "invalid_output"

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await _backend(handler).get_reply("key-1", "bot-1", "1", HISTORY)

        assert not result.success
        assert result.error_type == "timeout"

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = await _backend(handler).get_reply("key-1", "bot-1", "1", HISTORY)

        assert result.status == "fatal_error"
        assert result.error_type == "backend_unavailable"


class TestStubBackend:

    @pytest.mark.asyncio
    async def test_echoes_last_user_turn_and_records_call(self):
        stub = StubResponseBackend()
        result = await stub.get_reply("key-1", "bot-1", "155512", HISTORY)

        assert result.success
        assert result.reply_text == "Echo: On Saturday?"
        assert stub.calls == [("key-1", "bot-1", "155512", HISTORY)]

    @pytest.mark.asyncio
    async def test_fail_mode(self):
        result = await StubResponseBackend(fail=True).get_reply("key-1", "bot-1", "155512", HISTORY)
        assert not result.success
