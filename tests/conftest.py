"""Pytest configuration and fixtures."""

import json
import sys
from pathlib import Path

import httpx
import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from storage.sqlite import SQLiteStore  # noqa: E402
from storage.types import Tenant  # noqa: E402
from transport.whatsapp.sender import WhatsAppSender  # noqa: E402


class GraphApiRecorder:
    """MockTransport handler standing in for graph.facebook.com."""

    def __init__(self):
        self.requests = []
        self.fail = False
        self._counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(
            {
                "url": str(request.url),
                "authorization": request.headers.get("authorization"),
                "body": body,
            }
        )
        if self.fail:
            return httpx.Response(400, json={"error": {"message": "Recipient not allowed"}})
        self._counter += 1
        return httpx.Response(
            200,
            json={
                "messaging_product": "whatsapp",
                "contacts": [{"input": body["to"], "wa_id": body["to"]}],
                "messages": [{"id": f"wamid.out.{self._counter}"}],
            },
        )

    @property
    def texts(self):
        return [r["body"]["text"]["body"] for r in self.requests]


@pytest.fixture
def graph_api():
    return GraphApiRecorder()


@pytest.fixture
def sender(graph_api):
    client = httpx.AsyncClient(transport=httpx.MockTransport(graph_api.handler))
    return WhatsAppSender(client=client)


@pytest.fixture
def sqlite_store(tmp_path):
    return SQLiteStore(str(tmp_path / "webhook.db"))


@pytest.fixture
def tenant():
    return Tenant(
        id="acct-1",
        chatbot_id="bot-1",
        phone_number_id="PNID-1",
        access_token="token-1",
        waba_id="waba-1",
        phone_number="+15550000001",
        verify_token="verify-1",
    )


@pytest.fixture
def seeded_store(sqlite_store, tenant):
    """Store with one active tenant whose bot has an API key."""
    sqlite_store.seed_chatbot(tenant.chatbot_id, "key-1")
    sqlite_store.seed_tenant(tenant)
    return sqlite_store


@pytest.fixture
def make_message():
    """Build a raw inbound message object."""

    def _make(message_type="text", message_id="wamid.in.1", sender="15551234567", **content):
        message = {
            "from": sender,
            "id": message_id,
            "timestamp": "1707500000",
            "type": message_type,
        }
        if message_type == "text" and not content:
            content = {"text": {"body": "Hello"}}
        message.update(content)
        return message

    return _make


@pytest.fixture
def make_envelope():
    """Build a raw webhook body holding a single change."""

    def _make(
        messages=None,
        statuses=None,
        phone_number_id="PNID-1",
        contacts=None,
        field="messages",
    ):
        value = {
            "messaging_product": "whatsapp",
            "metadata": {"display_phone_number": "15550000001", "phone_number_id": phone_number_id},
        }
        if contacts is not None:
            value["contacts"] = contacts
        if messages is not None:
            value["messages"] = messages
        if statuses is not None:
            value["statuses"] = statuses
        return {
            "object": "whatsapp_business_account",
            "entry": [{"id": "waba-1", "changes": [{"field": field, "value": value}]}],
        }

    return _make
