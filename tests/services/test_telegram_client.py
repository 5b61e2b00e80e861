"""Tests for TelegramClient over httpx.MockTransport (no network)."""
import json

import httpx
import pytest

from app.services.telegram.client import TelegramAPIError, TelegramClient


def _client(handler) -> TelegramClient:
    tg = TelegramClient(token="123:abc")
    tg._client = httpx.Client(base_url="https://api.telegram.org/bot123:abc", transport=httpx.MockTransport(handler))
    return tg


class TestTelegramClient:
    def test_disabled_without_token(self):
        assert TelegramClient(token="").enabled is False
        assert TelegramClient(token="123:abc").enabled is True

    def test_send_message(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        tg = _client(handler)
        result = tg.send_message("777", "salom")
        assert result["result"]["message_id"] == 1
        assert seen["path"] == "/bot123:abc/sendMessage"
        assert seen["body"] == {"chat_id": 777, "text": "salom"}
        tg.close()

    def test_api_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"ok": False, "error_code": 403, "description": "bot was blocked"})

        tg = _client(handler)
        with pytest.raises(TelegramAPIError) as exc:
            tg.send_message("777", "salom")
        assert exc.value.error_code == 403
