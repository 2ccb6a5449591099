"""Tests for the Telegram webhook route."""

from unittest.mock import MagicMock

import httpx
import pytest
from fastapi import FastAPI

from groupgate.app.config import get_settings
from groupgate.app.routes.telegram import SECRET_HEADER
from groupgate.app.routes.telegram import router as telegram_router

URL = "/api/telegram/webhook"

UPDATE = {
    "update_id": 501,
    "message": {
        "message_id": 9,
        "chat": {"id": 42, "type": "private"},
        "from": {"id": 42, "is_bot": False, "first_name": "Petr"},
        "text": "/start",
    },
}


@pytest.fixture
def queue():
    return MagicMock()


@pytest.fixture
def make_client(settings, queue):
    def _make(secret: str = "", with_dispatcher: bool = True) -> httpx.AsyncClient:
        app = FastAPI()
        app.include_router(telegram_router)
        configured = settings.model_copy(update={"webhook_secret": secret})
        app.dependency_overrides[get_settings] = lambda: configured
        if with_dispatcher:
            app.state.dispatcher = queue
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    return _make


class TestWebhook:
    async def test_update_is_enqueued(self, make_client, queue):
        async with make_client() as client:
            resp = await client.post(URL, json=UPDATE)

        assert resp.status_code == 200
        assert resp.json() == {"ok": True}
        queue.enqueue.assert_called_once()
        update = queue.enqueue.call_args.args[0]
        assert update.update_id == 501
        assert update.message.command == "start"

    async def test_valid_secret_accepted(self, make_client, queue):
        async with make_client(secret="s3cret") as client:
            resp = await client.post(URL, json=UPDATE, headers={SECRET_HEADER: "s3cret"})
        assert resp.status_code == 200
        queue.enqueue.assert_called_once()

    async def test_wrong_secret_rejected(self, make_client, queue):
        async with make_client(secret="s3cret") as client:
            resp = await client.post(URL, json=UPDATE, headers={SECRET_HEADER: "guess"})
        assert resp.status_code == 401
        queue.enqueue.assert_not_called()

    async def test_missing_secret_rejected(self, make_client, queue):
        async with make_client(secret="s3cret") as client:
            resp = await client.post(URL, json=UPDATE)
        assert resp.status_code == 401
        queue.enqueue.assert_not_called()

    async def test_malformed_update_acknowledged(self, make_client, queue):
        async with make_client() as client:
            resp = await client.post(URL, json={"message": {"chat": "nope"}})
        assert resp.status_code == 200
        assert resp.json() == {"ok": False, "error": "malformed_update"}
        queue.enqueue.assert_not_called()

    async def test_non_json_body_acknowledged(self, make_client, queue):
        async with make_client() as client:
            resp = await client.post(URL, content=b"not json", headers={"content-type": "application/json"})
        assert resp.status_code == 200
        assert resp.json()["ok"] is False
        queue.enqueue.assert_not_called()

    async def test_unavailable_before_startup(self, make_client):
        async with make_client(with_dispatcher=False) as client:
            resp = await client.post(URL, json=UPDATE)
        assert resp.status_code == 503
