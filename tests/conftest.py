"""Shared test infrastructure for the groupgate test suite.

Provides:
- settings: Settings for a fake bot token and managed group
- session_factory / config_store: file-backed SQLite store per test
- telegram_mock: mock TelegramClient capturing sent messages and approvals
- clock: controllable monotonic clock for session expiry
- router / dispatcher: fully wired update handling on top of the mocks
- make_update helpers: factories for Telegram update payloads
"""

import itertools
import os

# Settings fail fast without these; set them before any groupgate import
os.environ.setdefault("TELEGRAM_TOKEN", "123456:test-token")
os.environ.setdefault("GROUP_ID", "-1001234567890")

from unittest.mock import AsyncMock, MagicMock

import pytest

from groupgate.app.config import Settings
from groupgate.domain.enums import ChatMemberStatus
from groupgate.domain.schemas import ChatMember, Message, Update, User
from groupgate.infra.database import create_engine, create_session_factory, init_db
from groupgate.services.config_store import ConfigStore
from groupgate.services.update_router import UpdateDispatcher, create_router

GROUP_ID = -1001234567890
DEFAULT_GREETING = "Hello! To join the group, please introduce yourself."


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    return Settings(
        telegram_token="123456:test-token",
        group_id=GROUP_ID,
        session_ttl_seconds=600,
        default_greeting=DEFAULT_GREETING,
        _env_file=None,
    )


# ---------------------------------------------------------------------------
# Database / store
# ---------------------------------------------------------------------------

@pytest.fixture
async def session_factory(tmp_path):
    """SQLite database in a temp dir with all tables created."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'groupgate-test.db'}")
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def config_store(session_factory):
    return ConfigStore(session_factory, DEFAULT_GREETING)


# ---------------------------------------------------------------------------
# Telegram client mock
# ---------------------------------------------------------------------------

@pytest.fixture
def telegram_mock():
    """Mock TelegramClient.

    - ``sent``: list of (chat_id, text) for every send_message call
    - ``member_status``: status returned by get_chat_member (default LEFT)
    - approve_chat_join_request / leave_chat are plain AsyncMocks
    """
    mock = MagicMock()
    mock.sent = []
    mock.member_status = ChatMemberStatus.LEFT
    message_ids = itertools.count(100)

    async def _capture_send(chat_id, text, entities=None):
        mock.sent.append((chat_id, text))
        chat_type = "supergroup" if chat_id < 0 else "private"
        return Message.model_validate({
            "message_id": next(message_ids),
            "chat": {"id": chat_id, "type": chat_type},
            "text": text,
        })

    async def _member(chat_id, user_id):
        return ChatMember(user=User(id=user_id, first_name="U"), status=mock.member_status)

    mock.send_message = AsyncMock(side_effect=_capture_send)
    mock.get_chat_member = AsyncMock(side_effect=_member)
    mock.approve_chat_join_request = AsyncMock(return_value=True)
    mock.leave_chat = AsyncMock(return_value=True)
    mock.set_my_commands = AsyncMock(return_value=True)
    return mock


def texts_to(mock, chat_id: int) -> list[str]:
    return [text for cid, text in mock.sent if cid == chat_id]


@pytest.fixture
def sent_to(telegram_mock):
    """Texts sent to one chat, in order: ``sent_to(chat_id)``."""
    return lambda chat_id: texts_to(telegram_mock, chat_id)


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Wired router
# ---------------------------------------------------------------------------

@pytest.fixture
def router(telegram_mock, config_store, settings, clock):
    return create_router(telegram_mock, config_store, settings, clock=clock)


@pytest.fixture
def dispatcher(router):
    return UpdateDispatcher(router)


# ---------------------------------------------------------------------------
# Update factories
# ---------------------------------------------------------------------------

_update_ids = itertools.count(1)


def _user_payload(user_id: int, username: str | None, is_bot: bool = False) -> dict:
    payload = {"id": user_id, "is_bot": is_bot, "first_name": "Test"}
    if username:
        payload["username"] = username
    return payload


@pytest.fixture
def private_message():
    """Factory for a private-chat message update.

    Usage:
        update = private_message(42, "Ivanov")
        update = private_message(42, None)  # e.g. a sticker
    """
    def _factory(user_id: int, text: str | None, username: str | None = "tester", is_bot: bool = False) -> Update:
        message = {
            "message_id": next(_update_ids),
            "chat": {"id": user_id, "type": "private"},
            "from": _user_payload(user_id, username, is_bot),
        }
        if text is not None:
            message["text"] = text
        return Update.model_validate({"update_id": next(_update_ids), "message": message})

    return _factory


@pytest.fixture
def group_message():
    """Factory for a message posted in a group (the managed one by default)."""
    def _factory(
        user_id: int,
        text: str | None,
        chat_id: int = GROUP_ID,
        chat_type: str = "supergroup",
        entities: list[dict] | None = None,
    ) -> Update:
        message = {
            "message_id": next(_update_ids),
            "chat": {"id": chat_id, "type": chat_type, "title": "Test group"},
            "from": _user_payload(user_id, "admin"),
        }
        if text is not None:
            message["text"] = text
        if entities:
            message["entities"] = entities
        return Update.model_validate({"update_id": next(_update_ids), "message": message})

    return _factory


@pytest.fixture
def join_request():
    """Factory for a chat_join_request update."""
    def _factory(user_id: int, chat_id: int = GROUP_ID, username: str | None = "tester") -> Update:
        return Update.model_validate({
            "update_id": next(_update_ids),
            "chat_join_request": {
                "chat": {"id": chat_id, "type": "supergroup", "title": "Test group"},
                "from": _user_payload(user_id, username),
                "user_chat_id": user_id,
                "date": 1700000000,
            },
        })

    return _factory


@pytest.fixture
def my_chat_member():
    """Factory for a my_chat_member update about the bot itself."""
    def _factory(old: str, new: str, chat_id: int = GROUP_ID, chat_type: str = "supergroup") -> Update:
        bot = {"id": 999, "is_bot": True, "first_name": "Gate"}
        return Update.model_validate({
            "update_id": next(_update_ids),
            "my_chat_member": {
                "chat": {"id": chat_id, "type": chat_type, "title": "Somewhere"},
                "from": _user_payload(1, "owner"),
                "date": 1700000000,
                "old_chat_member": {"user": bot, "status": old},
                "new_chat_member": {"user": bot, "status": new},
            },
        })

    return _factory
