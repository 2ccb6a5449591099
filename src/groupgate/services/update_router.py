"""Update routing: turns Telegram updates into gatekeeper / dialogue calls.

Updates are handled strictly one at a time: the webhook and the polling loop
only enqueue, and a single ``UpdateDispatcher`` worker awaits each update to
completion before taking the next. A failing update is logged with its
payload and never stops the worker.
"""

import asyncio
import logging

from pydantic import ValidationError

from groupgate.app.config import Settings
from groupgate.domain.enums import ChatType, UpdateKind
from groupgate.domain.schemas import Message, Update
from groupgate.infra.telegram_client import TelegramAPIError, TelegramClient
from groupgate.services.bot_membership import BotMembershipService
from groupgate.services.config_store import ConfigStore
from groupgate.services.gatekeeper import IDENTIFICATION_FIELDS, MembershipGatekeeper
from groupgate.services.greeting_service import GREETING_FIELDS, GreetingService
from groupgate.services.session_engine import SessionEngine

logger = logging.getLogger(__name__)

USE_START_TEXT = "Use /start"
PRIVATE_ONLY_TEXT = "This only works in a private chat with the bot."


class UpdateRouter:
    """Dispatches one update to the component that owns it."""

    def __init__(
        self,
        client: TelegramClient,
        gatekeeper: MembershipGatekeeper,
        greetings: GreetingService,
        bot_membership: BotMembershipService,
        group_id: int,
        trace: bool = False,
    ):
        self.client = client
        self.gatekeeper = gatekeeper
        self.greetings = greetings
        self.bot_membership = bot_membership
        self.group_id = group_id
        self.trace = trace

    @property
    def identification(self) -> SessionEngine:
        return self.gatekeeper.engine

    @property
    def greeting_editor(self) -> SessionEngine:
        return self.greetings.engine

    @property
    def engines(self) -> tuple[SessionEngine, ...]:
        return (self.identification, self.greeting_editor)

    async def dispatch(self, update: Update) -> None:
        kind = update.kind
        if self.trace:
            text = update.message.text if update.message else None
            logger.debug("Update %s: kind=%s text=%r", update.update_id, kind.value, text)

        if kind == UpdateKind.JOIN_REQUEST:
            request = update.chat_join_request
            await self.gatekeeper.on_join_request(request.chat.id, request.from_user, request.user_chat_id)
        elif kind == UpdateKind.MY_CHAT_MEMBER:
            await self.bot_membership.on_update(update.my_chat_member)
        elif kind == UpdateKind.MESSAGE:
            await self._on_message(update.message)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def _on_message(self, message: Message) -> None:
        user = message.from_user
        if user is None or user.is_bot:
            return

        command = message.command
        if command == "cancel":
            await self._on_cancel(message)
        elif command == "sethello":
            await self.greetings.request_change(message)
        elif command == "start":
            await self._on_start(message)
        elif message.chat.type == ChatType.PRIVATE:
            await self._on_private_message(message)
        elif message.chat.id == self.group_id:
            await self._on_group_message(message)

    async def _on_start(self, message: Message) -> None:
        if message.chat.type != ChatType.PRIVATE:
            await self.client.send_message(message.chat.id, PRIVATE_ONLY_TEXT)
            return
        await self.gatekeeper.on_private_start(message.from_user, chat_id=message.chat.id)

    async def _on_cancel(self, message: Message) -> None:
        user = message.from_user
        if message.chat.type == ChatType.PRIVATE:
            await self.gatekeeper.cancel_identification(user, chat_id=message.chat.id)
            return

        session = self.greeting_editor.get(user.id)
        if session is None or session.chat_id != message.chat.id:
            return
        await self.greeting_editor.cancel(user.id, chat_id=message.chat.id)

    async def _on_private_message(self, message: Message) -> None:
        user = message.from_user
        if self.identification.has_session(user.id):
            if message.text is None:
                await self.identification.remind(user.id)
            else:
                await self.identification.submit(user.id, message.text, user.is_bot, message=message)
            return

        if await self.gatekeeper.resume_pending(user, chat_id=message.chat.id):
            return
        await self.client.send_message(message.chat.id, USE_START_TEXT)

    async def _on_group_message(self, message: Message) -> None:
        user = message.from_user
        session = self.greeting_editor.get(user.id)
        if session is None or session.chat_id != message.chat.id:
            return
        if message.text is None:
            await self.greeting_editor.remind(user.id)
        else:
            await self.greeting_editor.submit(user.id, message.text, user.is_bot, message=message)


class UpdateDispatcher:
    """Single-consumer queue in front of the router."""

    def __init__(self, router: UpdateRouter):
        self.router = router
        self._queue: asyncio.Queue[Update] = asyncio.Queue()

    def enqueue(self, update: Update) -> None:
        self._queue.put_nowait(update)

    async def process(self, update: Update) -> bool:
        """Handle one update; returns False if the handler raised."""
        try:
            await self.router.dispatch(update)
        except Exception:
            logger.exception(
                "Update %s failed: %s",
                update.update_id,
                update.model_dump_json(by_alias=True, exclude_none=True),
            )
            return False
        return True

    async def run(self) -> None:
        while True:
            update = await self._queue.get()
            try:
                await self.process(update)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued update has been handled."""
        await self._queue.join()


def create_router(
    client: TelegramClient,
    store: ConfigStore,
    settings: Settings,
    clock=None,
) -> UpdateRouter:
    """Wire both dialogue engines, the gatekeeper and the greeting flow."""
    clock_kwargs = {} if clock is None else {"clock": clock}

    identification = SessionEngine(
        "identification", IDENTIFICATION_FIELDS, client, settings.session_ttl_seconds, **clock_kwargs,
    )
    greeting_editor = SessionEngine("greeting", GREETING_FIELDS, client, settings.session_ttl_seconds, **clock_kwargs)

    return UpdateRouter(
        client=client,
        gatekeeper=MembershipGatekeeper(client, store, identification, settings.group_id, **clock_kwargs),
        greetings=GreetingService(client, store, greeting_editor, settings.group_id),
        bot_membership=BotMembershipService(client, settings.group_id),
        group_id=settings.group_id,
        trace=settings.debug,
    )


# ---------------------------------------------------------------------------
# Background jobs
# ---------------------------------------------------------------------------

async def poll_once(client: TelegramClient, dispatcher: UpdateDispatcher, offset: int, timeout: int) -> int:
    """Fetch one batch of updates, enqueue the valid ones, return the next offset."""
    for raw in await client.get_updates(offset, timeout):
        update_id = raw.get("update_id")
        if isinstance(update_id, int):
            offset = max(offset, update_id + 1)
        try:
            update = Update.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping malformed update %s: %s", update_id, e)
            continue
        dispatcher.enqueue(update)
    return offset


async def polling_loop(client: TelegramClient, dispatcher: UpdateDispatcher, timeout: int) -> None:
    """Long-poll getUpdates forever."""
    offset = 0
    while True:
        try:
            offset = await poll_once(client, dispatcher, offset, timeout)
        except TelegramAPIError as e:
            logger.error("getUpdates failed: %s", e)
            await asyncio.sleep(2)
        except Exception as e:
            logger.error("Polling error: %s", e)
            await asyncio.sleep(2)


async def session_sweep_loop(engines: tuple[SessionEngine, ...], interval_seconds: int) -> None:
    """Drop idle dialogue sessions every *interval_seconds*."""
    while True:
        await asyncio.sleep(interval_seconds)
        for engine in engines:
            try:
                engine.expire_idle()
            except Exception as e:
                logger.error("Session sweep error (%s): %s", engine.name, e)
