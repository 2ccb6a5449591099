"""Greeting configuration: lets group administrators replace the applicant greeting."""

import logging

from groupgate.domain.enums import ChatType
from groupgate.domain.schemas import ConfigDocument, Message, MessageEntity
from groupgate.infra.telegram_client import TelegramAPIError, TelegramClient
from groupgate.services import capabilities
from groupgate.services.config_store import ConfigStore
from groupgate.services.session_engine import Completion, FieldDefinition, SessionEngine
from groupgate.services.validation_rules import accept_text

logger = logging.getLogger(__name__)

GREETING_FIELDS = (
    FieldDefinition(
        "greeting",
        "new greeting",
        accept_text,
        prompt_text="Send me the new greeting message, use /cancel to keep the current one",
    ),
)

GROUP_ONLY_TEXT = "You can only use this command in the group."
NOT_ADMIN_TEXT = "You cannot do this. You are not an administrator."
GREETING_SAVED_TEXT = "Done! The new greeting is saved."


class GreetingService:
    """Runs the ``/sethello`` flow on top of its own session engine."""

    def __init__(
        self,
        client: TelegramClient,
        store: ConfigStore,
        engine: SessionEngine,
        group_id: int,
    ):
        self.client = client
        self.store = store
        self.engine = engine
        self.group_id = group_id
        engine.on_complete = self._on_greeting_received

    async def request_change(self, message: Message) -> bool:
        """Handle ``/sethello``: open the greeting dialogue for an administrator of the group."""
        chat = message.chat
        user = message.from_user
        if user is None or chat.type == ChatType.PRIVATE or chat.id != self.group_id:
            await self.client.send_message(chat.id, GROUP_ONLY_TEXT)
            return False

        try:
            allowed = await capabilities.is_administrator(self.client, self.group_id, user.id)
        except TelegramAPIError as e:
            logger.warning("Administrator check failed for user %s: %s", user.id, e)
            allowed = False

        if not allowed:
            await self.client.send_message(chat.id, NOT_ADMIN_TEXT)
            return False

        await self.engine.enter(user.id, chat_id=chat.id)
        return True

    async def set_greeting(self, text: str, entities: list[MessageEntity] | None = None) -> ConfigDocument:
        """Overwrite the greeting and persist the document."""
        document = await self.store.read()
        document.greeting_text = text
        document.greeting_entities = list(entities or [])
        await self.store.write(document)
        logger.info("Greeting updated (%d chars, %d entities)", len(text), len(document.greeting_entities))
        return document

    async def _on_greeting_received(self, completion: Completion) -> None:
        entities = completion.message.entities if completion.message else None
        await self.set_greeting(completion.fields["greeting"], entities)
        await self.client.send_message(completion.chat_id, GREETING_SAVED_TEXT)
