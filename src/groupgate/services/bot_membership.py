"""Reactions to changes of the bot's own membership (my_chat_member updates)."""

import logging

from groupgate.domain.enums import ChatMemberStatus, ChatType
from groupgate.domain.schemas import ChatMemberUpdated
from groupgate.infra.telegram_client import TelegramClient

logger = logging.getLogger(__name__)

MISSING_RIGHTS_TEXT = (
    "I have been stripped of administrator rights and cannot work like this. "
    "Please make me an administrator through the member list."
)
READY_TEXT = "Bot is ready."


class BotMembershipService:
    """Keeps the bot inside the managed group only and reports missing rights."""

    def __init__(self, client: TelegramClient, group_id: int):
        self.client = client
        self.group_id = group_id

    async def on_update(self, update: ChatMemberUpdated) -> None:
        chat = update.chat
        if chat.type == ChatType.PRIVATE:
            return

        if chat.type == ChatType.CHANNEL or chat.id != self.group_id:
            logger.warning("Leaving foreign chat %s (%s, %s)", chat.id, chat.type.value, chat.title)
            await self.client.leave_chat(chat.id)
            return

        old_status = update.old_chat_member.status
        new_status = update.new_chat_member.status
        is_admin = new_status == ChatMemberStatus.ADMINISTRATOR
        logger.info("Bot membership in group changed: %s -> %s", old_status.value, new_status.value)

        if new_status in (ChatMemberStatus.LEFT, ChatMemberStatus.KICKED):
            return
        if not is_admin:
            await self.client.send_message(chat.id, MISSING_RIGHTS_TEXT)
        elif old_status != ChatMemberStatus.ADMINISTRATOR:
            await self.client.send_message(chat.id, READY_TEXT)
