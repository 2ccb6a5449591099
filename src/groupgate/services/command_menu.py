"""Bot command menu registration."""

import logging

from groupgate.domain.schemas import BotCommand
from groupgate.infra.telegram_client import TelegramAPIError, TelegramClient

logger = logging.getLogger(__name__)

ADMIN_COMMANDS = [BotCommand(command="sethello", description="Set the greeting for new applicants")]
PRIVATE_COMMANDS = [BotCommand(command="start", description="Start registration")]


async def register_commands(client: TelegramClient, group_id: int) -> bool:
    """Publish the command menus; failures are logged, never fatal."""
    try:
        await client.set_my_commands(
            ADMIN_COMMANDS,
            scope={"type": "chat_administrators", "chat_id": group_id},
        )
        await client.set_my_commands(PRIVATE_COMMANDS, scope={"type": "all_private_chats"})
    except TelegramAPIError as e:
        logger.warning("Failed to register bot commands: %s", e)
        return False
    return True
