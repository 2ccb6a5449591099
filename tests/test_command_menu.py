"""Tests for bot command menu registration."""

from groupgate.infra.telegram_client import TelegramAPIError
from groupgate.services.command_menu import ADMIN_COMMANDS, PRIVATE_COMMANDS, register_commands

GROUP_ID = -1001234567890


async def test_registers_both_scopes(telegram_mock):
    assert await register_commands(telegram_mock, GROUP_ID) is True

    calls = telegram_mock.set_my_commands.await_args_list
    assert calls[0].args[0] == ADMIN_COMMANDS
    assert calls[0].kwargs["scope"] == {"type": "chat_administrators", "chat_id": GROUP_ID}
    assert calls[1].args[0] == PRIVATE_COMMANDS
    assert calls[1].kwargs["scope"] == {"type": "all_private_chats"}


async def test_failure_is_not_fatal(telegram_mock, caplog):
    telegram_mock.set_my_commands.side_effect = TelegramAPIError("setMyCommands", "Unauthorized", 401)
    assert await register_commands(telegram_mock, GROUP_ID) is False
    assert "Failed to register bot commands" in caplog.text
