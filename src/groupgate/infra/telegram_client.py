"""Telegram Bot API client over httpx.

Endpoints used (all POST https://api.telegram.org/bot<token>/<method>):
- sendMessage, approveChatJoinRequest, getChatMember, leaveChat
- setMyCommands, setWebhook, deleteWebhook, getUpdates
"""

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from groupgate.domain.schemas import BotCommand, ChatMember, Message, MessageEntity

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

ALLOWED_UPDATES = ["message", "chat_join_request", "my_chat_member"]


class TelegramAPIError(Exception):
    """Raised when a Bot API call fails (network error, non-2xx, or ok=false)."""

    def __init__(self, method: str, description: str, error_code: int | None = None):
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"Telegram {method} failed ({error_code}): {description}")


class TelegramClient:
    """Thin async wrapper around the Bot API methods the gatekeeper needs."""

    def __init__(
        self,
        token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=f"{api_base.rstrip('/')}/bot{token}/",
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, payload: dict[str, Any], timeout: float | None = None) -> Any:
        """POST *payload* to *method* and return the ``result`` field."""
        kwargs: dict[str, Any] = {"json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = await self._client.post(method, **kwargs)
        except httpx.TimeoutException as e:
            raise TelegramAPIError(method, f"timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TelegramAPIError(method, f"network error: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            raise TelegramAPIError(method, f"invalid JSON: {resp.text[:300]}", resp.status_code)

        if not (200 <= resp.status_code < 300) or not data.get("ok"):
            raise TelegramAPIError(
                method,
                data.get("description") or resp.text[:300],
                data.get("error_code") or resp.status_code,
            )
        return data.get("result")

    @staticmethod
    def _parse(method: str, model: type[ModelT], result: Any) -> ModelT:
        """Validate a ``result`` payload; an unexpected shape is a failed call."""
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise TelegramAPIError(method, f"unexpected result: {e}") from e

    # ------------------------------------------------------------------
    # Outbound actions
    # ------------------------------------------------------------------

    async def send_message(
        self,
        chat_id: int,
        text: str,
        entities: list[MessageEntity] | None = None,
    ) -> Message:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if entities:
            payload["entities"] = [e.model_dump(exclude_none=True) for e in entities]
        result = await self._call("sendMessage", payload)
        logger.debug("Message sent to %s (len=%d)", chat_id, len(text))
        return self._parse("sendMessage", Message, result)

    async def approve_chat_join_request(self, chat_id: int, user_id: int) -> bool:
        return bool(await self._call("approveChatJoinRequest", {"chat_id": chat_id, "user_id": user_id}))

    async def get_chat_member(self, chat_id: int, user_id: int) -> ChatMember:
        result = await self._call("getChatMember", {"chat_id": chat_id, "user_id": user_id})
        return self._parse("getChatMember", ChatMember, result)

    async def leave_chat(self, chat_id: int) -> bool:
        return bool(await self._call("leaveChat", {"chat_id": chat_id}))

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def set_my_commands(self, commands: list[BotCommand], scope: dict[str, Any]) -> bool:
        payload = {
            "commands": [c.model_dump() for c in commands],
            "scope": scope,
        }
        return bool(await self._call("setMyCommands", payload))

    async def set_webhook(self, url: str, secret_token: str = "") -> bool:
        payload: dict[str, Any] = {
            "url": url,
            "allowed_updates": ALLOWED_UPDATES,
        }
        if secret_token:
            payload["secret_token"] = secret_token
        return bool(await self._call("setWebhook", payload))

    async def delete_webhook(self) -> bool:
        return bool(await self._call("deleteWebhook", {}))

    async def get_updates(self, offset: int, timeout: int) -> list[dict[str, Any]]:
        """Long-poll for raw updates; the HTTP timeout exceeds the poll timeout."""
        payload = {
            "offset": offset,
            "timeout": timeout,
            "allowed_updates": ALLOWED_UPDATES,
        }
        result = await self._call("getUpdates", payload, timeout=timeout + 10)
        return [item for item in result or [] if isinstance(item, dict)]
