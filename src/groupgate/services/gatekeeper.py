"""Membership gatekeeper: decides when identification is needed and grants approval.

Flow:
1. A join request for the managed group marks the user as pending (persisted)
   and starts the identification dialogue in their private chat.
2. The dialogue (session engine) collects surname, given name and class.
3. On completion the new member is announced in the group, the user gets a
   confirmation with a link to the announcement, and the join request is
   approved. ``on_dialogue_complete`` is the only place that approves.

Users who already belong to the group never get a dialogue. If the status
lookup fails the user is treated as not yet a member, so identification is
never skipped on an error.

A dialogue can also be started with ``/start`` by someone who never sent a
join request. They are announced and confirmed like everyone else; only the
approval call fails, and that failure is logged for an administrator.
"""

import logging
import time
from typing import Callable

from groupgate.domain.schemas import User
from groupgate.infra.telegram_client import TelegramAPIError, TelegramClient
from groupgate.services import capabilities
from groupgate.services.config_store import ConfigStore
from groupgate.services.session_engine import Completion, FieldDefinition, OutboundText, SessionEngine
from groupgate.services.validation_rules import (
    validate_class_label,
    validate_given_name,
    validate_surname,
)

logger = logging.getLogger(__name__)

IDENTIFICATION_FIELDS = (
    FieldDefinition("last_name", "surname", validate_surname, prompt_text="Send me your surname"),
    FieldDefinition("first_name", "given name", validate_given_name),
    FieldDefinition("class_label", "class", validate_class_label),
)

ALREADY_MEMBER_TEXT = "You are already a member of the group."
ALREADY_APPROVED_TEXT = "Your join request has already been approved."

# How long a successful approval is remembered
APPROVAL_MEMORY_SECONDS = 24 * 60 * 60


def message_link(chat_id: int, message_id: int, username: str | None = None) -> str:
    """Public link to a group message (t.me/c/... for private supergroups)."""
    if username:
        return f"https://t.me/{username}/{message_id}"
    short_id = str(chat_id)
    if short_id.startswith("-100"):
        short_id = short_id[4:]
    else:
        short_id = short_id.lstrip("-")
    return f"https://t.me/c/{short_id}/{message_id}"


def describe_member(fields: dict[str, str]) -> str:
    return f"{fields['first_name']} {fields['last_name']} from {fields['class_label']}"


class MembershipGatekeeper:
    """Reconciles join requests with identification dialogues."""

    def __init__(
        self,
        client: TelegramClient,
        store: ConfigStore,
        engine: SessionEngine,
        group_id: int,
        clock: Callable[[], float] = time.monotonic,
        approval_memory_seconds: float = APPROVAL_MEMORY_SECONDS,
    ):
        self.client = client
        self.store = store
        self.engine = engine
        self.group_id = group_id
        self.approval_memory_seconds = approval_memory_seconds
        self._clock = clock
        # user id -> time the approval for their latest join request was issued
        self._approved: dict[int, float] = {}
        engine.on_complete = self.on_dialogue_complete

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def on_join_request(self, group_id: int, user: User, user_chat_id: int | None = None) -> bool:
        """Handle a join request; returns True when a dialogue was started."""
        logger.info("Chat join request from user %s (@%s) for chat %s", user.id, user.username, group_id)
        if group_id != self.group_id:
            logger.warning("Join request for unmanaged chat %s ignored", group_id)
            return False

        self._approved.pop(user.id, None)
        return await self.begin_identification(user.id, chat_id=user_chat_id, mark_pending=True)

    async def on_private_start(self, user: User, chat_id: int | None = None) -> bool:
        """``/start`` in a private chat: restart identification from the first step."""
        self.engine.discard(user.id)
        await self.store.consume_pending(user.id)
        return await self.begin_identification(user.id, chat_id=chat_id)

    async def resume_pending(self, user: User, chat_id: int | None = None) -> bool:
        """Restart identification for a pending user whose session was lost.

        Returns False (and does nothing) when the user is not pending.
        """
        if not await self.store.consume_pending(user.id):
            return False
        logger.info("Resuming identification for pending user %s", user.id)
        await self.begin_identification(user.id, chat_id=chat_id)
        return True

    async def cancel_identification(self, user: User, chat_id: int | None = None) -> bool:
        """``/cancel`` in a private chat: drop the dialogue and the pending mark."""
        await self.store.consume_pending(user.id)
        return await self.engine.cancel(user.id, chat_id=chat_id)

    # ------------------------------------------------------------------
    # Dialogue
    # ------------------------------------------------------------------

    async def lookup_membership(self, user_id: int) -> bool | None:
        """True/False as reported by Telegram, None when the lookup failed."""
        try:
            return await capabilities.is_member(self.client, self.group_id, user_id)
        except TelegramAPIError as e:
            logger.warning("Membership lookup failed for user %s, assuming not a member: %s", user_id, e)
            return None

    def was_approved(self, user_id: int) -> bool:
        """Whether the latest join request of *user_id* was approved recently."""
        approved_at = self._approved.get(user_id)
        if approved_at is None:
            return False
        if self._clock() - approved_at > self.approval_memory_seconds:
            del self._approved[user_id]
            return False
        return True

    def _remember_approval(self, user_id: int) -> None:
        now = self._clock()
        stale = [uid for uid, at in self._approved.items() if now - at > self.approval_memory_seconds]
        for uid in stale:
            del self._approved[uid]
        self._approved[user_id] = now

    async def begin_identification(
        self, user_id: int, chat_id: int | None = None, mark_pending: bool = False,
    ) -> bool:
        """Send the greeting and start the dialogue unless the user already belongs to the group.

        With *mark_pending* the user is persisted as awaiting identification
        first, so the dialogue can be resumed after a restart.
        """
        chat_id = user_id if chat_id is None else chat_id

        member = await self.lookup_membership(user_id)
        if member:
            logger.info("User %s is already in the group", user_id)
            await self.client.send_message(chat_id, ALREADY_MEMBER_TEXT)
            return False
        if member is False:
            # Not in the group (any more): an earlier approval no longer counts
            self._approved.pop(user_id, None)

        if mark_pending:
            await self.store.add_pending(user_id)

        document = await self.store.read()
        greeting = OutboundText(document.greeting_text, document.greeting_entities or None)
        await self.engine.enter(user_id, chat_id=chat_id, intro=greeting)
        return True

    async def on_dialogue_complete(self, completion: Completion) -> None:
        """Announce the new member, confirm to them, then approve the join request.

        A user whose latest join request was already approved only gets
        ``ALREADY_APPROVED_TEXT``: no second announcement, no second approval.
        """
        user_id = completion.user_id
        if self.was_approved(user_id):
            logger.warning("User %s already approved for the current join request, not approving again", user_id)
            await self.store.consume_pending(user_id)
            await self.client.send_message(completion.chat_id, ALREADY_APPROVED_TEXT)
            return
        self._remember_approval(user_id)

        fields = completion.fields
        sender = completion.message.from_user if completion.message else None
        username = sender.username if sender else None
        name = describe_member(fields)
        logger.info("New user %s identified: %s", user_id, fields)

        try:
            await self.store.consume_pending(user_id)

            announcement_text = f"Let's welcome our new member, {name}!"
            if username:
                announcement_text += f"\n@{username}"
            announcement = await self.client.send_message(self.group_id, announcement_text)

            link = message_link(announcement.chat.id, announcement.message_id, announcement.chat.username)
            await self.client.send_message(
                completion.chat_id,
                f"Welcome, {name}!\nYou have been admitted to the group: {link}",
            )

            await self.client.approve_chat_join_request(self.group_id, user_id)
        except Exception:
            self._approved.pop(user_id, None)
            logger.error(
                "Identified user %s (@%s) was NOT approved in group %s, approve manually. Fields: %s",
                user_id, username, self.group_id, fields,
            )
            raise

        logger.info("Join request approved for user %s", user_id)
