"""Session engine: runs ordered-step dialogues, one live session per user.

A ``Session`` is an immutable value. Each accepted answer produces the next
``Session`` (``Session.advance``) which replaces the old one in the engine's
keyed store; a rejected answer leaves the stored value untouched. When the
last field is accepted the session is dropped and the completion handler is
awaited with the collected fields.

All in-memory changes for one call happen before the first ``await``, so a
handler suspended on a send never exposes a half-updated session.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Awaitable, Callable, Mapping, Protocol, Sequence

from groupgate.domain.enums import SubmitOutcome
from groupgate.domain.schemas import Message, MessageEntity
from groupgate.services.validation_rules import Validator, non_text_reason

logger = logging.getLogger(__name__)

START_COMMAND = "/start"
CANCELLED_TEXT = "Cancelled."


class Messenger(Protocol):
    async def send_message(
        self, chat_id: int, text: str, entities: list[MessageEntity] | None = None,
    ) -> Message: ...


@dataclass(frozen=True)
class FieldDefinition:
    """One step of a dialogue."""
    name: str
    noun: str  # how prompts and reminders refer to the field ("surname")
    validator: Validator
    prompt_text: str | None = None

    @property
    def prompt(self) -> str:
        return self.prompt_text or f"Now send me your {self.noun}"


@dataclass(frozen=True)
class OutboundText:
    """A message sent ahead of the first prompt (e.g. the greeting)."""
    text: str
    entities: list[MessageEntity] | None = None


@dataclass(frozen=True)
class Session:
    user_id: int
    chat_id: int
    touched_at: float
    step_index: int = 0
    collected_fields: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def advance(self, name: str, value: str, now: float) -> "Session":
        """Return the session after accepting *value* for field *name*."""
        return replace(
            self,
            step_index=self.step_index + 1,
            collected_fields=MappingProxyType({**self.collected_fields, name: value}),
            touched_at=now,
        )

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.touched_at > ttl_seconds


@dataclass(frozen=True)
class Completion:
    """Emitted once when the last field of a dialogue is accepted."""
    user_id: int
    chat_id: int
    fields: dict[str, str]
    message: Message | None = None


CompletionHandler = Callable[[Completion], Awaitable[None]]


class SessionEngine:
    """Keyed store of live dialogue sessions plus the step transition logic."""

    def __init__(
        self,
        name: str,
        fields: Sequence[FieldDefinition],
        messenger: Messenger,
        ttl_seconds: float,
        on_complete: CompletionHandler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not fields:
            raise ValueError("a dialogue needs at least one field")
        self.name = name
        self.fields = tuple(fields)
        self.messenger = messenger
        self.ttl_seconds = ttl_seconds
        self.on_complete = on_complete
        self._clock = clock
        self._sessions: dict[int, Session] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, user_id: int) -> Session | None:
        """Return the live session for *user_id*, dropping it first if it went idle."""
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if session.is_expired(self._clock(), self.ttl_seconds):
            del self._sessions[user_id]
            logger.info("%s: session for user %s expired at step %d", self.name, user_id, session.step_index)
            return None
        return session

    def has_session(self, user_id: int) -> bool:
        return self.get(user_id) is not None

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def enter(
        self,
        user_id: int,
        chat_id: int | None = None,
        intro: OutboundText | None = None,
    ) -> Session:
        """Start (or restart) the dialogue for *user_id* at step 0 and send the first prompt.

        Any existing session is replaced; its partial answers are discarded.
        """
        session = Session(
            user_id=user_id,
            chat_id=user_id if chat_id is None else chat_id,
            touched_at=self._clock(),
        )
        self._sessions[user_id] = session

        if intro is not None:
            await self.messenger.send_message(session.chat_id, intro.text, entities=intro.entities)
        await self.messenger.send_message(session.chat_id, self.fields[0].prompt)
        return session

    async def submit(
        self,
        user_id: int,
        raw_text: str,
        sender_is_bot: bool = False,
        *,
        message: Message | None = None,
    ) -> SubmitOutcome:
        """Feed one text message from *user_id* into their dialogue."""
        if sender_is_bot:
            return SubmitOutcome.IGNORED

        session = self.get(user_id)
        if session is None:
            return SubmitOutcome.NO_SESSION

        if raw_text.strip() == START_COMMAND:
            return SubmitOutcome.IGNORED

        current = self.fields[session.step_index]
        result = current.validator(raw_text)
        if not result.ok:
            await self.messenger.send_message(session.chat_id, result.reason or non_text_reason(current.noun))
            return SubmitOutcome.REJECTED

        advanced = session.advance(current.name, result.value, self._clock())

        if advanced.step_index >= len(self.fields):
            del self._sessions[user_id]
            completion = Completion(
                user_id=user_id,
                chat_id=advanced.chat_id,
                fields=dict(advanced.collected_fields),
                message=message,
            )
            logger.info("%s: dialogue completed for user %s", self.name, user_id)
            if self.on_complete is not None:
                await self.on_complete(completion)
            return SubmitOutcome.COMPLETED

        self._sessions[user_id] = advanced
        await self.messenger.send_message(advanced.chat_id, self.fields[advanced.step_index].prompt)
        return SubmitOutcome.ADVANCED

    async def remind(self, user_id: int) -> bool:
        """Answer a non-text message: ask for the current field again, step unchanged."""
        session = self.get(user_id)
        if session is None:
            return False
        current = self.fields[session.step_index]
        await self.messenger.send_message(session.chat_id, non_text_reason(current.noun))
        return True

    async def cancel(self, user_id: int, chat_id: int | None = None) -> bool:
        """Drop the session for *user_id* and confirm. No-op without a live session."""
        session = self.get(user_id)
        if session is None:
            return False
        del self._sessions[user_id]
        await self.messenger.send_message(session.chat_id if chat_id is None else chat_id, CANCELLED_TEXT)
        return True

    def discard(self, user_id: int) -> bool:
        """Drop the session for *user_id* without telling them."""
        return self._sessions.pop(user_id, None) is not None

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire_idle(self) -> int:
        """Silently drop every session idle for longer than the TTL.

        Each session's ``touched_at`` is checked at sweep time, so a session
        touched by an in-flight submit survives.
        """
        now = self._clock()
        stale = [
            user_id
            for user_id, session in self._sessions.items()
            if session.is_expired(now, self.ttl_seconds)
        ]
        for user_id in stale:
            del self._sessions[user_id]
        if stale:
            logger.info("%s: expired %d idle sessions", self.name, len(stale))
        return len(stale)
