"""Durable configuration store: greeting text and the pending-identification set.

The whole document is read and written at once; there is no partial update.
Callers must ``await write(...)`` before sending any reply that depends on
the change.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from groupgate.domain.models import CONFIG_ROW_ID, GroupConfig
from groupgate.domain.schemas import ConfigDocument, MessageEntity

logger = logging.getLogger(__name__)


class ConfigStore:
    """Read/write access to the singleton configuration document."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default_greeting: str):
        self._session_factory = session_factory
        self._default_greeting = default_greeting

    async def read(self) -> ConfigDocument:
        """Return the stored document, or the defaults when nothing was written yet."""
        async with self._session_factory() as db:
            row = await db.get(GroupConfig, CONFIG_ROW_ID)

        if row is None:
            return ConfigDocument(greeting_text=self._default_greeting)

        return ConfigDocument(
            greeting_text=row.greeting_text,
            greeting_entities=[MessageEntity.model_validate(e) for e in (row.greeting_entities or [])],
            pending_user_ids=set(row.pending_user_ids or []),
        )

    async def write(self, document: ConfigDocument) -> None:
        """Overwrite the stored document and commit before returning."""
        entities = [e.model_dump(exclude_none=True) for e in document.greeting_entities]
        pending = sorted(document.pending_user_ids)

        async with self._session_factory() as db:
            row = await db.get(GroupConfig, CONFIG_ROW_ID)
            if row is None:
                row = GroupConfig(id=CONFIG_ROW_ID)
                db.add(row)
            row.greeting_text = document.greeting_text
            row.greeting_entities = entities
            row.pending_user_ids = pending
            await db.commit()

        logger.debug("Config persisted: greeting_len=%d pending=%s", len(document.greeting_text), pending)

    async def add_pending(self, user_id: int) -> bool:
        """Mark *user_id* as awaiting identification. Returns False if already marked."""
        document = await self.read()
        if user_id in document.pending_user_ids:
            return False
        document.pending_user_ids.add(user_id)
        await self.write(document)
        return True

    async def consume_pending(self, user_id: int) -> bool:
        """Remove *user_id* from the pending set. Returns True only if it was present."""
        document = await self.read()
        if user_id not in document.pending_user_ids:
            return False
        document.pending_user_ids.discard(user_id)
        await self.write(document)
        return True
