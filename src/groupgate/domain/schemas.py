"""Pydantic schemas for Telegram Bot API objects and the configuration document.

Only the fields the gatekeeper reads are modelled; everything else in an
update is ignored.
"""

from pydantic import BaseModel, ConfigDict, Field

from groupgate.domain.enums import ChatMemberStatus, ChatType, UpdateKind


class _TelegramObject(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class User(_TelegramObject):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: str | None = None
    username: str | None = None


class Chat(_TelegramObject):
    id: int
    type: ChatType
    title: str | None = None
    username: str | None = None


class MessageEntity(_TelegramObject):
    """Formatting annotation attached to a substring of a message."""

    model_config = ConfigDict(extra="allow")

    type: str
    offset: int
    length: int
    url: str | None = None
    language: str | None = None
    custom_emoji_id: str | None = None


class Message(_TelegramObject):
    message_id: int
    chat: Chat
    from_user: User | None = Field(default=None, alias="from")
    date: int = 0
    text: str | None = None
    entities: list[MessageEntity] | None = None

    @property
    def command(self) -> str | None:
        """Bot command name ("start", "cancel", ...) when the text is a command.

        A ``@botname`` suffix is dropped.
        """
        if not self.text or not self.text.startswith("/"):
            return None
        head = self.text.split(maxsplit=1)[0][1:]
        return head.split("@", 1)[0].lower() or None


class ChatJoinRequest(_TelegramObject):
    chat: Chat
    from_user: User = Field(alias="from")
    user_chat_id: int | None = None
    date: int = 0


class ChatMember(_TelegramObject):
    user: User
    status: ChatMemberStatus


class ChatMemberUpdated(_TelegramObject):
    chat: Chat
    from_user: User = Field(alias="from")
    date: int = 0
    old_chat_member: ChatMember
    new_chat_member: ChatMember


class Update(_TelegramObject):
    update_id: int
    message: Message | None = None
    chat_join_request: ChatJoinRequest | None = None
    my_chat_member: ChatMemberUpdated | None = None

    @property
    def kind(self) -> UpdateKind:
        if self.chat_join_request is not None:
            return UpdateKind.JOIN_REQUEST
        if self.my_chat_member is not None:
            return UpdateKind.MY_CHAT_MEMBER
        if self.message is not None:
            return UpdateKind.MESSAGE
        return UpdateKind.UNKNOWN


class BotCommand(_TelegramObject):
    command: str
    description: str


class ConfigDocument(BaseModel):
    """The durable configuration document: greeting plus pending user ids."""

    greeting_text: str
    greeting_entities: list[MessageEntity] = Field(default_factory=list)
    pending_user_ids: set[int] = Field(default_factory=set)
