"""Domain enumerations for the group gatekeeper.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class ChatType(str, Enum):
    """Kind of Telegram chat an update came from."""

    PRIVATE = "private"
    GROUP = "group"
    SUPERGROUP = "supergroup"
    CHANNEL = "channel"


class ChatMemberStatus(str, Enum):
    """Membership status of a user in a chat, as reported by getChatMember."""

    CREATOR = "creator"
    ADMINISTRATOR = "administrator"
    MEMBER = "member"
    RESTRICTED = "restricted"
    LEFT = "left"
    KICKED = "kicked"


class UpdateKind(str, Enum):
    """The event an inbound update carries."""

    JOIN_REQUEST = "chat_join_request"
    MESSAGE = "message"
    MY_CHAT_MEMBER = "my_chat_member"
    UNKNOWN = "unknown"


class SubmitOutcome(str, Enum):
    """What a submitted message did to a dialogue."""

    IGNORED = "ignored"
    NO_SESSION = "no_session"
    REJECTED = "rejected"
    ADVANCED = "advanced"
    COMPLETED = "completed"


# Statuses that count as already being inside the group
MEMBER_STATUSES = frozenset({
    ChatMemberStatus.MEMBER,
    ChatMemberStatus.ADMINISTRATOR,
    ChatMemberStatus.CREATOR,
})

ADMIN_STATUSES = frozenset({
    ChatMemberStatus.ADMINISTRATOR,
    ChatMemberStatus.CREATOR,
})
