"""Membership and administrator lookups against the managed group.

Stateless: every call asks Telegram. Transport errors propagate; callers
decide whether to fail open or closed.
"""

from typing import Protocol

from groupgate.domain.enums import ADMIN_STATUSES, MEMBER_STATUSES, ChatMemberStatus
from groupgate.domain.schemas import ChatMember


class MemberLookup(Protocol):
    async def get_chat_member(self, chat_id: int, user_id: int) -> ChatMember: ...


async def get_membership_status(client: MemberLookup, group_id: int, user_id: int) -> ChatMemberStatus:
    member = await client.get_chat_member(group_id, user_id)
    return member.status


async def is_member(client: MemberLookup, group_id: int, user_id: int) -> bool:
    """True for members, administrators and the creator."""
    return await get_membership_status(client, group_id, user_id) in MEMBER_STATUSES


async def is_administrator(client: MemberLookup, group_id: int, user_id: int) -> bool:
    return await get_membership_status(client, group_id, user_id) in ADMIN_STATUSES
