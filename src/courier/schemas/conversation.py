"""Conversation summary schemas for the inbox view."""
from __future__ import annotations

from datetime import datetime

from courier.schemas.common import CamelModel

PLACEHOLDER_NAME = "Unknown user"


class UserSummary(CamelModel):
    """Minimal display identity of a conversation partner."""

    id: str
    name: str
    avatar: str | None = None

    @classmethod
    def placeholder(cls, user_id: str) -> UserSummary:
        """Identity used when the profile cannot be resolved."""
        return cls(id=user_id, name=PLACEHOLDER_NAME, avatar=None)


class LatestMessage(CamelModel):
    """Newest message of a conversation."""

    id: int
    sender_id: str
    content: str
    timestamp: datetime


class ConversationResponse(CamelModel):
    """Inbox row: the other party and the newest message exchanged."""

    other_user: UserSummary
    latest_message: LatestMessage


class RecentConversationsResponse(CamelModel):
    """Inbox listing, most recently active conversation first."""

    conversations: list[ConversationResponse]
