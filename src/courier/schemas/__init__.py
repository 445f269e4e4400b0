"""Pydantic schemas for request and response validation."""

from .conversation import (
    ConversationResponse,
    LatestMessage,
    RecentConversationsResponse,
    UserSummary,
)
from .direct_message import HistoryResponse, MessageCreate, MessageResponse, SendFrame

__all__ = [
    "ConversationResponse",
    "HistoryResponse",
    "LatestMessage",
    "MessageCreate",
    "MessageResponse",
    "RecentConversationsResponse",
    "SendFrame",
    "UserSummary",
]
