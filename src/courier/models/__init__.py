# src/courier/models/__init__.py
"""SQLAlchemy models for the Courier relay."""

from .conversation import ConversationEntry
from .direct_message import DirectMessage
from .user import User

__all__ = [
    "ConversationEntry",
    "DirectMessage",
    "User",
]
