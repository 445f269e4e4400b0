"""API endpoint modules for version 1."""

from .conversations import router as conversations_router
from .relay import router as relay_router

__all__ = [
    "conversations_router",
    "relay_router",
]
