"""Version 1 API endpoints."""

from .endpoints import conversations_router, relay_router

__all__ = [
    "conversations_router",
    "relay_router",
]
