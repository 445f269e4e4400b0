"""Registry of live channels per user.

A user is online while at least one of their channels is registered. The
registry is sharded: each shard owns a slice of the user space and its own
lock, so connect/disconnect traffic for unrelated users never waits on a
single global lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Hashable
from typing import TypeVar

from courier.utils.locks import stripe_index

logger = logging.getLogger(__name__)

ChannelT = TypeVar("ChannelT", bound=Hashable)


class _Shard:
    __slots__ = ("lock", "channels")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.channels: dict[str, set] = {}


class ConnectionRegistry:
    """Maps user ids to their currently open channels.

    Channels are compared by identity (their ``__hash__``/``__eq__``), so one
    connection object registered twice occupies a single slot.
    """

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._shards = [_Shard() for _ in range(stripes)]

    def _shard(self, user_id: str) -> _Shard:
        return self._shards[stripe_index(user_id, len(self._shards))]

    def register(self, user_id: str, channel: ChannelT) -> bool:
        """Add ``channel`` to ``user_id``'s set.

        Returns:
            True if this call took the user from offline to online.
        """
        shard = self._shard(user_id)
        with shard.lock:
            channels = shard.channels.setdefault(user_id, set())
            came_online = not channels
            channels.add(channel)
        if came_online:
            logger.debug("User %s is online", user_id)
        return came_online

    def unregister(self, user_id: str, channel: ChannelT) -> bool:
        """Remove ``channel`` from ``user_id``'s set; unknown channels are ignored.

        Returns:
            True if this call took the user from online to offline.
        """
        shard = self._shard(user_id)
        with shard.lock:
            channels = shard.channels.get(user_id)
            if not channels or channel not in channels:
                return False
            channels.discard(channel)
            went_offline = not channels
            if went_offline:
                del shard.channels[user_id]
        if went_offline:
            logger.debug("User %s is offline", user_id)
        return went_offline

    def channels_for(self, user_id: str) -> frozenset:
        """Return a snapshot of ``user_id``'s live channels (possibly empty)."""
        shard = self._shard(user_id)
        with shard.lock:
            return frozenset(shard.channels.get(user_id, ()))

    def is_online(self, user_id: str) -> bool:
        """Return True if ``user_id`` has at least one registered channel."""
        shard = self._shard(user_id)
        with shard.lock:
            return bool(shard.channels.get(user_id))

    def online_count(self) -> int:
        """Return the number of users with at least one live channel."""
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.channels)
        return total

    def clear(self) -> None:
        """Drop every registration (used on shutdown and in tests)."""
        for shard in self._shards:
            with shard.lock:
                shard.channels.clear()
