"""Lock striping helpers."""

from __future__ import annotations

import threading
import zlib


def stripe_index(key: str, stripes: int) -> int:
    """Map ``key`` onto one of ``stripes`` buckets.

    CRC32 keeps the mapping stable across processes, unlike ``hash(str)``.
    """
    return zlib.crc32(key.encode("utf-8")) % stripes


def pair_key(user_a: str, user_b: str) -> str:
    """Return an order-independent key for a conversation pair."""
    first, second = sorted((user_a, user_b))
    return f"{first}\x1f{second}"


class StripedLock:
    """A fixed pool of locks addressed by key.

    Operations on unrelated keys rarely contend, while operations on the same
    key are always serialised.
    """

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._locks = [threading.Lock() for _ in range(stripes)]

    def for_key(self, key: str) -> threading.Lock:
        """Return the lock guarding ``key``."""
        return self._locks[stripe_index(key, len(self._locks))]
