"""In-process TTL key/value store backing typing state and rate windows.

The interface is async and hash-oriented so a networked store can replace it
without touching callers; callers treat every method as fallible.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional


@dataclass
class _Entry:
    value: dict[str, str] = field(default_factory=dict)
    expires_at: Optional[float] = None


class EphemeralStore:
    """Hashes with optional per-key expiry, evaluated lazily on access."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    async def get(self, key: str) -> str | None:
        entry = self._live(key)
        return entry.value.get("value") if entry else None

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._entries[key] = _Entry(value={"value": value}, expires_at=expires_at)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def hgetall(self, key: str) -> dict[str, str]:
        entry = self._live(key)
        return dict(entry.value) if entry else {}

    async def hset(self, key: str, name: str, value: str) -> None:
        entry = self._live(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.value[name] = value

    async def hincrby(self, key: str, name: str, amount: int = 1) -> int:
        entry = self._live(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        new_value = int(entry.value.get(name, "0")) + amount
        entry.value[name] = str(new_value)
        return new_value

    async def expire(self, key: str, ttl: float) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        entry.expires_at = self._clock() + ttl
        return True

    async def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and now >= entry.expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    async def ttl(self, key: str) -> float:
        """Seconds until expiry; -1 for no expiry, -2 for a missing key."""
        entry = self._live(key)
        if entry is None:
            return -2
        if entry.expires_at is None:
            return -1
        return max(entry.expires_at - self._clock(), 0.0)
