"""In-memory TTL cache with an injectable clock.

One :class:`TTLCache` is created per configured registry and handed to
every component that reads registry data. Entries are replaced whole on
refresh; a previously returned value is never mutated.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """Per-key cache where each entry expires ``ttl`` seconds after it is stored.

    Parameters
    ----------
    ttl:
        Time-to-live in seconds. Negative values are treated as zero, which
        makes every read a miss.
    clock:
        Zero-argument callable returning the current wall-clock time in
        seconds. Defaults to :func:`time.time`.
    """

    def __init__(self, ttl: float, *, clock: Callable[[], float] = time.time) -> None:
        self._ttl = max(0.0, float(ttl))
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() < entry.expires_at:
            return entry.value
        logger.debug("Cache entry %r expired", key)
        return None

    def put(self, key: str, value: Any) -> Any:
        """Store *value* under *key* and return it."""
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + self._ttl)
        return value

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or all entries when *key* is ``None``."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __repr__(self) -> str:
        return f"TTLCache(ttl={self._ttl!r}, keys={sorted(self._entries)!r})"
