"""
DecisionCache — process-local TTL cache of permission decisions.

Keys are the full request tuple, values the boolean decision. Entries expire
after `ttl_seconds`; when `maxsize` is reached the oldest entry is evicted.
The policy engine flushes the whole cache on every policy or grouping
mutation, so a cached decision is never older than the rules that produced
it within this process. Other processes may serve a stale decision for up to
one TTL window.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable


class DecisionCache:
    def __init__(
        self,
        *,
        ttl_seconds: float = 300.0,
        maxsize: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, bool]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> bool | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        expires_at, value = entry
        if expires_at <= self._clock():
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return value

    def set(self, key: Hashable, value: bool) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        while len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DecisionCache"]
