"""
InMemoryStore — asyncio.Lock-based key-value store for testing and development.

Implements the subset of Redis semantics gatequeue needs: strings with TTL,
integer counters and sorted sets. An asyncio.Lock serializes every operation,
so claim/move/pipeline are atomic exactly like their Redis counterparts.

Sorted-set ordering follows Redis: ascending by score, ties broken by the
member string. claim therefore takes the lexicographically greatest
member among equal scores.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable


@dataclasses.dataclass
class InMemoryStore:
    """
    In-process key-value store.

    Parameters
    ----------
    clock : monotonic time source in seconds (overridable in tests)
    """

    clock: Callable[[], float] = time.monotonic

    def __post_init__(self) -> None:
        self._strings: dict[str, str] = {}
        self._expires: dict[str, float] = {}
        self._zsets: dict[str, dict[str, float]] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    # ------------------------------------------------------------------ #
    # Strings                                                              #
    # ------------------------------------------------------------------ #

    async def ping(self) -> bool:
        return True

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        async with self._lock:
            self._set(key, value, ttl)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            self._expire(key)
            return self._strings.get(key)

    async def delete(self, *keys: str) -> int:
        async with self._lock:
            return self._delete(keys)

    async def incr(self, key: str, amount: int = 1) -> int:
        async with self._lock:
            return self._incr(key, amount)

    # ------------------------------------------------------------------ #
    # Sorted sets                                                          #
    # ------------------------------------------------------------------ #

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        async with self._lock:
            return self._zadd(key, mapping)

    async def zrem(self, key: str, *members: str) -> int:
        async with self._lock:
            return self._zrem(key, members)

    async def zcard(self, key: str) -> int:
        async with self._lock:
            return len(self._zsets.get(key, {}))

    async def zscore(self, key: str, member: str) -> float | None:
        async with self._lock:
            return self._zsets.get(key, {}).get(member)

    async def zrange(self, key: str) -> list[str]:
        async with self._lock:
            return [m for m, _ in self._sorted(key)]

    async def zrangebyscore(
        self,
        key: str,
        min_score: float,
        max_score: float,
        limit: int | None = None,
    ) -> list[str]:
        async with self._lock:
            members = [m for m, s in self._sorted(key) if min_score <= s <= max_score]
            return members if limit is None else members[:limit]

    async def claim(
        self, src: str, dst: str, dst_score: float
    ) -> tuple[str, float] | None:
        async with self._lock:
            popped = self._zpopmax(src)
            if popped is not None:
                self._zadd(dst, {popped[0]: dst_score})
            return popped

    async def move(self, src: str, dst: str, member: str, dst_score: float) -> bool:
        async with self._lock:
            if not self._zrem(src, (member,)):
                return False
            self._zadd(dst, {member: dst_score})
            return True

    def pipeline(self) -> "InMemoryPipeline":
        return InMemoryPipeline(self)

    async def close(self) -> None:
        return None

    # ------------------------------------------------------------------ #
    # Lock-held helpers                                                    #
    # ------------------------------------------------------------------ #

    def _expire(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and deadline <= self.clock():
            self._strings.pop(key, None)
            self._expires.pop(key, None)

    def _set(self, key: str, value: str, ttl: int | None) -> None:
        self._strings[key] = value
        if ttl is None:
            self._expires.pop(key, None)
        else:
            self._expires[key] = self.clock() + ttl

    def _incr(self, key: str, amount: int) -> int:
        self._expire(key)
        value = int(self._strings.get(key, "0")) + amount
        self._strings[key] = str(value)
        return value

    def _delete(self, keys: tuple[str, ...]) -> int:
        removed = 0
        for key in keys:
            self._expire(key)
            if self._strings.pop(key, None) is not None:
                removed += 1
            self._expires.pop(key, None)
            if self._zsets.pop(key, None) is not None:
                removed += 1
        return removed

    def _zadd(self, key: str, mapping: dict[str, float]) -> int:
        zset = self._zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update({m: float(s) for m, s in mapping.items()})
        return added

    def _zrem(self, key: str, members: tuple[str, ...]) -> int:
        zset = self._zsets.get(key)
        if not zset:
            return 0
        removed = sum(1 for m in members if zset.pop(m, None) is not None)
        if not zset:
            del self._zsets[key]
        return removed

    def _sorted(self, key: str) -> list[tuple[str, float]]:
        zset = self._zsets.get(key, {})
        return sorted(zset.items(), key=lambda item: (item[1], item[0]))

    def _zpopmax(self, key: str) -> tuple[str, float] | None:
        ordered = self._sorted(key)
        if not ordered:
            return None
        member, score = ordered[-1]
        self._zrem(key, (member,))
        return member, score


@dataclasses.dataclass
class InMemoryPipeline:
    """Buffers writes and applies them under the store lock on execute()."""

    store: InMemoryStore
    _ops: list[Callable[[], object]] = dataclasses.field(
        default_factory=list, init=False, repr=False
    )

    def set(self, key: str, value: str, ttl: int | None = None) -> "InMemoryPipeline":
        self._ops.append(lambda: self.store._set(key, value, ttl))
        return self

    def delete(self, *keys: str) -> "InMemoryPipeline":
        self._ops.append(lambda: self.store._delete(keys))
        return self

    def zadd(self, key: str, mapping: dict[str, float]) -> "InMemoryPipeline":
        self._ops.append(lambda: self.store._zadd(key, dict(mapping)))
        return self

    def zrem(self, key: str, *members: str) -> "InMemoryPipeline":
        self._ops.append(lambda: self.store._zrem(key, members))
        return self

    def incr(self, key: str, amount: int = 1) -> "InMemoryPipeline":
        self._ops.append(lambda: self.store._incr(key, amount))
        return self

    async def execute(self) -> list[object]:
        ops, self._ops = self._ops, []
        async with self.store._lock:
            return [op() for op in ops]
