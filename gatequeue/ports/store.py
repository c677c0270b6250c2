"""
KeyValueStorePort — the store port used by the queue engine.

Any object satisfying this structural Protocol can act as the backend.
No base class or registration is required — Python's structural subtyping
(duck typing + Protocol) is sufficient.

Atomicity contract
------------------
Every method is a single atomic operation from the store's point of view.
Two compound operations are part of the contract because the queue relies
on them for exactly-once hand-over between sets:

claim(src, dst, dst_score)
  - pops the highest-scored member of `src` and adds it to `dst` with
    `dst_score`, as one step. Returns (member, src_score) or None.

move(src, dst, member, dst_score)
  - adds `member` to `dst` only if it was removed from `src` by this call.
    Returns True for exactly one of any number of concurrent callers.

pipeline()
  - buffers writes and applies them together on execute(). Redis runs the
    batch inside MULTI/EXEC; the in-memory adapter applies it under its lock.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class PipelinePort(Protocol):
    """Buffered batch of writes. Methods return self for chaining."""

    def set(self, key: str, value: str, ttl: int | None = None) -> "PipelinePort": ...

    def delete(self, *keys: str) -> "PipelinePort": ...

    def zadd(self, key: str, mapping: dict[str, float]) -> "PipelinePort": ...

    def zrem(self, key: str, *members: str) -> "PipelinePort": ...

    def incr(self, key: str, amount: int = 1) -> "PipelinePort": ...

    async def execute(self) -> list[object]:
        """Apply all buffered commands. Raises StorageError on I/O failure."""
        ...


@runtime_checkable
class KeyValueStorePort(Protocol):
    """
    Minimal interface required by gatequeue core.

    Implementing adapters (built-in):
      - InMemoryStore — asyncio.Lock-based, for tests and single-process use
      - RedisStore    — redis.asyncio client, Lua scripts for claim/move

    All methods raise StorageError on I/O failure.
    """

    async def ping(self) -> bool: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store `value`; `ttl` in seconds, None means no expiry."""
        ...

    async def get(self, key: str) -> str | None: ...

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns how many existed."""
        ...

    async def incr(self, key: str, amount: int = 1) -> int: ...

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        """Add or re-score members; returns the number of new members."""
        ...

    async def zrem(self, key: str, *members: str) -> int: ...

    async def zcard(self, key: str) -> int: ...

    async def zscore(self, key: str, member: str) -> float | None: ...

    async def zrange(self, key: str) -> list[str]:
        """All members in ascending score order."""
        ...

    async def zrangebyscore(
        self,
        key: str,
        min_score: float,
        max_score: float,
        limit: int | None = None,
    ) -> list[str]:
        """Members with min_score <= score <= max_score, ascending."""
        ...

    async def claim(
        self, src: str, dst: str, dst_score: float
    ) -> tuple[str, float] | None: ...

    async def move(self, src: str, dst: str, member: str, dst_score: float) -> bool: ...

    def pipeline(self) -> PipelinePort: ...

    async def close(self) -> None: ...
