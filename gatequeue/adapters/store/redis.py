"""
RedisStore — Redis adapter using redis.asyncio.

Atomicity
---------
Single commands are atomic in Redis. The two compound operations of the
store port are Lua scripts so that no other client can observe the
intermediate state:

  claim()  → ZPOPMAX src + ZADD dst           (worker hand-over)
  move()   → ZREM src, ZADD dst only if removed (promotion / lease reaping)

pipeline() uses MULTI/EXEC (transaction=True) so a batch is applied as a
unit or not at all.

Every redis.exceptions.RedisError (connection refused, timeout, ...) is
wrapped in StorageError.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, TypeVar

from redis.exceptions import RedisError

from gatequeue.domain.errors import StorageError

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.client import Pipeline

T = TypeVar("T")

_CLAIM_LUA = """
local popped = redis.call('ZPOPMAX', KEYS[1])
if (not popped) or (#popped == 0) then
  return nil
end
redis.call('ZADD', KEYS[2], ARGV[1], popped[1])
return popped
"""

_MOVE_LUA = """
if redis.call('ZREM', KEYS[1], ARGV[1]) == 1 then
  redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
  return 1
end
return 0
"""


@dataclasses.dataclass
class RedisStore:
    """
    Redis key-value store.

    Parameters
    ----------
    client : a redis.asyncio.Redis created with decode_responses=True
    """

    client: Redis

    def __post_init__(self) -> None:
        self._claim = self.client.register_script(_CLAIM_LUA)
        self._move = self.client.register_script(_MOVE_LUA)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisStore":
        import redis.asyncio as redis

        return cls(client=redis.Redis.from_url(url, decode_responses=True, **kwargs))

    async def _run(self, what: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except RedisError as exc:
            raise StorageError(f"Redis {what} failed", exc) from exc

    # ------------------------------------------------------------------ #
    # Strings                                                              #
    # ------------------------------------------------------------------ #

    async def ping(self) -> bool:
        return bool(await self._run("ping", self.client.ping()))

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        await self._run("set", self.client.set(key, value, ex=ttl))

    async def get(self, key: str) -> str | None:
        return await self._run("get", self.client.get(key))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._run("delete", self.client.delete(*keys)))

    async def incr(self, key: str, amount: int = 1) -> int:
        return int(await self._run("incr", self.client.incrby(key, amount)))

    # ------------------------------------------------------------------ #
    # Sorted sets                                                          #
    # ------------------------------------------------------------------ #

    async def zadd(self, key: str, mapping: dict[str, float]) -> int:
        return int(await self._run("zadd", self.client.zadd(key, mapping)))

    async def zrem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(await self._run("zrem", self.client.zrem(key, *members)))

    async def zcard(self, key: str) -> int:
        return int(await self._run("zcard", self.client.zcard(key)))

    async def zscore(self, key: str, member: str) -> float | None:
        return await self._run("zscore", self.client.zscore(key, member))

    async def zrange(self, key: str) -> list[str]:
        return list(await self._run("zrange", self.client.zrange(key, 0, -1)))

    async def zrangebyscore(
        self,
        key: str,
        min_score: float,
        max_score: float,
        limit: int | None = None,
    ) -> list[str]:
        if limit is None:
            result = self.client.zrangebyscore(key, min_score, max_score)
        else:
            result = self.client.zrangebyscore(
                key, min_score, max_score, start=0, num=limit
            )
        return list(await self._run("zrangebyscore", result))

    async def claim(
        self, src: str, dst: str, dst_score: float
    ) -> tuple[str, float] | None:
        popped = await self._run(
            "claim", self._claim(keys=[src, dst], args=[repr(float(dst_score))])
        )
        if not popped:
            return None
        member, score = popped
        return str(member), float(score)

    async def move(self, src: str, dst: str, member: str, dst_score: float) -> bool:
        moved = await self._run(
            "move",
            self._move(keys=[src, dst], args=[member, repr(float(dst_score))]),
        )
        return int(moved or 0) == 1

    def pipeline(self) -> "RedisPipeline":
        return RedisPipeline(self.client.pipeline(transaction=True))

    async def close(self) -> None:
        await self._run("close", self.client.aclose())


@dataclasses.dataclass
class RedisPipeline:
    """Thin wrapper that keeps redis-py's buffered pipeline behind the port."""

    pipe: Pipeline

    def set(self, key: str, value: str, ttl: int | None = None) -> "RedisPipeline":
        self.pipe.set(key, value, ex=ttl)
        return self

    def delete(self, *keys: str) -> "RedisPipeline":
        if keys:
            self.pipe.delete(*keys)
        return self

    def zadd(self, key: str, mapping: dict[str, float]) -> "RedisPipeline":
        self.pipe.zadd(key, mapping)
        return self

    def zrem(self, key: str, *members: str) -> "RedisPipeline":
        if members:
            self.pipe.zrem(key, *members)
        return self

    def incr(self, key: str, amount: int = 1) -> "RedisPipeline":
        self.pipe.incrby(key, amount)
        return self

    async def execute(self) -> list[object]:
        try:
            async with self.pipe as pipe:
                return list(await pipe.execute())
        except RedisError as exc:
            raise StorageError("Redis pipeline failed", exc) from exc
