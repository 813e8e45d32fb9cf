from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from redis.asyncio import Redis

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
IDEMPOTENCY_BACKEND = os.getenv("IDEMPOTENCY_BACKEND", "memory").lower()
IDEMPOTENCY_TTL_SEC = float(os.getenv("IDEMPOTENCY_TTL_SEC", "10"))
IDEMPOTENCY_PREFIX = os.getenv("IDEMPOTENCY_PREFIX", "idem")


class IdempotencyCache(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, reply: str) -> None: ...


@dataclass
class CacheEntry:
    key: str
    reply: str
    expires_at: float


class InMemoryIdempotencyCache:
    """
    프로세스 로컬 TTL 캐시.
    만료 항목은 get에서 발견될 때, 그리고 put 할 때 정리된다 (백그라운드 sweep 없음).
    """

    def __init__(self, ttl_sec: float = IDEMPOTENCY_TTL_SEC, clock: Callable[[], float] = time.monotonic):
        self.ttl_sec = ttl_sec
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[str]:
        hit = self._entries.get(key)
        if hit is None:
            return None
        if hit.expires_at > self.clock():
            return hit.reply
        self._entries.pop(key, None)
        return None

    async def put(self, key: str, reply: str) -> None:
        now = self.clock()
        self.purge_expired(now)
        self._entries[key] = CacheEntry(key=key, reply=reply, expires_at=now + self.ttl_sec)

    def purge_expired(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for k in expired:
            del self._entries[k]
        return len(expired)


def _key(key: str) -> str:
    return f"{IDEMPOTENCY_PREFIX}:{key}"


class RedisIdempotencyCache:
    """여러 워커가 같은 캐시를 봐야 할 때. 만료는 Redis TTL에 맡긴다."""

    def __init__(self, ttl_sec: float = IDEMPOTENCY_TTL_SEC, redis: Optional[Redis] = None):
        self.ttl_sec = ttl_sec
        self.redis = redis or Redis.from_url(REDIS_URL, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(_key(key))

    async def put(self, key: str, reply: str) -> None:
        # EX는 정수 초만 받으므로 px(ms) 사용
        await self.redis.set(_key(key), reply, px=int(self.ttl_sec * 1000))


def build_cache(backend: str = IDEMPOTENCY_BACKEND) -> IdempotencyCache:
    if backend == "redis":
        return RedisIdempotencyCache()
    return InMemoryIdempotencyCache()
