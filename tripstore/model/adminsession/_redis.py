from __future__ import annotations
from typing import Dict, Optional
import redis.asyncio as redis

from ...helpers import now_ts


# ---- keys
def k_sid(sid: str) -> str: return f"admin:session:{sid}"


class AdminSessionStore:
    def __init__(self, r: redis.Redis, ttl_seconds: int) -> None:
        self.r = r
        self.ttl = ttl_seconds

    async def set(self, sid: str, username: str) -> None:
        # mapping values should be strings for decode_responses=True
        now = now_ts()
        pipe = self.r.pipeline(transaction=True)
        pipe.hset(k_sid(sid), mapping={
            "username": username,
            "created_at": str(now),
            "expires_at": str(now + self.ttl),
        })
        pipe.expire(k_sid(sid), self.ttl)
        await pipe.execute()

    async def get(self, sid: str) -> Optional[Dict[str, str]]:
        h = await self.r.hgetall(k_sid(sid))
        return h or None

    async def destroy(self, sid: str) -> None:
        await self.r.delete(k_sid(sid))

    async def expire(self) -> int:
        # redis drops the keys itself (EXPIRE set at login)
        return 0
