# model/adminsession/__init__.py
import os
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import redis.asyncio as redis

from ...infra.sql import Gated

BACKEND = os.getenv("SESSION_BACKEND", "sql").lower()  # 'sql' | 'redis'

if BACKEND == "redis":
    from ._redis import AdminSessionStore as _AdminSessionStore
else:
    from ._sql import AdminSessionStore as _AdminSessionStore


# Factory keeps server.py simple and constructor-agnostic:
def new_store(*, db: Optional[AsyncSession] = None,
              r: Optional[redis.Redis] = None,
              ttl_seconds: int,
              gated: Optional[Gated] = None):
    if BACKEND == "redis":
        if r is None:
            raise RuntimeError(
                "AdminSessionStore(redis) requires r=redis.Redis"
            )
        return _AdminSessionStore(r=r, ttl_seconds=ttl_seconds)
    if db is None:
        raise RuntimeError("AdminSessionStore(sql) requires db=AsyncSession")
    if gated is None:
        raise RuntimeError("AdminSessionStore(sql) requires gated=Gated")
    return _AdminSessionStore(db=db, ttl_seconds=ttl_seconds, gated=gated)


AdminSessionStore = _AdminSessionStore
__all__ = ["AdminSessionStore", "new_store", "BACKEND"]
