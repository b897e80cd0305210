from __future__ import annotations
from typing import Dict, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from ...helpers import now_ts
from ...infra.sql import Gated
from ..db import AdminSession


class AdminSessionStore:
    """Admin sessions as rows of ``admin_sessions``.

    Expiry is absolute: ``expires_at`` is fixed at login and never
    extended by later requests.
    """

    def __init__(self, *, db: AsyncSession, ttl_seconds: int,
                 gated: Gated) -> None:
        self.db = db
        self.ttl = ttl_seconds
        self.gated = gated

    async def set(self, sid: str, username: str) -> None:
        now = now_ts()
        async with self.gated():
            async with self.db.begin():
                await self.db.merge(AdminSession(
                    sid=sid,
                    username=username,
                    created_at=now,
                    expires_at=now + self.ttl,
                ))

    async def get(self, sid: str) -> Optional[Dict[str, str]]:
        async with self.db.begin():
            row = await self.db.get(AdminSession, sid)
            if row is None:
                return None
            if row.expires_at <= now_ts():
                await self.db.delete(row)
                return None
            return {
                "username": row.username,
                "created_at": str(row.created_at),
                "expires_at": str(row.expires_at),
            }

    async def destroy(self, sid: str) -> None:
        async with self.gated():
            async with self.db.begin():
                await self.db.execute(
                    delete(AdminSession).where(AdminSession.sid == sid)
                )

    async def expire(self) -> int:
        """Drop every session past its expiry; returns how many."""
        async with self.gated():
            async with self.db.begin():
                result = await self.db.execute(
                    delete(AdminSession)
                    .where(AdminSession.expires_at <= now_ts())
                )
        return result.rowcount or 0
