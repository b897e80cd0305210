from __future__ import annotations
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..helpers import now_ts, to_iso
from ..infra.sql import Gated
from .db import Suggestion


def suggestion_to_dict(s: Suggestion) -> Dict[str, Any]:
    return {
        "id": s.id,
        "name": s.name,
        "contact": s.contact,
        "message": s.message,
        "created_at": to_iso(s.created_at),
    }


# suggestions are immutable once written; only add/list/delete
class SuggestionRepository:
    def __init__(self, db: AsyncSession, gated: Gated) -> None:
        self.db = db
        self.gated = gated

    async def add(self, *, name: str, contact: str,
                  message: str) -> Suggestion:
        suggestion = Suggestion(
            name=name,
            contact=contact,
            message=message,
            created_at=now_ts(),
        )
        async with self.gated():
            async with self.db.begin():
                self.db.add(suggestion)
        return suggestion

    async def list_all(self) -> List[Suggestion]:
        async with self.db.begin():
            result = await self.db.execute(
                select(Suggestion).order_by(
                    Suggestion.created_at.desc(), Suggestion.id.desc()
                )
            )
            return list(result.scalars().all())

    async def delete(self, suggestion_id: int) -> bool:
        async with self.gated():
            async with self.db.begin():
                suggestion = await self.db.get(Suggestion, suggestion_id)
                if suggestion is None:
                    return False
                await self.db.delete(suggestion)
        return True
