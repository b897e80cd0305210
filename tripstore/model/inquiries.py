from __future__ import annotations
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..helpers import now_ts, to_iso
from ..infra.sql import Gated
from .db import Inquiry, InquiryStatus


def inquiry_to_dict(i: Inquiry) -> Dict[str, Any]:
    return {
        "id": i.id,
        "name": i.name,
        "email": i.email,
        "message": i.message,
        "status": i.status,
        "created_at": to_iso(i.created_at),
    }


class InquiryRepository:
    def __init__(self, db: AsyncSession, gated: Gated) -> None:
        self.db = db
        self.gated = gated

    async def add(self, *, name: Optional[str], email: str,
                  message: str) -> Inquiry:
        inquiry = Inquiry(
            name=name,
            email=email,
            message=message,
            status=InquiryStatus.PENDING.value,
            created_at=now_ts(),
        )
        async with self.gated():
            async with self.db.begin():
                self.db.add(inquiry)
        return inquiry

    async def get(self, inquiry_id: int) -> Optional[Inquiry]:
        async with self.db.begin():
            return await self.db.get(Inquiry, inquiry_id)

    async def list_all(self) -> List[Inquiry]:
        async with self.db.begin():
            result = await self.db.execute(
                select(Inquiry).order_by(
                    Inquiry.created_at.desc(), Inquiry.id.desc()
                )
            )
            return list(result.scalars().all())

    async def mark_replied(self, inquiry_id: int) -> bool:
        async with self.gated():
            async with self.db.begin():
                inquiry = await self.db.get(Inquiry, inquiry_id)
                if inquiry is None:
                    return False
                inquiry.status = InquiryStatus.REPLIED.value
        return True

    async def delete(self, inquiry_id: int) -> bool:
        async with self.gated():
            async with self.db.begin():
                inquiry = await self.db.get(Inquiry, inquiry_id)
                if inquiry is None:
                    return False
                await self.db.delete(inquiry)
        return True
