from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..helpers import now_ts, to_iso
from ..infra.sql import Gated
from .db import Order, OrderStatus, PurchaseType, WebhookEventSeen


class EventOutcome(str, Enum):
    APPLIED = "applied"
    REPLAY = "replay"
    NOT_FOUND = "not_found"


def screenshot_url(order_id: int) -> str:
    return f"/api/admin/orders/{order_id}/screenshot"


def order_to_dict(o: Order) -> Dict[str, Any]:
    status = OrderStatus.parse(o.status)
    return {
        "id": o.id,
        "name": o.name,
        "playerId": o.player_id,
        "email": o.email,
        "type": o.purchase_type,
        "ucAmount": o.uc_amount,
        "bundle": o.bundle,
        "totalAmount": o.total_amount,
        "transactionId": o.transaction_id,
        "screenshot": o.screenshot,
        "screenshotUrl": screenshot_url(o.id) if o.screenshot else None,
        "status": o.status,
        "statusKey": status.key if status else None,
        "created_at": to_iso(o.created_at),
    }


class OrderRepository:
    def __init__(self, db: AsyncSession, gated: Gated) -> None:
        self.db = db
        self.gated = gated

    async def add(
        self, *, name: str, player_id: str, email: str,
        uc_amount: Optional[str], bundle: Optional[str],
        total_amount: str, transaction_id: str,
        screenshot: Optional[str] = None,
    ) -> Order:
        order = Order(
            name=name,
            player_id=player_id,
            email=email,
            purchase_type=(
                PurchaseType.UC.value if uc_amount
                else PurchaseType.BUNDLE.value
            ),
            uc_amount=uc_amount,
            bundle=bundle,
            total_amount=total_amount,
            transaction_id=transaction_id,
            screenshot=screenshot,
            status=OrderStatus.PENDING_PAYMENT.value,
            created_at=now_ts(),
        )
        async with self.gated():
            async with self.db.begin():
                self.db.add(order)
        return order

    async def get(self, order_id: int) -> Optional[Order]:
        async with self.db.begin():
            return await self.db.get(Order, order_id)

    async def list_all(self) -> List[Order]:
        async with self.db.begin():
            result = await self.db.execute(
                select(Order).order_by(Order.id.desc())
            )
            return list(result.scalars().all())

    async def set_status(
        self, order_id: int, status: OrderStatus
    ) -> Optional[Order]:
        # no transition guard: paid/failed may be overwritten
        async with self.gated():
            async with self.db.begin():
                order = await self.db.get(Order, order_id)
                if order is None:
                    return None
                order.status = status.value
        return order

    async def delete(self, order_id: int) -> Optional[Order]:
        async with self.gated():
            async with self.db.begin():
                order = await self.db.get(Order, order_id)
                if order is None:
                    return None
                await self.db.delete(order)
        return order

    async def apply_payment_event(
        self, order_id: int, status: OrderStatus,
        idempotency_key: Optional[str],
    ) -> Tuple[EventOutcome, Optional[Order]]:
        """Record the event id and move the order in one transaction.

        A failed status write rolls the event id back with it, so the
        gateway's retry is processed rather than taken for a replay.
        """
        try:
            async with self.gated():
                async with self.db.begin():
                    order = await self.db.get(Order, order_id)
                    if order is None:
                        return EventOutcome.NOT_FOUND, None
                    if idempotency_key:
                        await self.db.execute(
                            insert(WebhookEventSeen).values(
                                idempotency_key=idempotency_key,
                                created_at=now_ts(),
                            )
                        )
                    order.status = status.value
        except IntegrityError:
            # replay racing (or following) the first delivery
            return EventOutcome.REPLAY, None
        return EventOutcome.APPLIED, order
