from abc import ABC, abstractmethod
from typing import Optional, Tuple
import hmac
import hashlib
import base64
import json

from fastapi import HTTPException

from .model.db import OrderStatus

SIGNATURE_HEADER = "x-cashier-signature"


# ----------------------------
# Cashier Adapter Interface
# ----------------------------
class CashierAdapter(ABC):
    @abstractmethod
    def verify_webhook(self, payload: bytes, headers: dict) -> dict: ...

    # "succeeded" | "failed" | "canceled"
    @abstractmethod
    def event_kind(self, event: dict) -> str:
        ...

    # (order_id, idempotency_key)
    @abstractmethod
    def event_ids(self, event: dict) -> Tuple[Optional[int], Optional[str]]:
        ...

    def target_status(self, event: dict) -> Optional[OrderStatus]:
        kind = self.event_kind(event)
        if kind == "succeeded":
            return OrderStatus.PAID
        if kind in ("failed", "canceled"):
            return OrderStatus.FAILED
        return None


def sign(secret: str, payload: bytes) -> str:
    mac = hmac.new(secret.encode(), payload, hashlib.sha256).digest()
    return base64.b64encode(mac).decode()


# ----------------------------
# HMAC-signed gateway events
# ----------------------------
class HmacCashier(CashierAdapter):
    """
    Events look like::

        {"id": "evt_...", "type": "payment.succeeded",
         "data": {"metadata": {"order_id": 12}}}

    signed with base64(HMAC-SHA256(secret, raw body)) in
    ``x-cashier-signature``.
    """

    def __init__(self, secret: str) -> None:
        self.secret = secret

    def verify_webhook(self, payload: bytes, headers: dict) -> dict:
        sig = headers.get(SIGNATURE_HEADER)
        expected = sign(self.secret, payload)
        if not sig or not hmac.compare_digest(expected, sig):
            raise HTTPException(status_code=400, detail="Invalid signature")
        try:
            event = json.loads(payload.decode())
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise HTTPException(status_code=400, detail="Invalid JSON")
        if not isinstance(event, dict):
            raise HTTPException(status_code=400, detail="Invalid event")
        return event

    def event_kind(self, event: dict) -> str:
        return str(event.get("type", "")).split(".")[-1]

    def event_ids(self, event: dict) -> Tuple[Optional[int], Optional[str]]:
        data = event.get("data") or {}
        metadata = data.get("metadata") or event.get("metadata") or {}
        raw = metadata.get("order_id", metadata.get("orderId"))
        try:
            order_id = int(raw) if raw is not None else None
        except (TypeError, ValueError):
            order_id = None
        return order_id, event.get("id") or event.get("idempotency_key")
