from __future__ import annotations
from enum import Enum
from typing import Optional

from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Text,
)


Base = declarative_base()


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "لم يتم الدفع"
    PAID = "تم الدفع"
    FAILED = "فشل الدفع"

    @property
    def key(self) -> str:
        return _ORDER_STATUS_KEYS[self]

    @classmethod
    def parse(cls, value: str) -> Optional["OrderStatus"]:
        value = (value or "").strip()
        for status in cls:
            if value == status.value:
                return status
        return _ORDER_STATUS_ALIASES.get(value.lower())


_ORDER_STATUS_KEYS = {
    OrderStatus.PENDING_PAYMENT: "pending-payment",
    OrderStatus.PAID: "paid",
    OrderStatus.FAILED: "failed",
}

_ORDER_STATUS_ALIASES = {
    "pending-payment": OrderStatus.PENDING_PAYMENT,
    "pending": OrderStatus.PENDING_PAYMENT,
    "unpaid": OrderStatus.PENDING_PAYMENT,
    "paid": OrderStatus.PAID,
    "failed": OrderStatus.FAILED,
}


class InquiryStatus(str, Enum):
    PENDING = "قيد الانتظار"
    REPLIED = "تم الرد"


class PurchaseType(str, Enum):
    UC = "UC"
    BUNDLE = "Bundle"


# ----------------------------
# ORM models
# ----------------------------
class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    player_id = Column(String, nullable=False)
    email = Column(String, nullable=False)

    # UC | Bundle; exactly one of uc_amount / bundle is set
    purchase_type = Column(String, nullable=False)
    uc_amount = Column(String, nullable=True)
    bundle = Column(String, nullable=True)

    # canonical decimal string
    total_amount = Column(String, nullable=False)
    transaction_id = Column(String, nullable=False)

    # file name inside UPLOAD_DIR
    screenshot = Column(String, nullable=True)

    status = Column(String, nullable=False,
                    default=OrderStatus.PENDING_PAYMENT.value)
    created_at = Column(Float, nullable=False)


class Inquiry(Base):
    __tablename__ = "inquiries"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String, nullable=False,
                    default=InquiryStatus.PENDING.value)
    created_at = Column(Float, nullable=False)


class Suggestion(Base):
    __tablename__ = "suggestions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    contact = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(Float, nullable=False)


class AdminSession(Base):
    __tablename__ = "admin_sessions"
    sid = Column(String, primary_key=True)
    username = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)
    expires_at = Column(Float, nullable=False, index=True)


class WebhookEventSeen(Base):
    __tablename__ = "webhook_events_seen"
    idempotency_key = Column(String, primary_key=True)
    created_at = Column(Float, nullable=False)
