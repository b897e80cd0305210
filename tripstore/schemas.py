"""
Typed request bodies.

Every public and admin endpoint turns its raw body (JSON or form) into one
of these models via :func:`parse` before any handler logic runs. The first
violation is reported as an :class:`InvalidRequest` whose ``kind`` tells
the caller what went wrong; ``message`` is meant for direct display.
"""
from __future__ import annotations
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, Optional, Type, TypeVar

from pydantic import (
    BaseModel, ConfigDict, Field, StringConstraints, ValidationError,
    field_validator, model_validator,
)
from pydantic_core import PydanticCustomError

from . import messages
from .helpers import is_valid_email
from .model.db import OrderStatus

Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class InvalidKind(str, Enum):
    MISSING_FIELD = "missing_field"
    INVALID_VALUE = "invalid_value"
    INVALID_EMAIL = "invalid_email"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_STATUS = "invalid_status"
    PURCHASE_CONFLICT = "purchase_conflict"
    INVALID_FILE_TYPE = "invalid_file_type"
    FILE_TOO_LARGE = "file_too_large"
    MALFORMED_BODY = "malformed_body"


class InvalidRequest(Exception):
    def __init__(self, kind: InvalidKind, message: str,
                 field: Optional[str] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.field = field


_MISSING_TYPES = {"missing", "string_too_short", "string_type", "none_required"}
_CUSTOM_KINDS = {k.value: k for k in InvalidKind}


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _check_email(value: str) -> str:
    if not is_valid_email(value):
        raise PydanticCustomError("invalid_email", messages.INVALID_EMAIL)
    return value


class Body(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    # shown when a required field is absent or blank
    missing_message: ClassVar[str] = messages.ALL_FIELDS_REQUIRED


M = TypeVar("M", bound=Body)


def parse(model: Type[M], payload: Dict[str, Any]) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        err = e.errors()[0]
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else None
        etype = err.get("type", "")
        if etype in _MISSING_TYPES:
            raise InvalidRequest(
                InvalidKind.MISSING_FIELD, model.missing_message, field
            ) from None
        kind = _CUSTOM_KINDS.get(etype, InvalidKind.INVALID_VALUE)
        if kind is InvalidKind.INVALID_VALUE:
            message = messages.INVALID_VALUE
        else:
            message = err.get("msg") or messages.INVALID_VALUE
        raise InvalidRequest(kind, message, field) from None


# ----------------------------
# Customer submissions
# ----------------------------
class OrderSubmission(Body):
    missing_message: ClassVar[str] = messages.ORDER_FIELDS_REQUIRED

    name: Text
    player_id: Text = Field(alias="playerId")
    email: Text
    uc_amount: Optional[Text] = Field(default=None, alias="ucAmount")
    bundle: Optional[Text] = None
    total_amount: Decimal = Field(alias="totalAmount")
    transaction_id: Text = Field(alias="transactionId")

    @field_validator("uc_amount", "bundle", mode="before")
    @classmethod
    def blank_purchase(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("total_amount", mode="before")
    @classmethod
    def positive_amount(cls, value: Any) -> Decimal:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise PydanticCustomError("missing", "missing")
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise PydanticCustomError(
                "invalid_amount", messages.INVALID_AMOUNT
            )
        if not amount.is_finite() or amount <= 0:
            raise PydanticCustomError(
                "invalid_amount", messages.INVALID_AMOUNT
            )
        return amount

    @model_validator(mode="after")
    def exactly_one_purchase(self) -> "OrderSubmission":
        if bool(self.uc_amount) == bool(self.bundle):
            raise PydanticCustomError(
                "purchase_conflict", messages.PURCHASE_CONFLICT
            )
        return self


class InquirySubmission(Body):
    missing_message: ClassVar[str] = messages.INQUIRY_FIELDS_REQUIRED

    name: Optional[str] = None
    email: Text
    message: Text

    @field_validator("name", mode="before")
    @classmethod
    def blank_name(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        return _check_email(value)


class SuggestionSubmission(Body):
    missing_message: ClassVar[str] = messages.SUGGESTION_FIELDS_REQUIRED

    name: Text
    contact: Text
    message: Text


# ----------------------------
# Admin bodies
# ----------------------------
class LoginRequest(Body):
    missing_message: ClassVar[str] = messages.BAD_CREDENTIALS

    username: Text
    password: str = Field(min_length=1)


class StatusUpdate(Body):
    missing_message: ClassVar[str] = messages.STATUS_FIELDS_REQUIRED

    id: int
    status: OrderStatus

    @field_validator("status", mode="before")
    @classmethod
    def known_status(cls, value: Any) -> OrderStatus:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise PydanticCustomError("missing", "missing")
        status = OrderStatus.parse(str(value))
        if status is None:
            raise PydanticCustomError(
                "invalid_status", messages.INVALID_STATUS
            )
        return status


class RecordId(Body):
    id: int


class InquiryReply(Body):
    inquiry_id: int = Field(alias="inquiryId")
    reply: Text
    # fall back to the stored inquiry when absent
    email: Optional[str] = None
    message: Optional[str] = None

    @field_validator("email", "message", mode="before")
    @classmethod
    def blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)


class AdminMessage(Body):
    email: Text
    subject: Text
    message: Text

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        return _check_email(value)
