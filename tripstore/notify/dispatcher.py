from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    NEW_ORDER = "new_order"
    STATUS_CHANGE = "status_change"
    NEW_INQUIRY = "new_inquiry"
    NEW_SUGGESTION = "new_suggestion"
    ADMIN_REPLY = "admin_reply"
    ADMIN_BROADCAST = "admin_broadcast"


@dataclass(frozen=True)
class Notification:
    kind: EventKind
    subject: str
    # email body; None means "no email for this event"
    html: Optional[str] = None
    # telegram body (staff chat); None means "no chat message"
    text: Optional[str] = None
    # email recipient; None means the staff inbox
    recipient: Optional[str] = None


class ChannelDisabled(RuntimeError):
    pass


# ----------------------------
# Notifier Interface
# ----------------------------
class Notifier(ABC):
    email_enabled: bool = False
    telegram_enabled: bool = False
    staff_email: str = ""

    @abstractmethod
    async def send_email(self, to: str, subject: str, html: str) -> None: ...

    @abstractmethod
    async def send_telegram(self, text: str) -> None: ...

    async def dispatch(self, note: Notification) -> List[str]:
        """Best-effort fan-out: one attempt per enabled channel.

        Channel errors are logged and swallowed; returns the channels that
        accepted the notification.
        """
        delivered: List[str] = []

        if note.html is not None and self.email_enabled:
            to = note.recipient or self.staff_email
            if to:
                try:
                    await self.send_email(to, note.subject, note.html)
                    delivered.append("email")
                except Exception:
                    logger.exception(
                        "email delivery failed (%s -> %s)", note.kind.value, to
                    )

        if note.text is not None and self.telegram_enabled:
            try:
                await self.send_telegram(note.text)
                delivered.append("telegram")
            except Exception:
                logger.exception(
                    "telegram delivery failed (%s)", note.kind.value
                )

        if not delivered:
            logger.debug("no channel delivered %s", note.kind.value)
        return delivered
