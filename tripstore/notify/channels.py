from __future__ import annotations
import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

import httpx

from .dispatcher import ChannelDisabled, Notifier

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot"


class ChannelNotifier(Notifier):
    """SMTP email + Telegram Bot API.

    A channel counts as configured only when its credentials are present;
    ``dispatch`` skips unconfigured channels, direct ``send_*`` calls raise
    :class:`ChannelDisabled`.
    """

    def __init__(
        self, *, http: httpx.AsyncClient,
        smtp_host: str, smtp_port: int, smtp_user: str, smtp_pass: str,
        from_name: str, staff_email: str,
        telegram_token: str, telegram_chat_id: str,
        smtp_timeout: float = 15.0,
    ) -> None:
        self.http = http
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_timeout = smtp_timeout
        self.from_name = from_name
        self.staff_email = staff_email or smtp_user
        self.telegram_token = telegram_token
        self.telegram_chat_id = telegram_chat_id

        self.email_enabled = bool(smtp_user and smtp_pass)
        self.telegram_enabled = bool(telegram_token and telegram_chat_id)

    # ---- email
    def _build_message(self, to: str, subject: str, html: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.smtp_user))
        msg["To"] = to
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _smtp_send(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port,
                          timeout=self.smtp_timeout) as server:
            server.starttls()
            server.login(self.smtp_user, self.smtp_pass)
            server.send_message(msg)

    async def send_email(self, to: str, subject: str, html: str) -> None:
        if not self.email_enabled:
            raise ChannelDisabled("SMTP credentials are not configured")
        msg = self._build_message(to, subject, html)
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._smtp_send, msg)
        logger.info("email sent to %s (%s)", to, subject)

    # ---- telegram
    async def send_telegram(self, text: str) -> None:
        if not self.telegram_enabled:
            raise ChannelDisabled("Telegram bot is not configured")
        r = await self.http.post(
            f"{TELEGRAM_API}{self.telegram_token}/sendMessage",
            json={
                "chat_id": self.telegram_chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )
        r.raise_for_status()
        body = r.json()
        if not body.get("ok", False):
            raise RuntimeError(
                f"telegram rejected message: {body.get('description')}"
            )
