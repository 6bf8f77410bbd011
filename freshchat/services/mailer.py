from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Optional, Protocol

from ..config import get_settings

logger = logging.getLogger(__name__)


class MailSendError(RuntimeError):
    pass


class Mailer(Protocol):
    async def send(self, *, to: str, subject: str, text: str, html: Optional[str] = None) -> None: ...


class SmtpMailer:
    """SMTP sender; the blocking smtplib session runs in the default executor."""

    def __init__(
        self,
        *,
        host: Optional[str],
        port: int,
        user: Optional[str],
        password: Optional[str],
        use_tls: bool,
        sender: str,
        timeout: int = 10,
        log_only: bool = False,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._use_tls = use_tls
        self._sender = sender
        self._timeout = timeout
        self._log_only = log_only
        if not host:
            logger.info("SMTP disabled; SMTP_HOST is not set (log_only=%s)", log_only)

    @property
    def enabled(self) -> bool:
        return bool(self._host)

    def _build(self, *, to: str, subject: str, text: str, html: Optional[str]) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = to
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid()
        msg.set_content(text)
        if html:
            # plain text stays as the fallback part for clients without HTML
            msg.add_alternative(html, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._user and self._password:
                server.login(self._user, self._password)
            server.send_message(msg)

    async def send(self, *, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        if not self.enabled:
            if self._log_only:
                # DEV sender: nothing leaves the box
                logger.info("[DEV] mail to=%s subject=%s body=%s", to, subject, text)
                return
            raise MailSendError("SMTP is not configured")

        msg = self._build(to=to, subject=subject, text=text, html=html)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("SMTP send failed to=%s: %s", to, exc)
            raise MailSendError("Failed to send email") from exc
        logger.info("mail sent to=%s subject=%s", to, subject)


def build_mailer() -> SmtpMailer:
    S = get_settings()
    return SmtpMailer(
        host=S.SMTP_HOST,
        port=S.SMTP_PORT,
        user=S.SMTP_USER,
        password=S.SMTP_PASSWORD,
        use_tls=S.SMTP_USE_TLS,
        sender=S.MAIL_FROM,
        timeout=S.SMTP_TIMEOUT_SEC,
        log_only=S.ENV == "dev",
    )


_MAILER: Optional[SmtpMailer] = None


def get_mailer() -> Mailer:
    global _MAILER
    if _MAILER is None:
        _MAILER = build_mailer()
    return _MAILER
