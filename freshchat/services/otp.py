from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..observability.metrics import OTP_ISSUED, OTP_VERIFICATIONS
from ..repos import otp as otp_repo
from . import email_templates
from .email_address import normalize_email, require_email
from .errors import DependencyFailure, Expired, InvalidInput, Mismatch, NotFound
from .mailer import Mailer, MailSendError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def generate_code(length: int = 6) -> str:
    """Uniform, zero-padded numeric code drawn from the OS CSPRNG."""
    return str(secrets.randbelow(10 ** length)).zfill(length)


class OtpManager:
    """Issues, stores and verifies email one-time passwords.

    Single use is enforced by the ``verified`` filter in the lookup, never by
    deletion: old records stay around for audit.
    """

    def __init__(
        self,
        db: AsyncSession,
        mailer: Mailer,
        *,
        ttl: Optional[timedelta] = None,
        code_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        S = get_settings()
        self._db = db
        self._mailer = mailer
        self._ttl = ttl if ttl is not None else timedelta(minutes=S.OTP_TTL_MINUTES)
        self._new_code = code_factory or (lambda: generate_code(S.OTP_LENGTH))

    @property
    def ttl_minutes(self) -> int:
        return int(self._ttl.total_seconds() // 60)

    async def request_otp(self, email: Optional[str]) -> str:
        address = require_email(email)
        record = otp_repo.new_otp_record(
            email=address, code=self._new_code(), now=_now_utc(), ttl=self._ttl
        )
        try:
            await otp_repo.add(self._db, record)
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("otp_store_failed")
            raise DependencyFailure("Failed to send OTP: could not store the code") from exc
        OTP_ISSUED.inc()

        # the record stays persisted even if the mail never goes out
        try:
            await self._mailer.send(
                to=address,
                subject=email_templates.otp_subject(),
                text=email_templates.otp_text(record.code, self.ttl_minutes),
                html=email_templates.otp_html(record.code, self.ttl_minutes),
            )
        except MailSendError as exc:
            logger.warning("otp_mail_failed", extra={"email": address, "otp_id": record.id})
            raise DependencyFailure(f"Failed to send OTP: {exc}") from exc

        logger.info("otp_issued", extra={"email": address, "otp_id": record.id})
        return address

    async def verify_otp(self, email: Optional[str], code: Optional[str]) -> str:
        if not email or not email.strip() or not code:
            raise InvalidInput("Email and OTP are required")
        address = normalize_email(email)

        try:
            record = await otp_repo.latest_unverified(self._db, address)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("otp_lookup_failed")
            raise DependencyFailure("Verification failed: could not read OTP records") from exc

        if record is None:
            OTP_VERIFICATIONS.labels(result="not_found").inc()
            raise NotFound("No OTP found for this email")
        if _now_utc() > record.expires_at:
            OTP_VERIFICATIONS.labels(result="expired").inc()
            raise Expired("OTP has expired. Please request a new one.")
        if record.code != code:
            OTP_VERIFICATIONS.labels(result="mismatch").inc()
            raise Mismatch("Invalid OTP")

        try:
            await otp_repo.mark_verified(self._db, record)
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("otp_mark_verified_failed")
            raise DependencyFailure("Verification failed: could not update OTP record") from exc

        OTP_VERIFICATIONS.labels(result="ok").inc()
        logger.info("otp_verified", extra={"email": address, "otp_id": record.id})
        return address
