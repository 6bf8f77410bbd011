from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.schemas.users import UserCreate
from ..models import User
from ..repos import users as users_repo
from . import email_templates
from .email_address import require_email
from .errors import Conflict, DependencyFailure, NotFound
from .mailer import Mailer, MailSendError

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class UserRegistry:
    def __init__(self, db: AsyncSession, mailer: Mailer) -> None:
        self._db = db
        self._mailer = mailer

    async def register(self, payload: UserCreate) -> User:
        email = require_email(payload.email)
        try:
            if await users_repo.get_by_email(self._db, email) is not None:
                raise Conflict("Email already registered")
            user = users_repo.new_user(
                email=email,
                name=payload.name,
                username=payload.username,
                phone=payload.phone,
                avatar_url=payload.avatar_url,
                about=payload.about,
                created_at=_now_utc(),
            )
            await users_repo.add(self._db, user)
            await self._db.commit()
        except IntegrityError as exc:
            # lost a race with a concurrent registration of the same email
            await self._db.rollback()
            raise Conflict("Email already registered") from exc
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("user_register_failed")
            raise DependencyFailure("Failed to register user") from exc

        logger.info("user_registered", extra={"user_id": str(user.id), "email": email})
        await self._send_welcome(user)
        return user

    async def _send_welcome(self, user: User) -> None:
        # best-effort: a failed welcome mail never fails the registration
        try:
            await self._mailer.send(
                to=user.email,
                subject=email_templates.welcome_subject(),
                text=email_templates.welcome_text(user.name),
            )
        except MailSendError as exc:
            logger.warning("welcome_mail_failed", extra={"user_id": str(user.id), "error": str(exc)})

    async def list_users(self) -> Sequence[User]:
        try:
            return await users_repo.list_all(self._db)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("user_list_failed")
            raise DependencyFailure("Failed to list users") from exc

    async def get_user(self, user_id: uuid.UUID) -> User:
        try:
            user = await users_repo.get_by_id(self._db, user_id)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("user_lookup_failed")
            raise DependencyFailure("Failed to load user") from exc
        if user is None:
            raise NotFound("User not found")
        return user
