from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Identity column that autoincrements on both Postgres (BIGINT) and SQLite (INTEGER rowid).
BigIntId = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


class UTCDateTime(sa.TypeDecorator):
    """Timezone-aware UTC timestamps, also on backends that drop tzinfo (SQLite)."""

    impl = sa.DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime is not allowed; use UTC-aware values")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# ---------- Base & naming ----------
class Base(DeclarativeBase):
    # Keep index/constraint names stable for cleaner migrations
    metadata = sa.MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


# ---------- USERS ----------
class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid(), primary_key=True, default=uuid.uuid4)
    # stored trimmed + lower-cased, so the unique constraint is case-insensitive
    email: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(sa.Text, nullable=False)
    username: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    about: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)


# ---------- OTP RECORDS ----------
class OtpRecord(Base):
    __tablename__ = "otp_records"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(sa.Text, nullable=False)
    code: Mapped[str] = mapped_column(sa.String(12), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)
    verified: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False, server_default=sa.false()
    )

    __table_args__ = (
        # serves "latest unverified record for an email"
        Index("ix_otp_records_email_verified_created", "email", "verified", "created_at"),
    )


# ---------- MESSAGES ----------
class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    content: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    sender_id: Mapped[str] = mapped_column(sa.Text, nullable=False)
    receiver_id: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    chat_id: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_messages_chat_id_timestamp", "chat_id", "timestamp"),
    )
