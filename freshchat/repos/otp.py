from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import OtpRecord


def new_otp_record(*, email: str, code: str, now: datetime, ttl: timedelta) -> OtpRecord:
    # the only place an OtpRecord gets its timestamps
    return OtpRecord(
        email=email,
        code=code,
        created_at=now,
        expires_at=now + ttl,
        verified=False,
    )


async def add(db: AsyncSession, record: OtpRecord) -> OtpRecord:
    db.add(record)
    await db.flush()
    return record


async def latest_unverified(db: AsyncSession, email: str) -> Optional[OtpRecord]:
    res = await db.execute(
        select(OtpRecord)
        .where(OtpRecord.email == email, OtpRecord.verified.is_(False))
        .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def mark_verified(db: AsyncSession, record: OtpRecord) -> OtpRecord:
    record.verified = True
    await db.flush()
    return record
