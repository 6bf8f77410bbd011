from __future__ import annotations
import uuid
from datetime import datetime
from typing import Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import User


async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def get_by_email(db: AsyncSession, email: str) -> Optional[User]:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one_or_none()


async def list_all(db: AsyncSession) -> Sequence[User]:
    res = await db.execute(select(User).order_by(User.created_at.asc(), User.id.asc()))
    return res.scalars().all()


def new_user(
    *,
    email: str,
    name: str,
    created_at: datetime,
    username: Optional[str] = None,
    phone: Optional[str] = None,
    avatar_url: Optional[str] = None,
    about: Optional[str] = None,
) -> User:
    return User(
        id=uuid.uuid4(),
        email=email,
        name=name,
        username=username,
        phone=phone,
        avatar_url=avatar_url,
        about=about,
        created_at=created_at,
    )


async def add(db: AsyncSession, user: User) -> User:
    db.add(user)
    await db.flush()
    return user
