from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import Message


def new_message(
    *,
    content: Optional[str],
    sender_id: str,
    receiver_id: Optional[str],
    chat_id: Optional[str],
    timestamp: datetime,
) -> Message:
    return Message(
        content=content,
        sender_id=sender_id,
        receiver_id=receiver_id,
        chat_id=chat_id,
        timestamp=timestamp,
    )


async def add(db: AsyncSession, msg: Message) -> Message:
    db.add(msg)
    await db.flush()
    return msg


async def list_for_chat(db: AsyncSession, chat_id: str) -> Sequence[Message]:
    res = await db.execute(
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.timestamp.asc(), Message.id.asc())
    )
    return res.scalars().all()


async def list_latest(db: AsyncSession, limit: int) -> Sequence[Message]:
    res = await db.execute(
        select(Message).order_by(Message.timestamp.desc(), Message.id.desc()).limit(limit)
    )
    return res.scalars().all()
