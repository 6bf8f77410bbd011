from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from ..broker import Broker
from ..config import get_settings
from ..db import get_db
from ..realtime.hub import ConnectionHub
from ..services.mailer import Mailer, get_mailer
from ..services.otp import OtpManager
from ..services.relay import MessageRelay
from ..services.users import UserRegistry


def get_mailer_dep() -> Mailer:
    return get_mailer()


def get_broker_dep(conn: HTTPConnection) -> Broker:
    return conn.app.state.broker


def get_hub(conn: HTTPConnection) -> ConnectionHub:
    return conn.app.state.hub


def get_otp_manager(
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer_dep),
) -> OtpManager:
    return OtpManager(db, mailer)


def get_user_registry(
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer_dep),
) -> UserRegistry:
    return UserRegistry(db, mailer)


def get_relay(
    db: AsyncSession = Depends(get_db),
    broker: Broker = Depends(get_broker_dep),
) -> MessageRelay:
    return MessageRelay(db, broker, topic=get_settings().CHAT_TOPIC)
