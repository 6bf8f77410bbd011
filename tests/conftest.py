import asyncio
import os
import tempfile
from pathlib import Path

# Settings are read once at import time; point them at throwaway resources
# BEFORE anything from freshchat is imported.
_TMP = Path(tempfile.mkdtemp(prefix="freshchat-tests-"))
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP / 'default.db'}"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["SMTP_HOST"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
import sqlalchemy as sa
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from freshchat.api.deps import get_mailer_dep
from freshchat.broker import BrokerError
from freshchat.db import get_db
from freshchat.main import create_app
from freshchat.models import Base
from freshchat.services.mailer import MailSendError


# ---------- fakes ----------
class FakeMailer:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail = False

    async def send(self, *, to: str, subject: str, text: str, html: Optional[str] = None) -> None:
        if self.fail:
            raise MailSendError("SMTP is down")
        self.sent.append({"to": to, "subject": subject, "text": text, "html": html})


class FakeSubscription:
    def __init__(self, broker: "FakeBroker", topic: str):
        self._broker = broker
        self.topic = topic
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def __aiter__(self):
        while True:
            item = await self.queue.get()
            # an exception on the queue stands for a dropped broker connection
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        if self in self._broker.subscriptions:
            self._broker.subscriptions.remove(self)


class FakeBroker:
    """In-process topic fan-out; late subscribers see nothing published before them."""

    def __init__(self):
        self.published: List[tuple] = []
        self.subscriptions: List[FakeSubscription] = []
        self.fail = False
        self.fail_subscribe = False

    async def publish(self, topic: str, event: Dict[str, Any]) -> int:
        if self.fail:
            raise BrokerError(f"publish to {topic} failed")
        self.published.append((topic, event))
        receivers = [s for s in self.subscriptions if s.topic == topic]
        for sub in receivers:
            sub.queue.put_nowait(event)
        return len(receivers)

    async def subscribe(self, topic: str) -> FakeSubscription:
        if self.fail_subscribe:
            raise BrokerError(f"subscribe to {topic} failed")
        sub = FakeSubscription(self, topic)
        self.subscriptions.append(sub)
        return sub


# ---------- datastore ----------
@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "chat.db"
    # schema is created on a plain sync engine, outside any event loop
    sync_engine = sa.create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    sync_engine.dispose()
    return path


@pytest.fixture
def async_engine(db_path):
    # NullPool: no aiosqlite connection outlives the event loop that opened it
    return create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


class FlakySession(AsyncSession):
    """Real session that can be told to fail on commit or execute; counts rollbacks."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_commit: Optional[Exception] = None
        self.fail_execute: Optional[Exception] = None
        self.rollbacks = 0

    async def commit(self):
        if self.fail_commit is not None:
            raise self.fail_commit
        await super().commit()

    async def execute(self, *args, **kwargs):
        if self.fail_execute is not None:
            raise self.fail_execute
        return await super().execute(*args, **kwargs)

    async def rollback(self):
        self.rollbacks += 1
        await super().rollback()


@pytest.fixture
def db_down() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is down"))


@pytest.fixture
def flaky_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=FlakySession)


@pytest_asyncio.fixture
async def flaky_db(flaky_factory):
    async with flaky_factory() as s:
        yield s


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def broker():
    return FakeBroker()


# ---------- app ----------
@pytest.fixture
def app(session_factory, mailer, broker):
    app = create_app(broker=broker)

    async def _get_db():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_mailer_dep] = lambda: mailer
    return app


@pytest.fixture
def client(app):
    # one portal (event loop) for every request and socket of a test
    with TestClient(app) as c:
        yield c
