import uuid

import pytest
from sqlalchemy import func, select

from freshchat.domain.schemas.messages import MessageIn
from freshchat.domain.schemas.users import UserCreate
from freshchat.models import Message, OtpRecord
from freshchat.repos import users as users_repo
from freshchat.services.errors import Conflict, DependencyFailure
from freshchat.services.otp import OtpManager
from freshchat.services.relay import MessageRelay
from freshchat.services.users import UserRegistry

pytestmark = pytest.mark.asyncio

TOPIC = "chat:topic:test"


async def _count(factory, model) -> int:
    async with factory() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


# ---------- otp ----------
async def test_otp_store_failure(flaky_db, session_factory, mailer, db_down):
    flaky_db.fail_commit = db_down
    mgr = OtpManager(flaky_db, mailer, code_factory=lambda: "123456")

    with pytest.raises(DependencyFailure) as exc:
        await mgr.request_otp("a@x.com")

    assert exc.value.message == "Failed to send OTP: could not store the code"
    assert exc.value.__cause__ is db_down
    assert flaky_db.rollbacks == 1
    assert mailer.sent == []
    assert await _count(session_factory, OtpRecord) == 0


async def test_otp_lookup_failure(flaky_db, mailer, db_down):
    mgr = OtpManager(flaky_db, mailer, code_factory=lambda: "123456")
    await mgr.request_otp("a@x.com")

    flaky_db.fail_execute = db_down
    with pytest.raises(DependencyFailure) as exc:
        await mgr.verify_otp("a@x.com", "123456")
    assert exc.value.message.startswith("Verification failed")
    assert flaky_db.rollbacks == 1

    # the session is usable again once the database is back
    flaky_db.fail_execute = None
    assert await mgr.verify_otp("a@x.com", "123456") == "a@x.com"


async def test_otp_mark_verified_failure_keeps_record_unverified(flaky_db, session_factory, mailer, db_down):
    mgr = OtpManager(flaky_db, mailer, code_factory=lambda: "123456")
    await mgr.request_otp("a@x.com")

    flaky_db.fail_commit = db_down
    with pytest.raises(DependencyFailure):
        await mgr.verify_otp("a@x.com", "123456")
    assert flaky_db.rollbacks == 1

    async with session_factory() as s:
        rec = (await s.execute(select(OtpRecord))).scalar_one()
        assert rec.verified is False


# ---------- users ----------
async def test_register_store_failure(flaky_db, session_factory, mailer, db_down):
    flaky_db.fail_commit = db_down

    with pytest.raises(DependencyFailure) as exc:
        await UserRegistry(flaky_db, mailer).register(UserCreate(email="a@x.com"))

    assert exc.value.message == "Failed to register user"
    assert flaky_db.rollbacks == 1
    assert mailer.sent == []
    async with session_factory() as s:
        assert await users_repo.get_by_email(s, "a@x.com") is None


async def test_unique_violation_on_write_is_conflict(flaky_db, mailer, monkeypatch):
    reg = UserRegistry(flaky_db, mailer)
    await reg.register(UserCreate(email="a@x.com", name="First"))

    # a concurrent registration slipped past the existence check
    async def nobody(db, email):
        return None

    monkeypatch.setattr(users_repo, "get_by_email", nobody)
    with pytest.raises(Conflict) as exc:
        await reg.register(UserCreate(email="a@x.com", name="Second"))

    assert exc.value.message == "Email already registered"
    assert flaky_db.rollbacks == 1
    assert [u.name for u in await reg.list_users()] == ["First"]


async def test_list_users_failure(flaky_db, mailer, db_down):
    flaky_db.fail_execute = db_down
    with pytest.raises(DependencyFailure) as exc:
        await UserRegistry(flaky_db, mailer).list_users()
    assert exc.value.message == "Failed to list users"
    assert flaky_db.rollbacks == 1


async def test_get_user_failure(flaky_db, mailer, db_down):
    flaky_db.fail_execute = db_down
    with pytest.raises(DependencyFailure):
        await UserRegistry(flaky_db, mailer).get_user(uuid.uuid4())
    assert flaky_db.rollbacks == 1


# ---------- relay ----------
async def test_message_store_failure_publishes_nothing(flaky_db, session_factory, broker, db_down):
    flaky_db.fail_commit = db_down

    with pytest.raises(DependencyFailure) as exc:
        await MessageRelay(flaky_db, broker, topic=TOPIC).send_message(
            MessageIn(content="hi", sender_id="a", receiver_id="b")
        )

    assert exc.value.message == "Failed to store message"
    assert flaky_db.rollbacks == 1
    assert broker.published == []
    assert await _count(session_factory, Message) == 0


async def test_history_failure(flaky_db, broker, db_down):
    flaky_db.fail_execute = db_down
    with pytest.raises(DependencyFailure) as exc:
        await MessageRelay(flaky_db, broker, topic=TOPIC).history(chat_id="c1")
    assert exc.value.message == "Failed to load messages"
    assert flaky_db.rollbacks == 1
