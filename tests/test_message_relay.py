from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from freshchat.domain.schemas.messages import MessageIn
from freshchat.models import Message
from freshchat.services import relay as relay_service
from freshchat.services.errors import DependencyFailure, InvalidInput
from freshchat.services.relay import MessageRelay

pytestmark = pytest.mark.asyncio

TOPIC = "chat:topic:test"


def _relay(db, broker):
    return MessageRelay(db, broker, topic=TOPIC)


async def _count_messages(db) -> int:
    return (await db.execute(select(func.count()).select_from(Message))).scalar_one()


async def test_send_message_persists_and_broadcasts(db, broker):
    sub = await broker.subscribe(TOPIC)
    out = await _relay(db, broker).send_message(
        MessageIn.model_validate({"content": "hi", "senderId": "a", "receiverId": "b"})
    )

    assert out.id is not None
    assert out.content == "hi"
    assert out.sender_id == "a" and out.receiver_id == "b"
    assert out.chat_id is None
    assert out.timestamp.tzinfo is not None
    assert await _count_messages(db) == 1

    event = sub.queue.get_nowait()
    assert event["action"] == "sendMessage"
    assert event["payload"]["id"] == out.id
    assert event["payload"]["content"] == "hi"
    assert event["payload"]["senderId"] == "a"
    assert event["payload"]["receiverId"] == "b"
    assert event["payload"]["timestamp"]


async def test_server_assigns_timestamp(db, broker, monkeypatch):
    fixed = datetime(2026, 5, 5, 8, 30, tzinfo=timezone.utc)
    monkeypatch.setattr(relay_service, "_now_utc", lambda: fixed)
    out = await _relay(db, broker).send_message(MessageIn(content="x", sender_id="a", receiver_id="b"))
    assert out.timestamp == fixed


async def test_late_subscriber_misses_earlier_broadcast(db, broker):
    relay = _relay(db, broker)
    await relay.send_message(MessageIn(content="early", sender_id="a", receiver_id="b"))

    late = await broker.subscribe(TOPIC)
    assert late.queue.empty()

    await relay.send_message(MessageIn(content="later", sender_id="a", receiver_id="b"))
    assert late.queue.get_nowait()["payload"]["content"] == "later"
    assert late.queue.empty()


async def test_announce_user_is_unchanged_and_not_persisted(db, broker):
    sub = await broker.subscribe(TOPIC)
    payload = {"userId": "u1", "name": "Ann", "status": None, "extra": {"k": [1, 2]}}

    returned = await _relay(db, broker).announce_user(payload)

    assert returned == payload
    assert sub.queue.get_nowait() == {"action": "addUser", "payload": payload}
    assert await _count_messages(db) == 0


async def test_announce_requires_object(db, broker):
    with pytest.raises(InvalidInput):
        await _relay(db, broker).announce_user(["not", "an", "object"])
    assert broker.published == []


async def test_broker_failure_is_dependency_failure(db, broker):
    broker.fail = True
    with pytest.raises(DependencyFailure) as exc:
        await _relay(db, broker).send_message(MessageIn(content="x", sender_id="a", receiver_id="b"))
    assert exc.value.message == "Failed to broadcast message"
    # the message was committed before the publish attempt
    assert await _count_messages(db) == 1


async def test_history_by_chat_is_ascending(db, broker, monkeypatch):
    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ticks = iter([t0 + timedelta(minutes=m) for m in (5, 1, 3, 2)])
    monkeypatch.setattr(relay_service, "_now_utc", lambda: next(ticks))

    relay = _relay(db, broker)
    for content, chat in (("m5", "c1"), ("m1", "c1"), ("m3", "c2"), ("m2", "c1")):
        await relay.send_message(MessageIn(content=content, sender_id="a", receiver_id="b", chat_id=chat))

    assert [m.content for m in await relay.history(chat_id="c1")] == ["m1", "m2", "m5"]


async def test_history_latest_is_descending_and_limited(db, broker, monkeypatch):
    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ticks = iter([t0 + timedelta(minutes=m) for m in range(5)])
    monkeypatch.setattr(relay_service, "_now_utc", lambda: next(ticks))

    relay = _relay(db, broker)
    for i in range(5):
        await relay.send_message(MessageIn(content=f"m{i}", sender_id="a", receiver_id="b"))

    assert [m.content for m in await relay.history(limit=3)] == ["m4", "m3", "m2"]
