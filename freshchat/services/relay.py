from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..broker import Broker, BrokerError
from ..domain.schemas.messages import MessageIn, MessageOut
from ..observability.metrics import MESSAGES_RELAYED
from ..repos import messages as messages_repo
from .errors import DependencyFailure, InvalidInput

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class MessageRelay:
    """Persists chat messages and rebroadcasts events on one shared topic.

    Delivery is at-most-once: whoever is subscribed at publish time gets the
    event, nobody else ever will.
    """

    def __init__(self, db: AsyncSession, broker: Broker, *, topic: str) -> None:
        self._db = db
        self._broker = broker
        self._topic = topic

    async def send_message(self, payload: MessageIn) -> MessageOut:
        msg = messages_repo.new_message(
            content=payload.content,
            sender_id=payload.sender_id,
            receiver_id=payload.receiver_id,
            chat_id=payload.chat_id,
            timestamp=_now_utc(),
        )
        try:
            await messages_repo.add(self._db, msg)
            await self._db.commit()
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("message_store_failed")
            raise DependencyFailure("Failed to store message") from exc

        out = MessageOut.model_validate(msg)
        await self._publish("sendMessage", out.model_dump(mode="json", by_alias=True))
        logger.info("message_relayed", extra={"message_id": msg.id, "chat_id": msg.chat_id})
        return out

    async def announce_user(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise InvalidInput("Announcement payload must be a JSON object")
        await self._publish("addUser", payload)
        return payload

    async def history(self, chat_id: Optional[str] = None, limit: int = 100) -> List[MessageOut]:
        try:
            if chat_id:
                rows = await messages_repo.list_for_chat(self._db, chat_id)
            else:
                rows = await messages_repo.list_latest(self._db, limit)
        except SQLAlchemyError as exc:
            await self._db.rollback()
            logger.exception("message_history_failed")
            raise DependencyFailure("Failed to load messages") from exc
        return [MessageOut.model_validate(m) for m in rows]

    async def _publish(self, action: str, payload: Dict[str, Any]) -> None:
        event = {"action": action, "payload": payload}
        try:
            receivers = await self._broker.publish(self._topic, event)
        except BrokerError as exc:
            logger.warning("broadcast_failed", extra={"action": action, "error": str(exc)})
            raise DependencyFailure("Failed to broadcast message") from exc
        MESSAGES_RELAYED.labels(action=action).inc()
        logger.debug("broadcast action=%s receivers=%s", action, receivers)
