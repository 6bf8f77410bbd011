from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, Protocol

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .redis_client import redis

logger = logging.getLogger(__name__)


class BrokerError(RuntimeError):
    pass


class Subscription(Protocol):
    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]: ...
    async def close(self) -> None: ...


class Broker(Protocol):
    async def publish(self, topic: str, event: Dict[str, Any]) -> int: ...
    async def subscribe(self, topic: str) -> Subscription: ...


class RedisSubscription:
    def __init__(self, pubsub: aioredis.client.PubSub, topic: str) -> None:
        self._pubsub = pubsub
        self._topic = topic

    async def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        try:
            async for msg in self._pubsub.listen():
                if msg.get("type") != "message":
                    continue
                payload = msg["data"]
                # if Redis is configured with decode_responses, payload is str; else bytes
                if isinstance(payload, (bytes, bytearray)):
                    payload = payload.decode("utf-8", "ignore")
                try:
                    event = json.loads(payload)
                except ValueError:
                    logger.warning("dropping non-JSON event on %s", self._topic)
                    continue
                yield event
        except RedisError as exc:
            raise BrokerError(f"subscription to {self._topic} lost") from exc

    async def close(self) -> None:
        try:
            await self._pubsub.unsubscribe(self._topic)
        except RedisError:
            logger.debug("unsubscribe failed for %s", self._topic, exc_info=True)
        await self._pubsub.aclose()


class RedisBroker:
    """Topic fan-out on Redis Pub/Sub: fire-and-forget, no replay for late subscribers."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    async def publish(self, topic: str, event: Dict[str, Any]) -> int:
        try:
            return await self._client.publish(topic, json.dumps(event, separators=(",", ":")))
        except RedisError as exc:
            raise BrokerError(f"publish to {topic} failed") from exc

    async def subscribe(self, topic: str) -> RedisSubscription:
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(topic)
        except RedisError as exc:
            await pubsub.aclose()
            raise BrokerError(f"subscribe to {topic} failed") from exc
        return RedisSubscription(pubsub, topic)


def get_broker() -> Broker:
    return RedisBroker(redis)
