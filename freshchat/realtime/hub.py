from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

from ..broker import Broker, BrokerError, Subscription
from ..observability.metrics import WS_CONNECTIONS

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Per-process registry of sockets listening on the shared chat topic.

    One broker subscription and one forwarding task exist while at least one
    local socket is connected. A subscription that fails is replaced in place;
    if that is not possible the hub goes idle and the next connect subscribes
    again.
    """

    def __init__(self, broker: Broker, topic: str, *, retry_delay: float = 1.0) -> None:
        self._broker = broker
        self._topic = topic
        self._retry_delay = retry_delay
        self.active: List[WebSocket] = []
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        async with self._lock:
            if self._task is None:
                # subscribe before registering so nothing published after accept is missed
                self._subscription = await self._broker.subscribe(self._topic)
                self._task = asyncio.create_task(self._forward(self._subscription))
            self.active.append(ws)
        WS_CONNECTIONS.set(len(self.active))
        logger.info("ws_connected", extra={"connections": len(self.active)})

    async def disconnect(self, ws: WebSocket) -> None:
        async with self._lock:
            if ws in self.active:
                self.active.remove(ws)
            WS_CONNECTIONS.set(len(self.active))
            if self.active or self._task is None:
                return
            task, sub = self._task, self._subscription
            self._task, self._subscription = None, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.warning("ws_forward_task_failed", exc_info=True)
        finally:
            if sub is not None:
                await self._close(sub)
        logger.info("ws_hub_idle", extra={"topic": self._topic})

    async def _close(self, sub: Subscription) -> None:
        try:
            await sub.close()
        except Exception:
            logger.warning("subscription_close_failed", extra={"topic": self._topic}, exc_info=True)

    async def _forward(self, sub: Subscription) -> None:
        """Broker -> local sockets, until cancelled by the last disconnect."""
        while True:
            try:
                async for event in sub:
                    await self.broadcast_local(event)
                logger.warning("subscription_ended", extra={"topic": self._topic})
            except Exception:
                logger.warning("subscription_failed", extra={"topic": self._topic}, exc_info=True)
            await self._close(sub)
            await asyncio.sleep(self._retry_delay)

            async with self._lock:
                if not self.active:
                    self._task, self._subscription = None, None
                    return
                try:
                    sub = await self._broker.subscribe(self._topic)
                except BrokerError:
                    logger.warning("resubscribe_failed; hub idle until next connect", exc_info=True)
                    self._task, self._subscription = None, None
                    return
                self._subscription = sub
            logger.info("resubscribed", extra={"topic": self._topic})

    async def broadcast_local(self, event: Dict[str, Any]) -> None:
        message = json.dumps(event)
        dead = []
        for ws in list(self.active):
            try:
                await ws.send_text(message)
            except Exception:
                # best effort: a socket that cannot take the frame just misses it
                logger.warning("ws_send_failed; dropping socket", exc_info=True)
                dead.append(ws)
        for ws in dead:
            async with self._lock:
                if ws in self.active:
                    self.active.remove(ws)
        if dead:
            WS_CONNECTIONS.set(len(self.active))
