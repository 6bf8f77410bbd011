from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from ...broker import BrokerError
from ...domain.schemas.messages import MessageIn, RelayFrameIn
from ...realtime.hub import ConnectionHub
from ...services.errors import ChatError
from ...services.relay import MessageRelay
from ..deps import get_hub, get_relay

router = APIRouter(tags=["realtime"])
log = logging.getLogger(__name__)


async def _send_error(ws: WebSocket, error: str) -> None:
    await ws.send_text(json.dumps({"action": "error", "error": error}))


async def _dispatch(relay: MessageRelay, frame: RelayFrameIn) -> None:
    if frame.action == "sendMessage":
        await relay.send_message(MessageIn.model_validate(frame.payload))
    else:
        await relay.announce_user(frame.payload)


def _frame_text(message: Dict[str, Any]) -> str:
    text = message.get("text")
    if text is None:
        # binary frames carry the same JSON, UTF-8 encoded
        text = (message.get("bytes") or b"").decode("utf-8")
    return text


def _parse(raw: str) -> Dict[str, Any]:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("frame must be a JSON object")
    return data


@router.websocket("/ws")
async def chat_socket(
    ws: WebSocket,
    hub: ConnectionHub = Depends(get_hub),
    relay: MessageRelay = Depends(get_relay),
):
    try:
        await hub.connect(ws)
    except BrokerError:
        log.warning("ws_subscribe_failed", exc_info=True)
        await _send_error(ws, "Realtime channel unavailable")
        await ws.close(code=1011)
        return
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            try:
                frame = RelayFrameIn.model_validate(_parse(_frame_text(message)))
                await _dispatch(relay, frame)
            except (ValueError, ValidationError):
                await _send_error(ws, "Invalid frame")
            except ChatError as e:
                await _send_error(ws, e.message)
    except WebSocketDisconnect:
        log.info("ws_disconnected")
    finally:
        await hub.disconnect(ws)
