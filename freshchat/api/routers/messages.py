from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from ...config import get_settings
from ...domain.schemas.messages import MessageIn, MessageOut
from ...services.errors import ChatError, DependencyFailure
from ...services.relay import MessageRelay
from ..deps import get_relay

router = APIRouter(prefix="/messages", tags=["messages"])
S = get_settings()


@router.post("", response_model=MessageOut, response_model_by_alias=True, status_code=status.HTTP_201_CREATED)
async def send_message(payload: MessageIn, relay: MessageRelay = Depends(get_relay)):
    try:
        return await relay.send_message(payload)
    except DependencyFailure as e:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": e.message})
    except ChatError as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": e.message})


@router.get("", response_model=list[MessageOut], response_model_by_alias=True)
async def history(
    chat_id: Optional[str] = Query(default=None, alias="chatId"),
    limit: int = Query(default=S.HISTORY_LIMIT, ge=1, le=1000),
    relay: MessageRelay = Depends(get_relay),
):
    try:
        return await relay.history(chat_id=chat_id, limit=limit)
    except ChatError as e:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": e.message})
