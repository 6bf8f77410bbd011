from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MessageIn(BaseModel):
    """Inbound chat message; unknown keys are ignored."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    content: str = Field(max_length=4000)
    sender_id: str = Field(min_length=1, max_length=255)
    receiver_id: str = Field(min_length=1, max_length=255)
    chat_id: Optional[str] = Field(default=None, max_length=255)


class MessageOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    content: Optional[str] = None
    sender_id: str
    receiver_id: Optional[str] = None
    chat_id: Optional[str] = None
    timestamp: datetime


# ---- realtime frames ----
RelayAction = Literal["sendMessage", "addUser"]


class RelayFrameIn(BaseModel):
    action: RelayAction
    payload: Dict[str, Any] = Field(default_factory=dict)
