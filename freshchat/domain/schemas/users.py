import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UserCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str = Field(min_length=1, max_length=320)
    name: str = Field(default="New User", min_length=1, max_length=100)
    username: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=32)
    avatar_url: Optional[str] = None
    about: Optional[str] = Field(default=None, max_length=500)


class UserOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    username: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    about: Optional[str] = None
    created_at: datetime
