from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...domain.schemas.users import UserCreate, UserOut
from ...services.errors import ChatError, DependencyFailure, NotFound
from ...services.users import UserRegistry
from ..deps import get_user_registry

router = APIRouter(prefix="/users", tags=["users"])


def _error(e: ChatError) -> JSONResponse:
    if isinstance(e, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(e, DependencyFailure):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=code, content={"error": e.message})


@router.post("/register", response_model=UserOut, response_model_by_alias=True)
async def register(payload: UserCreate, users: UserRegistry = Depends(get_user_registry)):
    try:
        user = await users.register(payload)
    except ChatError as e:
        return _error(e)
    return UserOut.model_validate(user)


@router.get("", response_model=list[UserOut], response_model_by_alias=True)
async def list_users(users: UserRegistry = Depends(get_user_registry)):
    try:
        rows = await users.list_users()
    except ChatError as e:
        return _error(e)
    return [UserOut.model_validate(u) for u in rows]


@router.get("/{user_id}", response_model=UserOut, response_model_by_alias=True)
async def get_user(user_id: uuid.UUID, users: UserRegistry = Depends(get_user_registry)):
    try:
        user = await users.get_user(user_id)
    except ChatError as e:
        return _error(e)
    return UserOut.model_validate(user)
