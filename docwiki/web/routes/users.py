"""Users: minimal directory for author names and avatars."""

from __future__ import annotations

import logging
import sqlite3

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...errors import NotFoundError
from .helpers import _users
from .input_models import UserCreate

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/api/users", response_class=JSONResponse)
async def api_user_create(request: Request, body: UserCreate):
    try:
        user = _users(request).create_user(
            body.name, email=body.email, avatar_url=body.avatar_url, id=body.id or ""
        )
    except sqlite3.IntegrityError:
        return JSONResponse({"error": f"User '{body.id}' already exists"}, status_code=409)
    return JSONResponse(user.to_dict(), status_code=201)


@router.get("/api/users/{user_id}", response_class=JSONResponse)
async def api_user_get(request: Request, user_id: str):
    user = _users(request).get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user.to_dict()
