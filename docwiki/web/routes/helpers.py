"""Shared helpers for all route modules."""
from __future__ import annotations

from fastapi import Request

from ...comments.store import CommentStore
from ...pages.store import PageStore
from ...users.store import UserStore


async def _parse_body(request: Request) -> dict:
    """Parse request body as JSON or form data, whichever the client sends."""
    ct = request.headers.get("content-type", "")
    if "application/json" in ct:
        return await request.json()
    return dict(await request.form())


def _templates(request: Request):
    return request.app.state.templates


def _pages(request: Request) -> PageStore:
    return request.app.state.pages


def _comments(request: Request) -> CommentStore:
    return request.app.state.comments


def _users(request: Request) -> UserStore:
    return request.app.state.users


def _user_id(request: Request) -> str:
    return request.state.user_id


def _workspace_id(request: Request) -> str:
    return request.state.workspace_id
