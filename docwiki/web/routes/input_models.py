"""Input validation models for API routes.

All POST/PATCH/PUT JSON endpoints use these models as Body parameters
to get automatic type checking, length limits, and 422 error responses.
Business rules (tree integrity, position keys) are checked by the stores.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from ...comments.content import is_empty_content


# ── Pages ─────────────────────────────────────────────────────────


class PageCreate(BaseModel):
    space_id: str = Field(min_length=1, max_length=100)
    title: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = Field(default=None, max_length=50)
    parent_page_id: Optional[str] = Field(default=None, max_length=100)

    @field_validator("space_id", mode="before")
    @classmethod
    def space_strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class PageUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=500)
    icon: Optional[str] = Field(default=None, max_length=50)


class PageStateUpdate(BaseModel):
    content: Optional[Any] = None
    text_content: Optional[str] = None
    ydoc: Optional[str] = None  # base64-encoded collaboration state

    @field_validator("ydoc")
    @classmethod
    def ydoc_base64(cls, v):
        if v is None:
            return v
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("ydoc must be base64-encoded")
        return v

    def ydoc_bytes(self) -> Optional[bytes]:
        return base64.b64decode(self.ydoc) if self.ydoc is not None else None


class PageMove(BaseModel):
    parent_page_id: Optional[str] = Field(default=None, max_length=100)
    # explicit key, or let the server pick one from the neighbours
    position: Optional[str] = Field(default=None, max_length=200)
    after_page_id: Optional[str] = Field(default=None, max_length=100)
    before_page_id: Optional[str] = Field(default=None, max_length=100)


# ── Comments ──────────────────────────────────────────────────────


class PageCommentCreate(BaseModel):
    content: Any
    selection: Optional[str] = Field(default=None, max_length=2000)
    parent_comment_id: Optional[str] = Field(default=None, max_length=100)

    @field_validator("content")
    @classmethod
    def content_present(cls, v):
        if is_empty_content(v):
            raise ValueError("content is required")
        return v


class CommentCreate(PageCommentCreate):
    page_id: str = Field(min_length=1, max_length=100)


class CommentUpdate(BaseModel):
    content: Any

    @field_validator("content")
    @classmethod
    def content_present(cls, v):
        if is_empty_content(v):
            raise ValueError("content is required")
        return v


class CommentResolve(BaseModel):
    resolved: bool = True


# ── Users ─────────────────────────────────────────────────────────


class UserCreate(BaseModel):
    id: Optional[str] = Field(default=None, max_length=100)
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(default="", max_length=300)
    avatar_url: str = Field(default="", max_length=1000)
