"""Comments — page comment threads (JSON API + HTMX item partials)."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from ...comments.content import is_empty_content, text_to_doc
from ...errors import DocwikiError, NotFoundError, ValidationError
from .helpers import _comments, _pages, _parse_body, _templates, _user_id, _users, _workspace_id
from .input_models import CommentCreate, CommentResolve, CommentUpdate, PageCommentCreate

router = APIRouter()
logger = logging.getLogger(__name__)


def _form_content(raw) -> dict:
    """Editor content posted by the item form: serialized JSON or plain text."""
    raw = (raw or "").replace("\r\n", "\n")
    if not raw.strip():
        raise ValidationError("Comment cannot be empty")
    try:
        doc = json.loads(raw)
    except ValueError:
        doc = None
    if not isinstance(doc, dict):
        doc = text_to_doc(raw.strip())
    if is_empty_content(doc):
        raise ValidationError("Comment cannot be empty")
    return doc


def _get_comment(request: Request, comment_id: str):
    comment = _comments(request).find_by_id(comment_id)
    if not comment:
        raise NotFoundError("Comment not found")
    return comment


def _render_item(request: Request, comment, editing: bool = False, error: str = ""):
    creators = _users(request).get_users([comment.creator_id])
    return _templates(request).TemplateResponse(
        request,
        "_partial_comment.html",
        {
            "comment": comment,
            "creator": creators.get(comment.creator_id),
            "editing": editing,
            "error": error,
        },
    )


# ── JSON API ─────────────────────────────────────────────────────


@router.get("/api/pages/{page_id}/comments", response_class=JSONResponse)
async def api_page_comments(request: Request, page_id: str):
    """API: comment threads of a page, oldest first, replies nested."""
    if not _pages(request).find_by_id(page_id):
        raise NotFoundError("Page not found")
    return {"comments": [c.to_dict() for c in _comments(request).list_by_page(page_id)]}


@router.post("/api/pages/{page_id}/comments", response_class=JSONResponse)
async def api_page_comment_create(request: Request, page_id: str, body: PageCommentCreate):
    """API: same as POST /api/comments with the page taken from the path."""
    return _create(request, page_id, body)


@router.post("/api/comments", response_class=JSONResponse)
async def api_comment_create(request: Request, body: CommentCreate):
    return _create(request, body.page_id, body)


def _create(request: Request, page_id: str, body: PageCommentCreate):
    comment = _comments(request).create(
        _user_id(request),
        _workspace_id(request),
        page_id=page_id,
        content=body.content,
        selection=body.selection,
        parent_comment_id=body.parent_comment_id,
    )
    return JSONResponse(comment.to_dict(), status_code=201)


@router.get("/api/comments/{comment_id}", response_class=JSONResponse)
async def api_comment_get(request: Request, comment_id: str):
    return _get_comment(request, comment_id).to_dict()


@router.patch("/api/comments/{comment_id}", response_class=JSONResponse)
async def api_comment_update(request: Request, comment_id: str, body: CommentUpdate):
    comment = _comments(request).update_content(
        comment_id, body.content, user_id=_user_id(request)
    )
    return comment.to_dict()


@router.delete("/api/comments/{comment_id}", response_class=JSONResponse)
async def api_comment_delete(request: Request, comment_id: str):
    _comments(request).delete(comment_id, user_id=_user_id(request))
    return {"success": True}


@router.post("/api/comments/{comment_id}/resolve", response_class=JSONResponse)
async def api_comment_resolve(request: Request, comment_id: str, body: CommentResolve):
    comment = _comments(request).resolve(
        comment_id, _user_id(request), resolved=body.resolved
    )
    return comment.to_dict()


# ── HTMX partials ────────────────────────────────────────────────


@router.get("/pages/{page_id}/comments", response_class=HTMLResponse)
async def comments_partial(request: Request, page_id: str):
    """Comment panel of a page: threads with their replies."""
    if not _pages(request).find_by_id(page_id):
        raise NotFoundError("Page not found")
    threads = _comments(request).list_by_page(page_id)
    author_ids = [c.creator_id for t in threads for c in [t, *t.replies]]
    return _templates(request).TemplateResponse(
        request,
        "_partial_comments.html",
        {
            "page_id": page_id,
            "threads": threads,
            "users": _users(request).get_users(author_ids),
        },
    )


@router.get("/comments/{comment_id}", response_class=HTMLResponse)
async def comment_item(request: Request, comment_id: str):
    return _render_item(request, _get_comment(request, comment_id))


@router.get("/comments/{comment_id}/edit", response_class=HTMLResponse)
async def comment_edit(request: Request, comment_id: str):
    return _render_item(request, _get_comment(request, comment_id), editing=True)


@router.post("/comments/{comment_id}", response_class=HTMLResponse)
async def comment_save(request: Request, comment_id: str):
    """Save from the item editor. On failure the editor stays open with the error."""
    comment = _get_comment(request, comment_id)
    form = await _parse_body(request)
    try:
        content = _form_content(form.get("content"))
        comment = _comments(request).update_content(
            comment_id, content, user_id=_user_id(request)
        )
    except DocwikiError as e:
        logger.warning("Comment %s not saved: %s", comment_id, e.message)
        return _render_item(request, comment, editing=True, error=e.message)
    return _render_item(request, comment)


@router.post("/comments/{comment_id}/resolve", response_class=HTMLResponse)
async def comment_resolve_toggle(request: Request, comment_id: str):
    comment = _get_comment(request, comment_id)
    comment = _comments(request).resolve(
        comment_id, _user_id(request), resolved=comment.resolved_at is None
    )
    return _render_item(request, comment)


@router.delete("/comments/{comment_id}", response_class=HTMLResponse)
async def comment_delete(request: Request, comment_id: str):
    """Delete from the item menu; the empty body removes the item from the DOM."""
    _comments(request).delete(comment_id, user_id=_user_id(request))
    response = HTMLResponse("")
    # lets the editor drop the comment mark anchored in the page body
    response.headers["HX-Trigger"] = json.dumps({"commentDeleted": {"id": comment_id}})
    return response
