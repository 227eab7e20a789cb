"""Pages — page tree API and the lazily loaded sidebar partial."""

from __future__ import annotations

import base64
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse

from ...errors import NotFoundError
from .helpers import _pages, _templates, _user_id, _workspace_id
from .input_models import PageCreate, PageMove, PageStateUpdate, PageUpdate

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/api/pages", response_class=JSONResponse)
async def api_page_create(request: Request, body: PageCreate):
    """API: create a page, appended to its sibling group."""
    page = _pages(request).create(
        _user_id(request),
        _workspace_id(request),
        space_id=body.space_id,
        title=body.title,
        icon=body.icon,
        parent_page_id=body.parent_page_id,
    )
    return JSONResponse(page.to_dict(), status_code=201)


@router.get("/api/pages/{page_id}", response_class=JSONResponse)
async def api_page_get(
    request: Request,
    page_id: str,
    include_content: bool = False,
    include_ydoc: bool = False,
):
    page = _pages(request).find_by_id(
        page_id, include_content=include_content, include_ydoc=include_ydoc
    )
    if not page:
        raise NotFoundError("Page not found")
    d = page.to_dict(include_content=include_content)
    if include_ydoc:
        d["ydoc"] = base64.b64encode(page.ydoc).decode() if page.ydoc else None
    return d


@router.patch("/api/pages/{page_id}", response_class=JSONResponse)
async def api_page_update(request: Request, page_id: str, body: PageUpdate):
    """API: rename / change icon. Only fields present in the body are written."""
    page = _pages(request).update(
        page_id, _user_id(request), body.model_dump(exclude_unset=True)
    )
    return page.to_dict()


@router.put("/api/pages/{page_id}/state", response_class=JSONResponse)
async def api_page_state(request: Request, page_id: str, body: PageStateUpdate):
    """API: store the document written by the collaboration engine."""
    _pages(request).update_state(
        page_id,
        content=body.content,
        text_content=body.text_content,
        ydoc=body.ydoc_bytes(),
        user_id=_user_id(request),
    )
    return {"success": True}


@router.post("/api/pages/{page_id}/move", response_class=JSONResponse)
async def api_page_move(request: Request, page_id: str, body: PageMove):
    page = _pages(request).move(
        page_id,
        parent_page_id=body.parent_page_id,
        position=body.position,
        after_page_id=body.after_page_id,
        before_page_id=body.before_page_id,
        user_id=_user_id(request),
    )
    return page.to_dict()


@router.delete("/api/pages/{page_id}", response_class=JSONResponse)
async def api_page_delete(request: Request, page_id: str, force: bool = False):
    """API: soft delete (page + subtree), or hard delete with ?force=true."""
    store = _pages(request)
    if force:
        store.force_delete(page_id, user_id=_user_id(request))
        return {"success": True, "deleted": None}
    count = store.delete(page_id, user_id=_user_id(request))
    return {"success": True, "deleted": count}


@router.post("/api/pages/{page_id}/restore", response_class=JSONResponse)
async def api_page_restore(request: Request, page_id: str):
    page = _pages(request).restore(page_id, user_id=_user_id(request))
    return page.to_dict()


@router.get("/api/pages/{page_id}/history", response_class=JSONResponse)
async def api_page_history(request: Request, page_id: str):
    """API: audit trail (create, update, move, delete...) of a page."""
    return {"events": [e.to_dict() for e in _pages(request).history(page_id)]}


# ── Space views ──────────────────────────────────────────────────


@router.get("/api/spaces/{space_id}/sidebar-pages", response_class=JSONResponse)
async def api_sidebar_pages(
    request: Request, space_id: str, page_id: Optional[str] = None, page: int = 1
):
    """API: one level of the page tree, ordered by position."""
    result = _pages(request).get_sidebar_pages(space_id, page_id=page_id, page=page)
    return result.to_dict(lambda p: p.to_dict())


@router.get("/api/spaces/{space_id}/recent", response_class=JSONResponse)
async def api_recent_pages(
    request: Request, space_id: str, page: int = 1, per_page: Optional[int] = None
):
    cfg = request.app.state.config.pages
    per_page = min(per_page or cfg.recent_per_page, cfg.max_per_page)
    result = _pages(request).get_recent_space_pages(space_id, page=page, per_page=per_page)
    return result.to_dict(lambda p: p.to_dict())


@router.get("/spaces/{space_id}/sidebar", response_class=HTMLResponse)
async def sidebar_partial(
    request: Request, space_id: str, page_id: Optional[str] = None, page: int = 1
):
    """Sidebar level (HTMX target). Children are fetched when a node expands."""
    result = _pages(request).get_sidebar_pages(space_id, page_id=page_id, page=page)
    return _templates(request).TemplateResponse(
        request,
        "_partial_sidebar.html",
        {
            "space_id": space_id,
            "parent_page_id": page_id,
            "pages": result.items,
            "meta": result.meta,
            "rows_only": result.meta.page > 1,
        },
    )
