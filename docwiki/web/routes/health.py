"""Health check."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...db.migrations import get_schema_version

router = APIRouter()


@router.get("/api/health", response_class=JSONResponse)
async def api_health(request: Request):
    cfg = request.app.state.config
    return {"status": "ok", "schema_version": get_schema_version(cfg.db_path)}
