"""docwiki — FastAPI web server.

JSON API over the page tree and comment threads, plus the HTMX partials
(sidebar levels, comment items) rendered with Jinja2.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates

from . import __version__
from .comments.content import comment_text
from .comments.store import CommentStore
from .config import DocwikiConfig, get_config
from .db.migrations import init_db
from .errors import DocwikiError
from .events import EventStore
from .log_config import setup_logging, trace_id_var
from .pages.store import PageStore
from .users.store import UserStore

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "web" / "templates"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    cfg = app.state.config
    setup_logging(level=cfg.logging.level, json_format=cfg.logging.json_format)
    logger.info("Starting docwiki on port %s", cfg.server.port)
    init_db(cfg.db_path).close()
    yield
    logger.info("docwiki stopped")


# ── Template filters ────────────────────────────────────────────────


def _avatar_color(seed: str) -> str:
    """Deterministic HSL color from a name or email."""
    h = sum(ord(c) * (i + 1) for i, c in enumerate(str(seed))) % 360
    return f"hsl({h},55%,42%)"


def _relative_time(ts) -> str:
    """Human-readable relative time from ISO timestamp string."""
    if not ts:
        return ""
    try:
        dt = datetime.fromisoformat(str(ts).replace("Z", "+00:00"))
    except ValueError:
        return str(ts)[:10]
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    diff = (datetime.now(timezone.utc) - dt).total_seconds()
    if diff < 60:
        return "just now"
    if diff < 3600:
        return f"{int(diff // 60)}m ago"
    if diff < 86400:
        return f"{int(diff // 3600)}h ago"
    if diff < 2592000:
        return f"{int(diff // 86400)}d ago"
    return str(ts)[:10]


# ── App factory ─────────────────────────────────────────────────────


def create_app(cfg: Optional[DocwikiConfig] = None) -> FastAPI:
    """Application factory."""
    cfg = cfg or get_config()
    app = FastAPI(
        title="docwiki",
        description="Hierarchical wiki pages with fractional ordering and comment threads.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = cfg

    # ── Stores ──────────────────────────────────────────────────────────
    events = EventStore(cfg.db_path)
    app.state.events = events
    app.state.pages = PageStore(
        cfg.db_path,
        events=events,
        jitter_digits=cfg.pages.jitter_digits,
        sidebar_per_page=cfg.pages.sidebar_per_page,
    )
    app.state.comments = CommentStore(cfg.db_path, events=events)
    app.state.users = UserStore(cfg.db_path)

    # ── Acting user / workspace ─────────────────────────────────────────
    from .web.middleware.workspace import WorkspaceMiddleware

    app.add_middleware(WorkspaceMiddleware)

    # ── Security: Response headers ──────────────────────────────────────
    @app.middleware("http")
    async def security_headers(request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline' https://unpkg.com; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: https:; "
            "connect-src 'self'; "
            "frame-ancestors 'none'"
        )
        return response

    # ── Trace ID middleware ─────────────────────────────────────────────
    @app.middleware("http")
    async def trace_id_middleware(request, call_next):
        tid = request.headers.get("X-Trace-ID", str(uuid.uuid4())[:8])
        token = trace_id_var.set(tid)
        try:
            response = await call_next(request)
        finally:
            trace_id_var.reset(token)
        response.headers["X-Trace-ID"] = tid
        return response

    # ── Errors ──────────────────────────────────────────────────────────
    @app.exception_handler(DocwikiError)
    async def docwiki_error_handler(request: Request, exc: DocwikiError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            {"error": exc.message, "code": exc.code}, status_code=exc.status_code
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            {
                "error": "Invalid request",
                "code": "invalid_request",
                "details": jsonable_encoder(exc.errors()),
            },
            status_code=422,
        )

    # ── Templates ───────────────────────────────────────────────────────
    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    templates.env.filters["avatar_color"] = _avatar_color
    templates.env.filters["relative_time"] = _relative_time
    templates.env.filters["comment_text"] = comment_text
    app.state.templates = templates

    from .web.routes import router as web_router

    app.include_router(web_router)

    return app


app = create_app()


def main():
    """Run the server with uvicorn (``docwiki`` console script)."""
    import uvicorn

    cfg = get_config()
    uvicorn.run(
        "docwiki.server:app",
        host=cfg.server.host,
        port=cfg.server.port,
        reload=cfg.server.reload,
        workers=cfg.server.workers,
    )


if __name__ == "__main__":
    main()
