"""Workspace middleware — injects acting user and workspace into request.state."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware

from ...log_config import user_id_var, workspace_id_var


class WorkspaceMiddleware(BaseHTTPMiddleware):
    """Resolve who is acting, and in which workspace.

    Headers win over cookies; without either the configured identity
    defaults apply. Both values are also exposed to the log formatter.
    """

    async def dispatch(self, request, call_next):
        identity = request.app.state.config.identity
        request.state.workspace_id = (
            request.headers.get("X-Workspace-ID")
            or request.cookies.get("workspace_id")
            or identity.default_workspace
        )
        request.state.user_id = (
            request.headers.get("X-User-ID")
            or request.cookies.get("user_id")
            or identity.default_user
        )
        user_token = user_id_var.set(request.state.user_id)
        ws_token = workspace_id_var.set(request.state.workspace_id)
        try:
            return await call_next(request)
        finally:
            workspace_id_var.reset(ws_token)
            user_id_var.reset(user_token)
