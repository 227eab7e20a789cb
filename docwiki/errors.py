"""Domain errors raised by the stores and mapped to HTTP responses by the server."""

from __future__ import annotations


class DocwikiError(Exception):
    """Base error for docwiki operations."""

    status_code = 400

    def __init__(self, message: str, code: str = "error"):
        super().__init__(message)
        self.message = message
        self.code = code


class NotFoundError(DocwikiError):
    """A page, comment or user does not exist (or is deleted)."""

    status_code = 404

    def __init__(self, message: str, code: str = "not_found"):
        super().__init__(message, code)


class ValidationError(DocwikiError):
    """A precondition on the request failed; nothing was written."""

    def __init__(self, message: str, code: str = "validation_error"):
        super().__init__(message, code)
