"""Comment store — threads of comments attached to a page.

A top-level comment may quote the text selection it is anchored to and can
be resolved. Replies hang off a top-level comment, one level deep.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..db.migrations import get_db
from ..errors import NotFoundError, ValidationError
from ..events import (
    COMMENT_CREATED,
    COMMENT_DELETED,
    COMMENT_RESOLVED,
    COMMENT_UNRESOLVED,
    COMMENT_UPDATED,
    EventStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Comment:
    id: str = ""
    page_id: str = ""
    content: Any = None  # editor JSON document
    selection: Optional[str] = None
    creator_id: Optional[str] = None
    parent_comment_id: Optional[str] = None
    resolved_at: Optional[str] = None
    resolved_by_id: Optional[str] = None
    workspace_id: str = ""
    created_at: str = ""
    edited_at: Optional[str] = None
    replies: list = field(default_factory=list)

    @property
    def is_reply(self) -> bool:
        return self.parent_comment_id is not None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "page_id": self.page_id,
            "content": self.content,
            "selection": self.selection,
            "creator_id": self.creator_id,
            "parent_comment_id": self.parent_comment_id,
            "resolved_at": self.resolved_at,
            "resolved_by_id": self.resolved_by_id,
            "workspace_id": self.workspace_id,
            "created_at": self.created_at,
            "edited_at": self.edited_at,
        }
        if not self.is_reply:
            d["replies"] = [r.to_dict() for r in self.replies]
        return d


def _load_content(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row["id"],
        page_id=row["page_id"],
        content=_load_content(row["content"]),
        selection=row["selection"],
        creator_id=row["creator_id"],
        parent_comment_id=row["parent_comment_id"],
        resolved_at=row["resolved_at"],
        resolved_by_id=row["resolved_by_id"],
        workspace_id=row["workspace_id"],
        created_at=row["created_at"],
        edited_at=row["edited_at"],
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CommentStore:
    """CRUD and resolution for page comments."""

    def __init__(self, db_path: Path | str, events: Optional[EventStore] = None):
        self._db_path = Path(db_path)
        self._events = events or EventStore(self._db_path)

    def _get(self, db, comment_id: str, include_deleted: bool = False) -> Optional[Comment]:
        """Comment by id; comments of a soft-deleted page are hidden unless asked for."""
        sql = "SELECT c.* FROM comments c JOIN pages p ON p.id = c.page_id WHERE c.id = ?"
        if not include_deleted:
            sql += " AND p.deleted_at IS NULL"
        row = db.execute(sql, (comment_id,)).fetchone()
        return _row_to_comment(row) if row else None

    def find_by_id(self, comment_id: str, include_deleted: bool = False) -> Optional[Comment]:
        db = get_db(self._db_path)
        try:
            return self._get(db, comment_id, include_deleted)
        finally:
            db.close()

    def create(
        self,
        user_id: str,
        workspace_id: str,
        page_id: str,
        content: Any,
        selection: Optional[str] = None,
        parent_comment_id: Optional[str] = None,
    ) -> Comment:
        db = get_db(self._db_path)
        try:
            page = db.execute(
                "SELECT id FROM pages WHERE id = ? AND deleted_at IS NULL", (page_id,)
            ).fetchone()
            if not page:
                raise NotFoundError("Page not found")
            if parent_comment_id:
                parent = self._get(db, parent_comment_id)
                if not parent:
                    raise NotFoundError("Parent comment not found")
                if parent.page_id != page_id:
                    raise ValidationError("Parent comment belongs to another page")
                if parent.is_reply:
                    raise ValidationError("Cannot reply to a reply")
                selection = None

            comment = Comment(
                id=str(uuid.uuid4()),
                page_id=page_id,
                content=content,
                selection=selection,
                creator_id=user_id,
                parent_comment_id=parent_comment_id or None,
                workspace_id=workspace_id,
                created_at=_now(),
            )
            db.execute(
                """INSERT INTO comments (id, page_id, content, selection, creator_id,
                   parent_comment_id, workspace_id, created_at) VALUES (?,?,?,?,?,?,?,?)""",
                (
                    comment.id,
                    comment.page_id,
                    json.dumps(content),
                    comment.selection,
                    comment.creator_id,
                    comment.parent_comment_id,
                    comment.workspace_id,
                    comment.created_at,
                ),
            )
            db.commit()
        finally:
            db.close()

        self._events.emit_simple(
            COMMENT_CREATED, "comment", comment.id, actor=user_id,
            page_id=page_id, parent_comment_id=comment.parent_comment_id,
        )
        return comment

    def list_by_page(self, page_id: str) -> list[Comment]:
        """Top-level comments, oldest first, each carrying its replies."""
        db = get_db(self._db_path)
        try:
            rows = db.execute(
                "SELECT * FROM comments WHERE page_id = ? ORDER BY created_at ASC, rowid ASC",
                (page_id,),
            ).fetchall()
        finally:
            db.close()

        threads: dict[str, Comment] = {}
        replies: list[Comment] = []
        for r in rows:
            c = _row_to_comment(r)
            if c.is_reply:
                replies.append(c)
            else:
                threads[c.id] = c
        for r in replies:
            if r.parent_comment_id in threads:
                threads[r.parent_comment_id].replies.append(r)
        return list(threads.values())

    def update_content(self, comment_id: str, content: Any, user_id: Optional[str] = None) -> Comment:
        db = get_db(self._db_path)
        try:
            if not self._get(db, comment_id):
                raise NotFoundError("Comment not found")
            db.execute(
                "UPDATE comments SET content = ?, edited_at = ? WHERE id = ?",
                (json.dumps(content), _now(), comment_id),
            )
            db.commit()
            comment = self._get(db, comment_id)
        finally:
            db.close()
        self._events.emit_simple(
            COMMENT_UPDATED, "comment", comment_id, actor=user_id or "system",
            page_id=comment.page_id,
        )
        return comment

    def delete(self, comment_id: str, user_id: Optional[str] = None) -> None:
        """Delete a comment; replies of a top-level comment go with it."""
        db = get_db(self._db_path)
        try:
            comment = self._get(db, comment_id)
            if not comment:
                raise NotFoundError("Comment not found")
            db.execute("DELETE FROM comments WHERE id = ?", (comment_id,))
            db.commit()
        finally:
            db.close()
        logger.info(
            "Comment deleted: id=%s page=%s", comment_id, comment.page_id,
            extra={"comment_id": comment_id, "page_id": comment.page_id},
        )
        self._events.emit_simple(
            COMMENT_DELETED, "comment", comment_id, actor=user_id or "system",
            page_id=comment.page_id,
        )

    def resolve(self, comment_id: str, user_id: str, resolved: bool = True) -> Comment:
        """Mark a thread resolved (or reopen it). Replies cannot be resolved."""
        db = get_db(self._db_path)
        try:
            comment = self._get(db, comment_id)
            if not comment:
                raise NotFoundError("Comment not found")
            if comment.is_reply:
                raise ValidationError("Only top-level comments can be resolved")
            if resolved:
                db.execute(
                    "UPDATE comments SET resolved_at = ?, resolved_by_id = ? WHERE id = ?",
                    (_now(), user_id, comment_id),
                )
            else:
                db.execute(
                    "UPDATE comments SET resolved_at = NULL, resolved_by_id = NULL WHERE id = ?",
                    (comment_id,),
                )
            db.commit()
            comment = self._get(db, comment_id)
        finally:
            db.close()
        self._events.emit_simple(
            COMMENT_RESOLVED if resolved else COMMENT_UNRESOLVED,
            "comment", comment_id, actor=user_id, page_id=comment.page_id,
        )
        return comment
