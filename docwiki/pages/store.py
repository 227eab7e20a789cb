"""Page store — CRUD and hierarchy operations over the page tree.

Pages form a forest per space: ``parent_page_id`` points at the parent (NULL
for a root page) and ``position`` is a fractional index ordering a page among
its siblings. Inserting or moving a page writes a single row; siblings are
never renumbered.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..db.migrations import get_db
from ..db.pagination import PaginationResult, paginate
from ..errors import NotFoundError, ValidationError
from ..events import (
    PAGE_CREATED,
    PAGE_DELETED,
    PAGE_FORCE_DELETED,
    PAGE_MOVED,
    PAGE_RESTORED,
    PAGE_STATE_UPDATED,
    PAGE_UPDATED,
    Event,
    EventStore,
)
from .positions import JITTER_DIGITS, generate_jittered_key_between, validate_order_key

logger = logging.getLogger(__name__)

SIDEBAR_PER_PAGE = 250

_PAGE_COLUMNS = (
    "id, title, icon, position, parent_page_id, space_id, workspace_id, "
    "creator_id, last_updated_by_id, created_at, updated_at, deleted_at"
)

_UPDATABLE = ("title", "icon")


# ── Dataclasses ──────────────────────────────────────────────────────


@dataclass
class Page:
    """A wiki page: one node of a space's page tree."""

    id: str = ""
    title: Optional[str] = None
    icon: Optional[str] = None
    position: str = ""
    parent_page_id: Optional[str] = None  # None → root of the space
    space_id: str = ""
    workspace_id: str = ""
    creator_id: Optional[str] = None
    last_updated_by_id: Optional[str] = None
    content: Any = None  # editor JSON document, only loaded on request
    text_content: Optional[str] = None
    ydoc: Optional[bytes] = None  # collaboration state, only loaded on request
    created_at: str = ""
    updated_at: str = ""
    deleted_at: Optional[str] = None
    has_children: Optional[bool] = None  # sidebar rows only

    def to_dict(self, include_content: bool = False) -> dict:
        d = {
            "id": self.id,
            "title": self.title,
            "icon": self.icon,
            "position": self.position,
            "parent_page_id": self.parent_page_id,
            "space_id": self.space_id,
            "workspace_id": self.workspace_id,
            "creator_id": self.creator_id,
            "last_updated_by_id": self.last_updated_by_id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "deleted_at": self.deleted_at,
        }
        if self.has_children is not None:
            d["has_children"] = self.has_children
        if include_content:
            d["content"] = self.content
            d["text_content"] = self.text_content
        return d


# ── Row converters ───────────────────────────────────────────────────


def _row_to_page(row) -> Page:
    keys = row.keys() if hasattr(row, "keys") else []

    def col(name, default=None):
        return row[name] if name in keys else default

    content = col("content")
    has_children = col("has_children")
    return Page(
        id=row["id"],
        title=row["title"],
        icon=row["icon"],
        position=row["position"],
        parent_page_id=row["parent_page_id"],
        space_id=row["space_id"],
        workspace_id=col("workspace_id", ""),
        creator_id=row["creator_id"],
        last_updated_by_id=col("last_updated_by_id"),
        content=json.loads(content) if content else None,
        text_content=col("text_content"),
        ydoc=col("ydoc"),
        created_at=col("created_at", ""),
        updated_at=col("updated_at", ""),
        deleted_at=col("deleted_at"),
        has_children=bool(has_children) if has_children is not None else None,
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── PageStore ────────────────────────────────────────────────────────


class PageStore:
    """CRUD, ordering and parent/child moves for pages."""

    def __init__(
        self,
        db_path: Path | str,
        events: Optional[EventStore] = None,
        jitter_digits: int = JITTER_DIGITS,
        sidebar_per_page: int = SIDEBAR_PER_PAGE,
    ):
        self._db_path = Path(db_path)
        self._events = events or EventStore(self._db_path)
        self._jitter_digits = jitter_digits
        self._sidebar_per_page = sidebar_per_page

    # ── Lookups ──────────────────────────────────────────────────

    def find_by_id(
        self,
        page_id: str,
        include_content: bool = False,
        include_ydoc: bool = False,
        include_deleted: bool = False,
    ) -> Optional[Page]:
        db = get_db(self._db_path)
        try:
            return self._find(
                db, page_id, include_content, include_ydoc, include_deleted
            )
        finally:
            db.close()

    def _find(
        self,
        db,
        page_id: str,
        include_content: bool = False,
        include_ydoc: bool = False,
        include_deleted: bool = False,
    ) -> Optional[Page]:
        cols = _PAGE_COLUMNS
        if include_content:
            cols += ", content, text_content"
        if include_ydoc:
            cols += ", ydoc"
        sql = f"SELECT {cols} FROM pages WHERE id = ?"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        row = db.execute(sql, (page_id,)).fetchone()
        return _row_to_page(row) if row else None

    def _last_position(
        self, db, space_id: str, parent_page_id: Optional[str], exclude_id: str = ""
    ) -> Optional[str]:
        row = db.execute(
            "SELECT position FROM pages WHERE space_id = ? AND parent_page_id IS ? "
            "AND deleted_at IS NULL AND id != ? ORDER BY position DESC LIMIT 1",
            (space_id, parent_page_id, exclude_id),
        ).fetchone()
        return row["position"] if row else None

    def _adjacent_position(
        self, db, sibling: Page, exclude_id: str, after: bool
    ) -> Optional[str]:
        """Position of the sibling right after (or before) the given one."""
        op, order = (">", "ASC") if after else ("<", "DESC")
        row = db.execute(
            f"SELECT position FROM pages WHERE space_id = ? AND parent_page_id IS ? "
            f"AND deleted_at IS NULL AND id != ? AND position {op} ? "
            f"ORDER BY position {order} LIMIT 1",
            (sibling.space_id, sibling.parent_page_id, exclude_id, sibling.position),
        ).fetchone()
        return row["position"] if row else None

    def _subtree_ids(self, db, page_id: str, deleted_at: Optional[str] = None) -> list[str]:
        """Ids of page_id and its descendants.

        With deleted_at=None only live descendants are followed; otherwise
        only descendants soft-deleted with that exact stamp.
        """
        if deleted_at is None:
            cond, params = "p.deleted_at IS NULL", (page_id,)
        else:
            cond, params = "p.deleted_at = ?", (page_id, deleted_at)
        rows = db.execute(
            f"""WITH RECURSIVE subtree(id) AS (
                   SELECT id FROM pages WHERE id = ?
                   UNION
                   SELECT p.id FROM pages p JOIN subtree s ON p.parent_page_id = s.id
                   WHERE {cond}
               ) SELECT id FROM subtree""",
            params,
        ).fetchall()
        return [r["id"] for r in rows]

    def _key_between(self, a: Optional[str], b: Optional[str]) -> str:
        return generate_jittered_key_between(a, b, jitter_digits=self._jitter_digits)

    # ── Create / update ──────────────────────────────────────────

    def create(
        self,
        user_id: str,
        workspace_id: str,
        space_id: str,
        title: Optional[str] = None,
        icon: Optional[str] = None,
        parent_page_id: Optional[str] = None,
    ) -> Page:
        """Create a page at the end of its sibling group."""
        parent_page_id = parent_page_id or None
        db = get_db(self._db_path)
        try:
            if parent_page_id:
                parent = self._find(db, parent_page_id)
                if not parent:
                    raise NotFoundError("Parent page not found")
                if parent.space_id != space_id:
                    raise ValidationError("Parent page belongs to a different space")

            last = self._last_position(db, space_id, parent_page_id)
            now = _now()
            page = Page(
                id=str(uuid.uuid4()),
                title=title,
                icon=icon,
                position=self._key_between(last, None),
                parent_page_id=parent_page_id,
                space_id=space_id,
                workspace_id=workspace_id,
                creator_id=user_id,
                last_updated_by_id=user_id,
                created_at=now,
                updated_at=now,
            )
            db.execute(
                """INSERT INTO pages (id, title, icon, position, parent_page_id, space_id,
                   workspace_id, creator_id, last_updated_by_id, created_at, updated_at)
                   VALUES (?,?,?,?,?,?,?,?,?,?,?)""",
                (
                    page.id,
                    page.title,
                    page.icon,
                    page.position,
                    page.parent_page_id,
                    page.space_id,
                    page.workspace_id,
                    page.creator_id,
                    page.last_updated_by_id,
                    page.created_at,
                    page.updated_at,
                ),
            )
            db.commit()
        finally:
            db.close()

        logger.info(
            "Page created: id=%s space=%s parent=%s position=%s",
            page.id, space_id, parent_page_id, page.position,
        )
        self._events.emit_simple(
            PAGE_CREATED, "page", page.id, actor=user_id,
            space_id=space_id, parent_page_id=parent_page_id, position=page.position,
        )
        return page

    def update(self, page_id: str, user_id: str, changes: dict) -> Page:
        """Update title/icon in place. Position and parent are untouched."""
        fields = {k: v for k, v in changes.items() if k in _UPDATABLE}
        db = get_db(self._db_path)
        try:
            if not self._find(db, page_id):
                raise NotFoundError("Page not found")
            sets = [f"{k} = ?" for k in fields] + ["last_updated_by_id = ?", "updated_at = ?"]
            db.execute(
                f"UPDATE pages SET {', '.join(sets)} WHERE id = ?",
                (*fields.values(), user_id, _now(), page_id),
            )
            db.commit()
            page = self._find(db, page_id)
        finally:
            db.close()

        self._events.emit_simple(
            PAGE_UPDATED, "page", page_id, actor=user_id, fields=sorted(fields)
        )
        return page

    def update_state(
        self,
        page_id: str,
        content: Any,
        text_content: Optional[str],
        ydoc: Optional[bytes],
        user_id: Optional[str] = None,
    ) -> None:
        """Persist the document state written by the collaboration engine."""
        sets = ["content = ?", "text_content = ?", "ydoc = ?", "updated_at = ?"]
        params: list = [
            json.dumps(content) if content is not None else None,
            text_content,
            ydoc,
            _now(),
        ]
        if user_id:
            sets.append("last_updated_by_id = ?")
            params.append(user_id)
        db = get_db(self._db_path)
        try:
            cur = db.execute(
                f"UPDATE pages SET {', '.join(sets)} WHERE id = ? AND deleted_at IS NULL",
                (*params, page_id),
            )
            db.commit()
            if cur.rowcount == 0:
                raise NotFoundError("Page not found")
        finally:
            db.close()

        self._events.emit_simple(
            PAGE_STATE_UPDATED, "page", page_id, actor=user_id or "system",
            text_length=len(text_content or ""),
        )

    # ── Tree views ───────────────────────────────────────────────

    def get_sidebar_pages(
        self, space_id: str, page_id: Optional[str] = None, page: int = 1
    ) -> PaginationResult:
        """One level of the tree: roots of the space, or children of page_id."""
        db = get_db(self._db_path)
        try:
            return paginate(
                db,
                f"""SELECT {_PAGE_COLUMNS},
                       EXISTS (SELECT 1 FROM pages AS child
                               WHERE child.parent_page_id = pages.id
                               AND child.deleted_at IS NULL) AS has_children
                   FROM pages
                   WHERE space_id = ? AND parent_page_id IS ? AND deleted_at IS NULL
                   ORDER BY position ASC, id ASC""",
                (space_id, page_id or None),
                page=page,
                per_page=self._sidebar_per_page,
                row_factory=_row_to_page,
            )
        finally:
            db.close()

    def get_recent_space_pages(
        self, space_id: str, page: int = 1, per_page: int = 20
    ) -> PaginationResult:
        """Live pages of a space, most recently updated first."""
        db = get_db(self._db_path)
        try:
            return paginate(
                db,
                f"SELECT {_PAGE_COLUMNS} FROM pages WHERE space_id = ? "
                "AND deleted_at IS NULL ORDER BY updated_at DESC, id ASC",
                (space_id,),
                page=page,
                per_page=per_page,
                row_factory=_row_to_page,
            )
        finally:
            db.close()

    # ── Move ─────────────────────────────────────────────────────

    def move(
        self,
        page_id: str,
        parent_page_id: Optional[str] = None,
        position: Optional[str] = None,
        after_page_id: Optional[str] = None,
        before_page_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Page:
        """Move a page to a gap of its (new) sibling group.

        Either an explicit ``position`` key is given, or the key is generated
        from the destination gap: right after ``after_page_id`` and/or right
        before ``before_page_id``; with neither, the page goes last.
        All checks run before the single UPDATE.
        """
        if position is not None:
            try:
                validate_order_key(position)
            except ValueError:
                raise ValidationError("Invalid move position")

        parent_page_id = parent_page_id or None
        db = get_db(self._db_path)
        try:
            moved = self._find(db, page_id)
            if not moved:
                raise NotFoundError("Moved page not found")

            parent_changed = moved.parent_page_id != parent_page_id
            if parent_changed and parent_page_id:
                parent = self._find(db, parent_page_id)
                if not parent:
                    raise NotFoundError("Parent page not found")
                if parent.space_id != moved.space_id:
                    raise ValidationError("Parent page belongs to a different space")
                if parent_page_id in self._subtree_ids(db, page_id):
                    raise ValidationError(
                        "Cannot move a page under itself or one of its descendants"
                    )

            if position is None:
                position = self._gap_position(
                    db, moved, parent_page_id, after_page_id, before_page_id
                )

            if parent_changed:
                db.execute(
                    "UPDATE pages SET position = ?, parent_page_id = ? WHERE id = ?",
                    (position, parent_page_id, page_id),
                )
            else:
                db.execute(
                    "UPDATE pages SET position = ? WHERE id = ?", (position, page_id)
                )
            db.commit()
            page = self._find(db, page_id)
        finally:
            db.close()

        logger.info(
            "Page moved: id=%s parent=%s->%s position=%s->%s",
            page_id, moved.parent_page_id, parent_page_id, moved.position, position,
            extra={"page_id": page_id, "space_id": moved.space_id},
        )
        self._events.emit(
            Event(
                event_type=PAGE_MOVED,
                aggregate_type="page",
                aggregate_id=page_id,
                actor=user_id or "system",
                payload={
                    "from_parent_page_id": moved.parent_page_id,
                    "to_parent_page_id": parent_page_id,
                    "from_position": moved.position,
                    "to_position": position,
                },
            )
        )
        return page

    def _gap_position(
        self,
        db,
        moved: Page,
        parent_page_id: Optional[str],
        after_page_id: Optional[str],
        before_page_id: Optional[str],
    ) -> str:
        def sibling(pid: str) -> Page:
            if pid == moved.id:
                raise ValidationError("A page cannot be positioned relative to itself")
            s = self._find(db, pid)
            if not s or s.space_id != moved.space_id or s.parent_page_id != parent_page_id:
                raise ValidationError(f"Page {pid} is not in the destination sibling group")
            return s

        after = sibling(after_page_id) if after_page_id else None
        before = sibling(before_page_id) if before_page_id else None

        if after and before:
            if after.position > before.position:
                raise ValidationError("Invalid move position")
            if after.position == before.position:
                # tied neighbours: land after both of them
                lo, hi = after.position, self._adjacent_position(db, after, moved.id, after=True)
            else:
                lo, hi = after.position, before.position
        elif after:
            lo, hi = after.position, self._adjacent_position(db, after, moved.id, after=True)
        elif before:
            lo, hi = self._adjacent_position(db, before, moved.id, after=False), before.position
        else:
            lo, hi = self._last_position(db, moved.space_id, parent_page_id, moved.id), None

        try:
            return self._key_between(lo, hi)
        except ValueError:
            raise ValidationError("Invalid move position")

    # ── Delete / restore ─────────────────────────────────────────

    def force_delete(self, page_id: str, user_id: Optional[str] = None) -> None:
        """Hard delete. Descendants and comments go with it (FK cascade)."""
        db = get_db(self._db_path)
        try:
            cur = db.execute("DELETE FROM pages WHERE id = ?", (page_id,))
            db.commit()
            if cur.rowcount == 0:
                raise NotFoundError("Page not found")
        finally:
            db.close()
        logger.info("Page force-deleted: id=%s", page_id, extra={"page_id": page_id})
        self._events.emit_simple(PAGE_FORCE_DELETED, "page", page_id, actor=user_id or "system")

    def delete(self, page_id: str, user_id: Optional[str] = None) -> int:
        """Soft-delete a page and its live subtree. Returns the number of pages."""
        db = get_db(self._db_path)
        try:
            if not self._find(db, page_id):
                raise NotFoundError("Page not found")
            ids = self._subtree_ids(db, page_id)
            stamp = _now()
            db.executemany(
                "UPDATE pages SET deleted_at = ? WHERE id = ?",
                [(stamp, i) for i in ids],
            )
            db.commit()
        finally:
            db.close()
        logger.info(
            "Page deleted: id=%s subtree=%d", page_id, len(ids), extra={"page_id": page_id}
        )
        self._events.emit_simple(
            PAGE_DELETED, "page", page_id, actor=user_id or "system", count=len(ids)
        )
        return len(ids)

    def restore(self, page_id: str, user_id: Optional[str] = None) -> Page:
        """Undo delete(): recover the page and the descendants deleted with it.

        The page goes back to the end of its parent's children, or becomes a
        root of its space when the parent is no longer live.
        """
        db = get_db(self._db_path)
        try:
            page = self._find(db, page_id, include_deleted=True)
            if not page:
                raise NotFoundError("Page not found")
            if page.deleted_at is None:
                return page

            ids = self._subtree_ids(db, page_id, deleted_at=page.deleted_at)
            parent_page_id = page.parent_page_id
            if parent_page_id and not self._find(db, parent_page_id):
                logger.warning(
                    "Restoring page %s as a root: parent %s is deleted",
                    page_id, parent_page_id,
                )
                parent_page_id = None
            position = self._key_between(
                self._last_position(db, page.space_id, parent_page_id), None
            )
            db.executemany(
                "UPDATE pages SET deleted_at = NULL WHERE id = ?", [(i,) for i in ids]
            )
            db.execute(
                "UPDATE pages SET parent_page_id = ?, position = ? WHERE id = ?",
                (parent_page_id, position, page_id),
            )
            db.commit()
            page = self._find(db, page_id)
        finally:
            db.close()

        logger.info(
            "Page restored: id=%s subtree=%d", page_id, len(ids), extra={"page_id": page_id}
        )
        self._events.emit_simple(
            PAGE_RESTORED, "page", page_id, actor=user_id or "system",
            count=len(ids), parent_page_id=parent_page_id, position=position,
        )
        return page

    # ── History ──────────────────────────────────────────────────

    def history(self, page_id: str) -> list[Event]:
        """Audit trail of a page, oldest first."""
        return self._events.replay(page_id)
