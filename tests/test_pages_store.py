"""Tests for the page store: ordering, moves, soft delete and restore."""
import sqlite3

import pytest

from docwiki.errors import NotFoundError, ValidationError
from docwiki.events import PAGE_CREATED, PAGE_DELETED, PAGE_MOVED, PAGE_RESTORED
from docwiki.pages.positions import is_valid_order_key


def _mk(pages, title, parent=None, space="s-1"):
    return pages.create("u-1", "w-1", space, title=title, parent_page_id=parent)


def _titles(pages, space="s-1", parent=None):
    return [p.title for p in pages.get_sidebar_pages(space, page_id=parent).items]


def _raw_row(db_path, page_id):
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    try:
        return dict(conn.execute("SELECT * FROM pages WHERE id = ?", (page_id,)).fetchone())
    finally:
        conn.close()


class TestCreate:
    def test_first_page_gets_valid_key(self, pages):
        p = _mk(pages, "A")
        assert is_valid_order_key(p.position)
        assert p.parent_page_id is None
        assert p.creator_id == "u-1"

    def test_append_orders_by_creation(self, pages):
        for t in ["A", "B", "C", "D"]:
            _mk(pages, t)
        assert _titles(pages) == ["A", "B", "C", "D"]

    def test_second_page_sorts_after_first(self, pages):
        a = _mk(pages, "A")
        b = _mk(pages, "B")
        assert a.position < b.position

    def test_child_group_independent(self, pages):
        root = _mk(pages, "root")
        _mk(pages, "other-root")
        c1 = _mk(pages, "c1", parent=root.id)
        c2 = _mk(pages, "c2", parent=root.id)
        assert c1.parent_page_id == root.id
        assert _titles(pages, parent=root.id) == ["c1", "c2"]
        assert c1.position < c2.position

    def test_unknown_parent_not_found(self, pages):
        with pytest.raises(NotFoundError, match="Parent page not found"):
            _mk(pages, "orphan", parent="nope")
        assert _titles(pages) == []

    def test_parent_in_other_space_rejected(self, pages):
        root = _mk(pages, "root", space="s-1")
        with pytest.raises(ValidationError):
            _mk(pages, "x", parent=root.id, space="s-2")

    def test_emits_event(self, pages, events):
        p = _mk(pages, "A")
        ev = events.query(aggregate_id=p.id)
        assert [e.event_type for e in ev] == [PAGE_CREATED]
        assert ev[0].actor == "u-1"


class TestFindAndUpdate:
    def test_find_by_id(self, pages):
        p = _mk(pages, "A")
        found = pages.find_by_id(p.id)
        assert found.title == "A"
        assert found.content is None

    def test_find_unknown(self, pages):
        assert pages.find_by_id("missing") is None

    def test_update_title_keeps_position(self, pages):
        p = _mk(pages, "A")
        updated = pages.update(p.id, "u-2", {"title": "A2", "position": "zz"})
        assert updated.title == "A2"
        assert updated.position == p.position
        assert updated.last_updated_by_id == "u-2"

    def test_update_unknown(self, pages):
        with pytest.raises(NotFoundError):
            pages.update("missing", "u-1", {"title": "x"})

    def test_update_state(self, pages):
        p = _mk(pages, "A")
        doc = {"type": "doc", "content": [{"type": "paragraph"}]}
        pages.update_state(p.id, doc, "hello", b"\x01\x02", user_id="u-2")
        found = pages.find_by_id(p.id, include_content=True, include_ydoc=True)
        assert found.content == doc
        assert found.text_content == "hello"
        assert found.ydoc == b"\x01\x02"
        assert found.last_updated_by_id == "u-2"

    def test_update_state_unknown(self, pages):
        with pytest.raises(NotFoundError):
            pages.update_state("missing", None, None, None)


class TestSidebar:
    def test_has_children(self, pages):
        root = _mk(pages, "root")
        leaf = _mk(pages, "leaf")
        _mk(pages, "child", parent=root.id)
        items = {p.id: p for p in pages.get_sidebar_pages("s-1").items}
        assert items[root.id].has_children is True
        assert items[leaf.id].has_children is False

    def test_rows_carry_full_metadata(self, pages):
        p = _mk(pages, "A")
        row = pages.get_sidebar_pages("s-1").items[0]
        assert row.created_at == p.created_at
        assert row.updated_at == p.updated_at
        assert row.workspace_id == "w-1"
        assert row.last_updated_by_id == "u-1"

    def test_other_space_hidden(self, pages):
        _mk(pages, "A", space="s-1")
        _mk(pages, "B", space="s-2")
        assert _titles(pages, space="s-2") == ["B"]

    def test_pagination(self, db_path, events):
        from docwiki.pages.store import PageStore

        small = PageStore(db_path, events=events, sidebar_per_page=2)
        for t in "ABCDE":
            _mk(small, t)
        first = small.get_sidebar_pages("s-1")
        assert [p.title for p in first.items] == ["A", "B"]
        assert first.meta.has_next_page and not first.meta.has_prev_page
        last = small.get_sidebar_pages("s-1", page=3)
        assert [p.title for p in last.items] == ["E"]
        assert not last.meta.has_next_page and last.meta.has_prev_page

    def test_recent_pages_newest_first(self, pages):
        a = _mk(pages, "A")
        _mk(pages, "B")
        pages.update(a.id, "u-1", {"title": "A*"})
        recent = pages.get_recent_space_pages("s-1")
        assert [p.title for p in recent.items] == ["A*", "B"]


class TestMove:
    def test_move_within_parent_only_changes_position(self, pages, db_path):
        a, b, c = _mk(pages, "A"), _mk(pages, "B"), _mk(pages, "C")
        before = _raw_row(db_path, c.id)
        moved = pages.move(c.id, after_page_id=a.id)
        after = _raw_row(db_path, c.id)
        assert _titles(pages) == ["A", "C", "B"]
        assert a.position < moved.position < b.position
        assert after["parent_page_id"] is None
        assert {k for k in before if before[k] != after[k]} == {"position"}

    def test_move_before(self, pages):
        a, b, c = _mk(pages, "A"), _mk(pages, "B"), _mk(pages, "C")
        pages.move(c.id, before_page_id=a.id)
        assert _titles(pages) == ["C", "A", "B"]

    def test_move_between_neighbours(self, pages):
        a, b, c = _mk(pages, "A"), _mk(pages, "B"), _mk(pages, "C")
        pages.move(a.id, after_page_id=b.id, before_page_id=c.id)
        assert _titles(pages) == ["B", "A", "C"]

    def test_move_to_end(self, pages):
        a, _, _ = _mk(pages, "A"), _mk(pages, "B"), _mk(pages, "C")
        pages.move(a.id)
        assert _titles(pages) == ["B", "C", "A"]

    def test_move_with_explicit_position(self, pages):
        a, b = _mk(pages, "A"), _mk(pages, "B")
        moved = pages.move(b.id, position="Zz")
        assert moved.position == "Zz"
        assert _titles(pages) == ["B", "A"]

    def test_move_to_new_parent(self, pages):
        p1, p2 = _mk(pages, "P1"), _mk(pages, "P2")
        x = _mk(pages, "x", parent=p1.id)
        _mk(pages, "y", parent=p2.id)
        moved = pages.move(x.id, parent_page_id=p2.id)
        assert moved.parent_page_id == p2.id
        assert _titles(pages, parent=p2.id) == ["y", "x"]
        assert _titles(pages, parent=p1.id) == []

    def test_move_to_root(self, pages):
        p = _mk(pages, "P")
        x = _mk(pages, "x", parent=p.id)
        moved = pages.move(x.id, parent_page_id=None)
        assert moved.parent_page_id is None
        assert _titles(pages) == ["P", "x"]

    def test_move_into_empty_group(self, pages):
        p, q = _mk(pages, "P"), _mk(pages, "Q")
        moved = pages.move(q.id, parent_page_id=p.id)
        assert is_valid_order_key(moved.position)
        assert _titles(pages, parent=p.id) == ["Q"]

    @pytest.mark.parametrize("bad", ["", "a", "a00", "!!", "a0 "])
    def test_invalid_position_rejected_without_mutation(self, pages, db_path, bad):
        p1, p2 = _mk(pages, "P1"), _mk(pages, "P2")
        x = _mk(pages, "x", parent=p1.id)
        before = _raw_row(db_path, x.id)
        with pytest.raises(ValidationError, match="Invalid move position"):
            pages.move(x.id, parent_page_id=p2.id, position=bad)
        assert _raw_row(db_path, x.id) == before

    def test_unknown_page(self, pages):
        with pytest.raises(NotFoundError, match="Moved page not found"):
            pages.move("missing")

    def test_unknown_parent_without_mutation(self, pages, db_path):
        x = _mk(pages, "x")
        before = _raw_row(db_path, x.id)
        with pytest.raises(NotFoundError, match="Parent page not found"):
            pages.move(x.id, parent_page_id="nope", position="a5")
        assert _raw_row(db_path, x.id) == before

    def test_cannot_move_under_descendant(self, pages):
        a = _mk(pages, "A")
        b = _mk(pages, "B", parent=a.id)
        c = _mk(pages, "C", parent=b.id)
        with pytest.raises(ValidationError):
            pages.move(a.id, parent_page_id=c.id)
        with pytest.raises(ValidationError):
            pages.move(a.id, parent_page_id=a.id)

    def test_neighbour_from_other_group_rejected(self, pages):
        p = _mk(pages, "P")
        x = _mk(pages, "x", parent=p.id)
        y = _mk(pages, "y")
        with pytest.raises(ValidationError):
            pages.move(y.id, after_page_id=x.id)

    def test_relative_to_itself_rejected(self, pages):
        a = _mk(pages, "A")
        with pytest.raises(ValidationError):
            pages.move(a.id, after_page_id=a.id)

    def test_emits_event(self, pages, events):
        p = _mk(pages, "P")
        x = _mk(pages, "x")
        pages.move(x.id, parent_page_id=p.id)
        ev = events.query(aggregate_id=x.id, event_type=PAGE_MOVED)
        assert len(ev) == 1
        assert ev[0].payload["from_parent_page_id"] is None
        assert ev[0].payload["to_parent_page_id"] == p.id


class TestDuplicatePositions:
    def _tied(self, pages):
        a, b, c = _mk(pages, "A"), _mk(pages, "B"), _mk(pages, "C")
        pages.move(b.id, position=a.position)
        return a, b, c

    def test_sidebar_breaks_tie_by_id(self, pages):
        a, b, c = self._tied(pages)
        items = pages.get_sidebar_pages("s-1").items
        assert [p.id for p in items[:2]] == sorted([a.id, b.id])
        assert items[2].id == c.id

    def test_move_between_tied_neighbours(self, pages):
        a, b, c = self._tied(pages)
        d = _mk(pages, "D")
        moved = pages.move(d.id, after_page_id=a.id, before_page_id=b.id)
        assert a.position < moved.position < c.position
        assert _titles(pages)[2:] == ["D", "C"]

    def test_move_after_tied_pair(self, pages):
        a, b, c = self._tied(pages)
        moved = pages.move(c.id, after_page_id=a.id)
        assert moved.position > a.position
        assert _titles(pages)[-1] == "C"

    def test_move_before_tied_pair(self, pages):
        a, b, c = self._tied(pages)
        moved = pages.move(c.id, before_page_id=b.id)
        assert moved.position < a.position
        assert _titles(pages)[0] == "C"

    def test_append_after_tied_pair(self, pages):
        a, b, c = self._tied(pages)
        pages.move(c.id, before_page_id=a.id)
        moved = pages.move(c.id)
        assert moved.position > a.position
        assert _titles(pages)[-1] == "C"

    def test_inverted_neighbours_rejected(self, pages):
        a, b, c = _mk(pages, "A"), _mk(pages, "B"), _mk(pages, "C")
        with pytest.raises(ValidationError, match="Invalid move position"):
            pages.move(a.id, after_page_id=c.id, before_page_id=b.id)


class TestDeleteRestore:
    def test_soft_delete_hides_subtree(self, pages):
        a = _mk(pages, "A")
        b = _mk(pages, "B", parent=a.id)
        c = _mk(pages, "C", parent=b.id)
        assert pages.delete(a.id) == 3
        assert pages.find_by_id(a.id) is None
        assert pages.find_by_id(c.id) is None
        assert pages.find_by_id(c.id, include_deleted=True).deleted_at is not None
        assert _titles(pages) == []

    def test_deleted_page_not_a_parent(self, pages):
        a = _mk(pages, "A")
        pages.delete(a.id)
        with pytest.raises(NotFoundError):
            _mk(pages, "x", parent=a.id)

    def test_delete_unknown(self, pages):
        with pytest.raises(NotFoundError):
            pages.delete("missing")

    def test_restore_recovers_subtree(self, pages):
        a = _mk(pages, "A")
        b = _mk(pages, "B", parent=a.id)
        pages.delete(a.id)
        restored = pages.restore(a.id)
        assert restored.deleted_at is None
        assert pages.find_by_id(b.id) is not None
        assert _titles(pages, parent=a.id) == ["B"]

    def test_restore_keeps_separately_deleted_child(self, pages):
        a = _mk(pages, "A")
        b = _mk(pages, "B", parent=a.id)
        pages.delete(b.id)
        pages.delete(a.id)
        pages.restore(a.id)
        assert pages.find_by_id(b.id) is None

    def test_restore_under_deleted_parent_becomes_root(self, pages):
        a = _mk(pages, "A")
        b = _mk(pages, "B", parent=a.id)
        pages.delete(b.id)
        pages.delete(a.id)
        restored = pages.restore(b.id)
        assert restored.parent_page_id is None
        assert _titles(pages) == ["B"]

    def test_restore_appends_to_group(self, pages):
        a = _mk(pages, "A")
        _mk(pages, "B")
        pages.delete(a.id)
        _mk(pages, "C")
        pages.restore(a.id)
        assert _titles(pages) == ["B", "C", "A"]

    def test_restore_live_page_is_noop(self, pages):
        a = _mk(pages, "A")
        assert pages.restore(a.id).position == a.position

    def test_restore_unknown(self, pages):
        with pytest.raises(NotFoundError):
            pages.restore("missing")

    def test_force_delete_cascades(self, pages, comments):
        a = _mk(pages, "A")
        b = _mk(pages, "B", parent=a.id)
        c = comments.create("u-1", "w-1", b.id, {"type": "doc"})
        pages.force_delete(a.id)
        assert pages.find_by_id(b.id, include_deleted=True) is None
        assert comments.find_by_id(c.id) is None

    def test_force_delete_unknown(self, pages):
        with pytest.raises(NotFoundError):
            pages.force_delete("missing")

    def test_history(self, pages):
        a = _mk(pages, "A")
        pages.delete(a.id)
        pages.restore(a.id)
        assert [e.event_type for e in pages.history(a.id)] == [
            PAGE_CREATED,
            PAGE_DELETED,
            PAGE_RESTORED,
        ]
