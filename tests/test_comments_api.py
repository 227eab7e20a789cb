"""
Comments API + comment item partial tests.
Run: pytest tests/test_comments_api.py -v
"""
import json

import pytest


def _doc(text):
    return {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}]}


@pytest.fixture
def page(client):
    r = client.post("/api/pages", json={"space_id": "s-1", "title": "Page"})
    return r.json()


@pytest.fixture
def thread(client, page):
    r = client.post(
        "/api/comments",
        json={"page_id": page["id"], "content": _doc("Looks good"), "selection": "the intro"},
    )
    assert r.status_code == 201, r.text
    return r.json()


class TestCommentsApi:
    def test_create_and_list(self, client, page, thread):
        r = client.post(
            f"/api/pages/{page['id']}/comments",
            json={"content": _doc("Agreed"), "parent_comment_id": thread["id"]},
        )
        assert r.status_code == 201
        r = client.get(f"/api/pages/{page['id']}/comments")
        comments = r.json()["comments"]
        assert len(comments) == 1
        assert comments[0]["selection"] == "the intro"
        assert comments[0]["creator_id"] == "u-alice"
        assert comments[0]["replies"][0]["content"] == _doc("Agreed")

    def test_create_requires_content(self, client, page):
        r = client.post("/api/comments", json={"page_id": page["id"], "content": ""})
        assert r.status_code == 422

    def test_empty_document_rejected(self, client, page, thread):
        empty = {"type": "doc", "content": [{"type": "paragraph"}]}
        r = client.post("/api/comments", json={"page_id": page["id"], "content": empty})
        assert r.status_code == 422
        r = client.patch(f"/api/comments/{thread['id']}", json={"content": {}})
        assert r.status_code == 422

    def test_comment_of_deleted_page_not_found(self, client, page, thread):
        client.delete(f"/api/pages/{page['id']}")
        assert client.get(f"/api/comments/{thread['id']}").status_code == 404
        r = client.post(f"/api/comments/{thread['id']}/resolve", json={})
        assert r.status_code == 404

    def test_create_on_unknown_page(self, client):
        r = client.post("/api/comments", json={"page_id": "missing", "content": _doc("x")})
        assert r.status_code == 404

    def test_list_unknown_page(self, client):
        assert client.get("/api/pages/missing/comments").status_code == 404

    def test_patch(self, client, thread):
        r = client.patch(f"/api/comments/{thread['id']}", json={"content": _doc("Edited")})
        assert r.status_code == 200
        assert r.json()["content"] == _doc("Edited")
        assert r.json()["edited_at"]

    def test_resolve(self, client, thread):
        r = client.post(f"/api/comments/{thread['id']}/resolve", json={"resolved": True})
        assert r.json()["resolved_by_id"] == "u-alice"
        r = client.post(f"/api/comments/{thread['id']}/resolve", json={"resolved": False})
        assert r.json()["resolved_at"] is None

    def test_resolve_reply_rejected(self, client, page, thread):
        reply = client.post(
            "/api/comments",
            json={"page_id": page["id"], "content": _doc("r"), "parent_comment_id": thread["id"]},
        ).json()
        r = client.post(f"/api/comments/{reply['id']}/resolve", json={})
        assert r.status_code == 400

    def test_delete(self, client, thread):
        assert client.delete(f"/api/comments/{thread['id']}").status_code == 200
        assert client.get(f"/api/comments/{thread['id']}").status_code == 404


class TestUsersApi:
    def test_create_and_get(self, client):
        r = client.post("/api/users", json={"id": "u-bob", "name": "Bob"})
        assert r.status_code == 201
        assert client.get("/api/users/u-bob").json()["name"] == "Bob"

    def test_duplicate_conflicts(self, client):
        client.post("/api/users", json={"id": "u-bob", "name": "Bob"})
        r = client.post("/api/users", json={"id": "u-bob", "name": "Bobby"})
        assert r.status_code == 409

    def test_unknown(self, client):
        assert client.get("/api/users/nobody").status_code == 404


class TestCommentPartials:
    def test_item_shows_author_and_text(self, client, thread):
        client.post("/api/users", json={"id": "u-alice", "name": "Alice"})
        r = client.get(f"/comments/{thread['id']}")
        assert r.status_code == 200
        assert "Alice" in r.text
        assert "Looks good" in r.text
        assert "just now" in r.text
        assert "the intro" in r.text
        assert "Resolve" in r.text
        assert "<textarea" not in r.text

    def test_item_initial_without_avatar(self, client, thread):
        r = client.get(f"/comments/{thread['id']}")
        assert ">U</span>" in r.text  # from creator id u-alice

    def test_reply_has_no_resolve_or_selection(self, client, page, thread):
        reply = client.post(
            "/api/comments",
            json={"page_id": page["id"], "content": _doc("ok"), "parent_comment_id": thread["id"]},
        ).json()
        r = client.get(f"/comments/{reply['id']}")
        assert "Resolve" not in r.text
        assert "comment-selection" not in r.text

    def test_edit_mode(self, client, thread):
        r = client.get(f"/comments/{thread['id']}/edit")
        assert "<textarea" in r.text
        assert "Looks good</textarea>" in r.text

    def test_save_plain_text(self, client, thread):
        r = client.post(f"/comments/{thread['id']}", data={"content": "New text"})
        assert r.status_code == 200
        assert "New text" in r.text
        assert "<textarea" not in r.text
        saved = client.get(f"/api/comments/{thread['id']}").json()
        assert saved["content"] == _doc("New text")

    def test_save_editor_json(self, client, thread):
        r = client.post(f"/comments/{thread['id']}", data={"content": json.dumps(_doc("From editor"))})
        assert "From editor" in r.text
        assert client.get(f"/api/comments/{thread['id']}").json()["content"] == _doc("From editor")

    def test_failed_save_keeps_editor(self, client, thread):
        r = client.post(f"/comments/{thread['id']}", data={"content": "   "})
        assert r.status_code == 200
        assert "<textarea" in r.text
        assert "Comment cannot be empty" in r.text
        assert client.get(f"/api/comments/{thread['id']}").json()["content"] == _doc("Looks good")

    @pytest.mark.parametrize(
        "content", ["{}", json.dumps({"type": "doc", "content": []}), json.dumps(_doc("  "))]
    )
    def test_empty_editor_json_keeps_editor(self, client, thread, content):
        r = client.post(f"/comments/{thread['id']}", data={"content": content})
        assert "<textarea" in r.text
        assert "Comment cannot be empty" in r.text
        assert client.get(f"/api/comments/{thread['id']}").json()["content"] == _doc("Looks good")

    def test_delete_removes_item(self, client, thread):
        r = client.delete(f"/comments/{thread['id']}")
        assert r.status_code == 200
        assert r.text == ""
        assert json.loads(r.headers["HX-Trigger"]) == {"commentDeleted": {"id": thread["id"]}}

    def test_resolve_toggle(self, client, thread):
        r = client.post(f"/comments/{thread['id']}/resolve")
        assert "Re-open" in r.text
        r = client.post(f"/comments/{thread['id']}/resolve")
        assert "Resolve" in r.text and "Re-open" not in r.text

    def test_thread_list(self, client, page, thread):
        r = client.get(f"/pages/{page['id']}/comments")
        assert r.status_code == 200
        assert f'id="comment-{thread["id"]}"' in r.text

    def test_thread_list_empty(self, client, page):
        r = client.get(f"/pages/{page['id']}/comments")
        assert "No comments yet" in r.text
