import asyncio
import unittest

from fastapi import HTTPException
from fastapi.testclient import TestClient

from newsboard.app import create_app
from newsboard.auth import GateKeeper, InMemoryAuthClient
from newsboard.config import Settings, get_settings
from newsboard.db import InMemoryDbClient
from newsboard.dependencies import (
    get_auth_client,
    get_db_client,
    get_gate_keeper,
    get_storage_client,
)
from newsboard.routes import _store_uploads
from newsboard.storage import InMemoryStorageClient


class ApiTestCase(unittest.TestCase):
    gate_password = None

    def setUp(self):
        self.app = create_app()
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.auth = InMemoryAuthClient()
        self.gate = GateKeeper(password=self.gate_password, secret="gate-secret")
        self.settings = Settings(
            poll_slug="test-poll",
            poll_title="Best Team",
            poll_description="Vote!",
            poll_roster=["Red", "Blue", "Green"],
            max_upload_bytes=1024,
        )
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.app.dependency_overrides[get_auth_client] = lambda: self.auth
        self.app.dependency_overrides[get_gate_keeper] = lambda: self.gate
        self.app.dependency_overrides[get_settings] = lambda: self.settings
        self.client = TestClient(self.app)

    def login(self, user_id: str, email: str) -> dict:
        return {"Authorization": f"Bearer {self.auth.issue_token(user_id, email)}"}

    def create_post(self, headers: dict, **fields) -> dict:
        data = {"title": "Match report", "content": "We won!"}
        data.update(fields.pop("data", {}))
        response = self.client.post("/api/posts", data=data, headers=headers, **fields)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()


class GateTests(ApiTestCase):
    gate_password = "letmein"

    def test_content_routes_require_gate_token(self):
        self.assertEqual(self.client.get("/api/health").status_code, 200)
        self.assertEqual(self.client.get("/api/posts").status_code, 401)

        wrong = self.client.post("/api/gate", json={"password": "nope"})
        self.assertEqual(wrong.status_code, 401)

        unlocked = self.client.post("/api/gate", json={"password": "letmein"})
        self.assertEqual(unlocked.status_code, 200)
        token = unlocked.json()["gate_token"]
        self.assertTrue(token)

        response = self.client.get("/api/posts", headers={"X-Gate-Token": token})
        self.assertEqual(response.status_code, 200)

        forged = self.client.get("/api/posts", headers={"X-Gate-Token": "forged"})
        self.assertEqual(forged.status_code, 401)


class OpenGateTests(ApiTestCase):
    def test_gate_disabled(self):
        response = self.client.post("/api/gate", json={"password": "anything"})
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["gate_token"])
        self.assertEqual(self.client.get("/api/posts").status_code, 200)


class ProfileApiTests(ApiTestCase):
    def test_profile_lifecycle(self):
        headers = self.login("user-1", "Dana@example.com")

        self.assertEqual(self.client.get("/api/me", headers=headers).status_code, 404)
        created = self.client.post("/api/me", json={"name": "Dana"}, headers=headers)
        self.assertEqual(created.status_code, 200)
        self.assertEqual(created.json()["handle"], "dana")

        again = self.client.post("/api/me", json={"name": "Other"}, headers=headers)
        self.assertEqual(again.json()["name"], "Dana")

        patched = self.client.patch(
            "/api/me", json={"bio": "  Striker  "}, headers=headers
        )
        self.assertEqual(patched.status_code, 200)
        self.assertEqual(patched.json()["bio"], "Striker")
        self.assertEqual(patched.json()["name"], "Dana")

    def test_profile_requires_auth(self):
        response = self.client.post("/api/me", json={"name": "Dana"})
        self.assertEqual(response.status_code, 401)
        response = self.client.get(
            "/api/me", headers={"Authorization": "Bearer not-issued"}
        )
        self.assertEqual(response.status_code, 401)

    def test_avatar_upload(self):
        headers = self.login("user-1", "dana@example.com")
        self.client.post("/api/me", json={"name": "Dana"}, headers=headers)

        response = self.client.post(
            "/api/me/avatar",
            files={"file": ("me.png", b"png-bytes", "image/png")},
            headers=headers,
        )
        self.assertEqual(response.status_code, 200, response.text)
        url = response.json()["profile_pic_url"]
        self.assertTrue(url.startswith(self.storage.public_url("profiles/")))
        self.assertEqual(len(self.storage.stored_objects), 1)

        video = self.client.post(
            "/api/me/avatar",
            files={"file": ("me.mp4", b"mp4-bytes", "video/mp4")},
            headers=headers,
        )
        self.assertEqual(video.status_code, 400)

    def test_public_profile_stats(self):
        author = self.login("author", "writer@example.com")
        fan = self.login("fan", "fan@example.com")
        self.client.post("/api/me", json={"name": "Writer"}, headers=author)

        post = self.create_post(author)
        self.client.put(f"/api/posts/{post['post_id']}/likes", headers=fan)
        self.client.post(
            f"/api/posts/{post['post_id']}/comments",
            json={"content": "self reply"},
            headers=author,
        )
        poll = self.client.get("/api/polls/active").json()
        self.client.post(
            f"/api/polls/{poll['poll_id']}/votes", json={"candidate": "Red"}, headers=author
        )

        response = self.client.get("/api/users/writer")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["stats"],
            {"posts": 1, "comments": 1, "votes": 1, "likes_received": 1},
        )
        self.assertEqual(len(self.client.get("/api/users/writer/posts").json()["posts"]), 1)
        self.assertEqual(
            len(self.client.get("/api/users/writer/comments").json()["comments"]), 1
        )
        votes = self.client.get("/api/users/writer/votes").json()["votes"]
        self.assertEqual([v["candidate"] for v in votes], ["Red"])
        self.assertEqual(self.client.get("/api/users/nobody").status_code, 404)

    def test_member_with_handle_me_is_reachable(self):
        member = self.login("u-me", "me@example.com")
        other = self.login("u-x", "x@example.com")
        self.client.post("/api/me", json={"name": "Meg"}, headers=member)
        self.client.post("/api/me", json={"name": "Xavier"}, headers=other)

        anonymous = self.client.get("/api/users/me")
        self.assertEqual(anonymous.status_code, 200)
        self.assertEqual(anonymous.json()["profile"]["user_id"], "u-me")

        signed_in = self.client.get("/api/users/me", headers=other)
        self.assertEqual(signed_in.json()["profile"]["name"], "Meg")
        self.assertEqual(
            self.client.get("/api/me", headers=other).json()["user_id"], "u-x"
        )


class PostApiTests(ApiTestCase):
    def test_create_post_requires_auth(self):
        response = self.client.post(
            "/api/posts", data={"title": "Hello", "content": "World"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.db.posts, {})

    def test_create_post_with_media_and_tags(self):
        headers = self.login("user-1", "a@example.com")
        post = self.create_post(
            headers,
            data={"title": "  Cup final  ", "tags": ["news", "cup, news", " "]},
            files=[
                ("files", ("photo.png", b"png", "image/png")),
                ("files", ("clip.mp4", b"mp4", "video/mp4")),
            ],
        )

        self.assertEqual(post["title"], "Cup final")
        self.assertEqual(post["tags"], ["news", "cup"])
        self.assertEqual(post["email"], "a@example.com")
        self.assertEqual(len(post["media_urls"]), 2)
        self.assertEqual(
            [(item["url"], item["kind"]) for item in post["media"]],
            list(zip(post["media_urls"], ["image", "video"])),
        )
        self.assertEqual(len(self.storage.stored_objects), 2)
        self.assertEqual(post["like_count"], 0)
        self.assertEqual(post["comment_count"], 0)

    def test_rejects_blank_fields_and_bad_media(self):
        headers = self.login("user-1", "a@example.com")
        blank = self.client.post(
            "/api/posts", data={"title": "   ", "content": "x"}, headers=headers
        )
        self.assertEqual(blank.status_code, 400)

        bad = self.client.post(
            "/api/posts",
            data={"title": "t", "content": "c"},
            files=[
                ("files", ("photo.png", b"png", "image/png")),
                ("files", ("notes.txt", b"text", "text/plain")),
            ],
            headers=headers,
        )
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(self.storage.stored_objects, {})

        too_big = self.client.post(
            "/api/posts",
            data={"title": "t", "content": "c"},
            files=[("files", ("big.png", b"x" * 2048, "image/png"))],
            headers=headers,
        )
        self.assertEqual(too_big.status_code, 400)

    def test_list_posts_newest_first_with_tag_filter(self):
        headers = self.login("user-1", "a@example.com")
        first = self.create_post(headers, data={"title": "First", "tags": ["cup"]})
        second = self.create_post(headers, data={"title": "Second"})

        listed = self.client.get("/api/posts").json()["posts"]
        self.assertEqual(
            [p["post_id"] for p in listed], [second["post_id"], first["post_id"]]
        )

        tagged = self.client.get("/api/posts", params={"tag": "cup"}).json()["posts"]
        self.assertEqual([p["post_id"] for p in tagged], [first["post_id"]])

        paged = self.client.get("/api/posts", params={"limit": 1, "offset": 1}).json()
        self.assertEqual([p["post_id"] for p in paged["posts"]], [first["post_id"]])

    def test_get_missing_post(self):
        self.assertEqual(self.client.get("/api/posts/missing").status_code, 404)

    def test_edit_post_replaces_media(self):
        headers = self.login("user-1", "a@example.com")
        post = self.create_post(
            headers,
            files=[
                ("files", ("a.png", b"a", "image/png")),
                ("files", ("b.png", b"b", "image/png")),
            ],
        )
        keep, drop = post["media_urls"]

        response = self.client.patch(
            f"/api/posts/{post['post_id']}",
            data={"content": "Updated", "remove_media": [drop], "tags": ["recap"]},
            files=[("files", ("c.png", b"c", "image/png"))],
            headers=headers,
        )
        self.assertEqual(response.status_code, 200, response.text)
        updated = response.json()
        self.assertEqual(updated["title"], "Match report")
        self.assertEqual(updated["content"], "Updated")
        self.assertEqual(updated["tags"], ["recap"])
        self.assertEqual(updated["media_urls"][0], keep)
        self.assertEqual(len(updated["media_urls"]), 2)
        self.assertNotIn(drop, updated["media_urls"])
        self.assertEqual(len(self.storage.stored_objects), 2)

    def test_only_owner_can_edit_or_delete(self):
        owner = self.login("owner", "owner@example.com")
        other = self.login("other", "other@example.com")
        post = self.create_post(owner)

        edit = self.client.patch(
            f"/api/posts/{post['post_id']}", data={"title": "Hijacked"}, headers=other
        )
        self.assertEqual(edit.status_code, 403)
        delete = self.client.delete(f"/api/posts/{post['post_id']}", headers=other)
        self.assertEqual(delete.status_code, 403)
        self.assertIn(post["post_id"], self.db.posts)

    def test_delete_post_removes_media(self):
        headers = self.login("user-1", "a@example.com")
        post = self.create_post(
            headers, files=[("files", ("a.png", b"a", "image/png"))]
        )
        response = self.client.delete(f"/api/posts/{post['post_id']}", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "deleted"})
        self.assertEqual(self.storage.stored_objects, {})
        self.assertEqual(self.client.get(f"/api/posts/{post['post_id']}").status_code, 404)


class _RecordingUpload:
    """Upload stand-in that remembers how many bytes were asked for."""

    def __init__(self, filename: str, size: int):
        self.filename = filename
        self.content_type = "image/png"
        self.size = size
        self.requested = []

    async def read(self, size: int = -1) -> bytes:
        self.requested.append(size)
        return b"x" * (self.size if size < 0 else min(size, self.size))


class StoreUploadsTests(unittest.TestCase):
    def setUp(self):
        self.storage = InMemoryStorageClient()
        self.settings = Settings(max_upload_bytes=1024)

    def test_oversized_upload_is_not_read_in_full(self):
        upload = _RecordingUpload("huge.png", 50 * 1024 * 1024)
        with self.assertRaises(HTTPException) as ctx:
            asyncio.run(
                _store_uploads([upload], self.storage, self.settings, prefix="posts")
            )
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(upload.requested, [1025])
        self.assertEqual(self.storage.stored_objects, {})

    def test_upload_at_the_limit_is_stored(self):
        upload = _RecordingUpload("fits.png", 1024)
        [url] = asyncio.run(
            _store_uploads([upload], self.storage, self.settings, prefix="posts")
        )
        self.assertTrue(url.startswith(self.storage.public_url("posts/")))
        [(data, _)] = self.storage.stored_objects.values()
        self.assertEqual(len(data), 1024)


class CommentAndLikeApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.author = self.login("author", "author@example.com")
        self.reader = self.login("reader", "reader@example.com")
        self.post = self.create_post(self.author)
        self.post_id = self.post["post_id"]

    def test_comments(self):
        anon = self.client.post(
            f"/api/posts/{self.post_id}/comments", json={"content": "hi"}
        )
        self.assertEqual(anon.status_code, 401)

        first = self.client.post(
            f"/api/posts/{self.post_id}/comments",
            json={"content": "Great game"},
            headers=self.reader,
        )
        self.assertEqual(first.status_code, 201)
        self.client.post(
            f"/api/posts/{self.post_id}/comments",
            json={"content": "Thanks"},
            headers=self.author,
        )

        comments = self.client.get(f"/api/posts/{self.post_id}/comments").json()["comments"]
        self.assertEqual([c["content"] for c in comments], ["Great game", "Thanks"])
        self.assertEqual(
            self.client.get(f"/api/posts/{self.post_id}").json()["comment_count"], 2
        )

        comment_id = first.json()["comment_id"]
        forbidden = self.client.delete(f"/api/comments/{comment_id}", headers=self.author)
        self.assertEqual(forbidden.status_code, 403)
        deleted = self.client.delete(f"/api/comments/{comment_id}", headers=self.reader)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(
            self.client.delete(f"/api/comments/{comment_id}", headers=self.reader).status_code,
            404,
        )

    def test_comment_on_missing_post(self):
        response = self.client.post(
            "/api/posts/missing/comments", json={"content": "hi"}, headers=self.reader
        )
        self.assertEqual(response.status_code, 404)

    def test_like_and_unlike(self):
        url = f"/api/posts/{self.post_id}/likes"
        self.assertEqual(self.client.put(url).status_code, 401)

        liked = self.client.put(url, headers=self.reader).json()
        self.assertEqual(liked, {"post_id": self.post_id, "count": 1, "liked_by_me": True})
        again = self.client.put(url, headers=self.reader).json()
        self.assertEqual(again["count"], 1)

        as_author = self.client.get(url, headers=self.author).json()
        self.assertEqual(as_author["count"], 1)
        self.assertFalse(as_author["liked_by_me"])

        post = self.client.get(f"/api/posts/{self.post_id}", headers=self.reader).json()
        self.assertTrue(post["liked_by_me"])
        self.assertEqual(post["like_count"], 1)

        unliked = self.client.delete(url, headers=self.reader).json()
        self.assertEqual(unliked["count"], 0)
        self.assertFalse(unliked["liked_by_me"])


class PollApiTests(ApiTestCase):
    def active_poll(self, headers=None) -> dict:
        response = self.client.get("/api/polls/active", headers=headers or {})
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def vote(self, poll_id: str, candidate: str, headers: dict):
        return self.client.post(
            f"/api/polls/{poll_id}/votes", json={"candidate": candidate}, headers=headers
        )

    def test_active_poll_is_created_once(self):
        first = self.active_poll()
        second = self.active_poll()

        self.assertEqual(first["poll_id"], second["poll_id"])
        self.assertEqual(len(self.db.polls), 1)
        self.assertEqual(first["title"], "Best Team")
        self.assertEqual(first["teams"], ["Red", "Blue", "Green"])
        self.assertEqual(first["total_votes"], 0)
        self.assertEqual(
            [(e["rank"], e["candidate"], e["votes"], e["percentage"]) for e in first["entries"]],
            [(1, "Red", 0, 0.0), (2, "Blue", 0, 0.0), (3, "Green", 0, 0.0)],
        )
        self.assertFalse(first["has_voted"])

    def test_votes_are_ranked(self):
        poll_id = self.active_poll()["poll_id"]
        for user_id, candidate in [("u1", "Blue"), ("u2", "Green"), ("u3", "Blue")]:
            response = self.vote(poll_id, candidate, self.login(user_id, f"{user_id}@x.test"))
            self.assertEqual(response.status_code, 201, response.text)

        poll = self.active_poll(self.login("u1", "u1@x.test"))
        self.assertEqual(poll["total_votes"], 3)
        self.assertEqual(
            [(e["candidate"], e["votes"]) for e in poll["entries"]],
            [("Blue", 2), ("Green", 1), ("Red", 0)],
        )
        self.assertAlmostEqual(poll["entries"][0]["percentage"], 200 / 3)
        self.assertTrue(poll["has_voted"])
        self.assertEqual(poll["voted_for"], "Blue")

        other = self.active_poll(self.login("u9", "u9@x.test"))
        self.assertFalse(other["has_voted"])
        self.assertIsNone(other["voted_for"])

    def test_second_vote_is_rejected(self):
        poll_id = self.active_poll()["poll_id"]
        headers = self.login("u1", "u1@x.test")

        self.assertEqual(self.vote(poll_id, "Red", headers).status_code, 201)
        duplicate = self.vote(poll_id, "Blue", headers)
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(duplicate.json()["detail"], "You have already voted")

        poll = self.active_poll()
        self.assertEqual(poll["total_votes"], 1)
        self.assertEqual(poll["entries"][0]["candidate"], "Red")

    def test_vote_validation(self):
        poll_id = self.active_poll()["poll_id"]
        headers = self.login("u1", "u1@x.test")

        self.assertEqual(self.vote(poll_id, "Red", {}).status_code, 401)
        self.assertEqual(self.vote(poll_id, "Purple", headers).status_code, 400)
        self.assertEqual(self.vote("missing", "Red", headers).status_code, 404)
        self.assertEqual(self.db.votes, {})

        self.db.set_poll_active(poll_id, False)
        closed = self.vote(poll_id, "Red", headers)
        self.assertEqual(closed.status_code, 400)
        self.assertEqual(self.db.votes, {})

    def test_get_poll_by_id(self):
        poll_id = self.active_poll()["poll_id"]
        self.assertEqual(self.client.get(f"/api/polls/{poll_id}").json()["poll_id"], poll_id)
        self.assertEqual(self.client.get("/api/polls/missing").status_code, 404)

    def test_store_failure_is_not_masked(self):
        def broken(*args, **kwargs):
            raise RuntimeError("store unreachable")

        self.db.list_votes = broken
        client = TestClient(self.app, raise_server_exceptions=False)
        response = client.get("/api/polls/active")
        self.assertEqual(response.status_code, 500)


if __name__ == "__main__":
    unittest.main()
