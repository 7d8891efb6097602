import asyncio
import time
import unittest

from fastapi.testclient import TestClient

from markdash.app import create_app
from markdash.config import Settings
from markdash.errors import StorageError
from markdash.kv import InMemoryKvStore
from markdash.models import utc_today
from markdash.security import issue_token

TEST_SECRET = "api-test-signing-key-0123456789abcdef"


def make_settings(**overrides) -> Settings:
    values = {
        "use_in_memory_backends": True,
        "rate_limit_enabled": False,
        "jwt_secret": TEST_SECRET,
    }
    values.update(overrides)
    return Settings(**values)


class SpyStore:
    """Records every store call before delegating."""

    def __init__(self, inner=None):
        self.inner = inner or InMemoryKvStore()
        self.calls = []

    def get(self, key):
        self.calls.append(("get", key))
        return self.inner.get(key)

    def put(self, key, value):
        self.calls.append(("put", key))
        return self.inner.put(key, value)

    def delete(self, key):
        self.calls.append(("delete", key))
        return self.inner.delete(key)

    def scan(self, prefix=()):
        self.calls.append(("scan", prefix))
        return self.inner.scan(prefix)


class BrokenStore:
    def get(self, key):
        raise StorageError("disk on fire")

    def put(self, key, value):
        raise StorageError("disk on fire")

    def delete(self, key):
        raise StorageError("disk on fire")

    def scan(self, prefix=()):
        raise StorageError("disk on fire")


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryKvStore()
        self.client = TestClient(create_app(settings=make_settings(), store=self.store))

    def register(self, username="ada", password="secret1"):
        return self.client.post(
            "/api/register", json={"username": username, "password": password}
        )

    def login(self, username="ada", password="secret1"):
        return self.client.post(
            "/api/login", json={"username": username, "password": password}
        )

    def signup(self, username="ada", password="secret1") -> dict:
        self.assertEqual(self.register(username, password).status_code, 201)
        token = self.login(username, password).json()["data"]["token"]
        return {"Authorization": f"Bearer {token}"}

    def create_board(self, headers, **fields) -> dict:
        body = {"title": "Morning routine", "markdownBody": "- [ ] stretch"}
        body.update(fields)
        response = self.client.post("/api/boards", json=body, headers=headers)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]


class AuthApiTests(ApiTestCase):
    def test_register_returns_user_without_hash(self):
        response = self.register()
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload["success"])
        user = payload["data"]["user"]
        self.assertEqual(user["username"], "ada")
        self.assertNotIn("passwordHash", user)
        self.assertEqual(len(user["id"]), 32)

    def test_register_rejects_short_password(self):
        response = self.register(password="abc")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.json(),
            {"success": False, "error": "Password must be at least 6 characters"},
        )

    def test_register_requires_fields(self):
        response = self.client.post("/api/register", json={"username": "ada"})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])

    def test_malformed_json_is_a_validation_error(self):
        response = self.client.post(
            "/api/register",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])

    def test_duplicate_username_conflicts(self):
        first = self.register(password="secret1").json()["data"]["user"]
        response = self.register(password="other-password")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "Username already exists")

        # Original record untouched
        self.assertEqual(self.login(password="secret1").status_code, 200)
        self.assertEqual(self.login(password="other-password").status_code, 401)
        self.assertEqual(self.store.get(("user_by_username", "ada")), first["id"])

    def test_login_returns_token_and_user(self):
        self.register()
        response = self.login()
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertTrue(data["token"])
        self.assertEqual(data["user"]["username"], "ada")
        self.assertNotIn("passwordHash", data["user"])

    def test_login_failures_are_indistinguishable(self):
        self.register()
        wrong_password = self.login(password="wrong-pass")
        unknown_user = self.login(username="nobody")
        self.assertEqual(wrong_password.status_code, 401)
        self.assertEqual(unknown_user.status_code, 401)
        self.assertEqual(wrong_password.json(), unknown_user.json())

    def test_me_and_logout(self):
        headers = self.signup()
        me = self.client.get("/api/me", headers=headers)
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["username"], "ada")

        logout = self.client.post("/api/logout", headers=headers)
        self.assertEqual(logout.status_code, 204)
        self.assertEqual(logout.content, b"")

    def test_me_for_vanished_user_is_not_found(self):
        token = issue_token("ghost", "ghost", secret=TEST_SECRET)
        response = self.client.get(
            "/api/me", headers={"Authorization": f"Bearer {token}"}
        )
        self.assertEqual(response.status_code, 404)

    def test_rejects_missing_malformed_and_expired_credentials(self):
        response = self.client.get("/api/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json()["error"], "Missing or invalid authorization header"
        )

        response = self.client.get("/api/me", headers={"Authorization": "Basic abc"})
        self.assertEqual(response.status_code, 401)

        response = self.client.get("/api/me", headers={"Authorization": "Bearer junk"})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "Invalid or expired token")

        expired = issue_token(
            "u1", "ada", secret=TEST_SECRET, now=time.time() - 2 * 86400
        )
        response = self.client.get(
            "/api/me", headers={"Authorization": f"Bearer {expired}"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "Invalid or expired token")

    def test_username_with_nul_is_rejected(self):
        for response in (self.register(username="a\x00b"), self.login(username="a\x00b")):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(
                response.json(),
                {"success": False, "error": "Username must not contain NUL characters"},
            )
        self.assertEqual(len(self.store), 0)

    def test_token_signed_with_other_key_is_rejected(self):
        forged = issue_token("u1", "ada", secret="some-other-signing-key-0123456789")
        response = self.client.get(
            "/api/me", headers={"Authorization": f"Bearer {forged}"}
        )
        self.assertEqual(response.status_code, 401)


class BoardApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.ada = self.signup("ada")

    def test_create_then_get_roundtrip(self):
        board = self.create_board(
            self.ada,
            visibility="public",
            schedule="weekly",
            resetTime="06:30",
        )
        response = self.client.get(f"/api/boards/{board['id']}", headers=self.ada)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], board)
        self.assertEqual(board["title"], "Morning routine")
        self.assertEqual(board["markdownBody"], "- [ ] stretch")
        self.assertEqual(board["schedule"], "weekly")
        self.assertEqual(board["resetTime"], "06:30")
        self.assertEqual(board["createdAt"], board["updatedAt"])

        again = self.client.get(f"/api/boards/{board['id']}", headers=self.ada)
        self.assertEqual(again.json()["data"]["createdAt"], board["createdAt"])

    def test_create_applies_defaults_and_accepts_markdown_alias(self):
        response = self.client.post(
            "/api/boards",
            json={"title": "Habits", "markdown": "- [ ] read"},
            headers=self.ada,
        )
        self.assertEqual(response.status_code, 201)
        board = response.json()["data"]
        self.assertEqual(board["markdownBody"], "- [ ] read")
        self.assertEqual(board["visibility"], "private")
        self.assertEqual(board["schedule"], "daily")
        self.assertEqual(board["resetTime"], "00:00")

    def test_create_validates_fields(self):
        missing = self.client.post(
            "/api/boards", json={"markdownBody": "x"}, headers=self.ada
        )
        self.assertEqual(missing.status_code, 400)
        bad_visibility = self.client.post(
            "/api/boards",
            json={"title": "t", "markdownBody": "x", "visibility": "friends"},
            headers=self.ada,
        )
        self.assertEqual(bad_visibility.status_code, 400)
        bad_time = self.client.post(
            "/api/boards",
            json={"title": "t", "markdownBody": "x", "resetTime": "25:00"},
            headers=self.ada,
        )
        self.assertEqual(bad_time.status_code, 400)

    def test_partial_update_keeps_other_fields(self):
        board = self.create_board(self.ada)
        response = self.client.put(
            f"/api/boards/{board['id']}",
            json={"title": "Evening routine"},
            headers=self.ada,
        )
        self.assertEqual(response.status_code, 200)
        updated = response.json()["data"]
        self.assertEqual(updated["title"], "Evening routine")
        self.assertEqual(updated["markdownBody"], board["markdownBody"])
        self.assertEqual(updated["createdAt"], board["createdAt"])
        self.assertGreaterEqual(updated["updatedAt"], board["updatedAt"])

        stored = self.client.get(f"/api/boards/{board['id']}", headers=self.ada)
        self.assertEqual(stored.json()["data"], updated)

    def test_list_and_delete(self):
        first = self.create_board(self.ada, title="One")
        self.create_board(self.ada, title="Two")
        listed = self.client.get("/api/boards", headers=self.ada).json()["data"]
        self.assertEqual(len(listed), 2)

        response = self.client.delete(f"/api/boards/{first['id']}", headers=self.ada)
        self.assertEqual(response.status_code, 204)
        missing = self.client.get(f"/api/boards/{first['id']}", headers=self.ada)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(
            missing.json(), {"success": False, "error": "Board not found"}
        )

    def test_other_users_cannot_touch_private_board(self):
        board = self.create_board(self.ada)
        grace = self.signup("grace")

        self.assertEqual(self.client.get("/api/boards", headers=grace).json()["data"], [])
        responses = [
            self.client.get(f"/api/boards/{board['id']}", headers=grace),
            self.client.put(
                f"/api/boards/{board['id']}", json={"title": "mine"}, headers=grace
            ),
            self.client.delete(f"/api/boards/{board['id']}", headers=grace),
        ]
        for response in responses:
            self.assertEqual(response.status_code, 404)
            self.assertNotIn(board["markdownBody"], response.text)
            self.assertEqual(response.json()["error"], "Board not found")

        still_there = self.client.get(f"/api/boards/{board['id']}", headers=self.ada)
        self.assertEqual(still_there.json()["data"], board)

    def test_ids_with_nul_are_not_found(self):
        self.create_board(self.ada)
        for method, path in [
            ("GET", "/api/boards/a%00b"),
            ("PUT", "/api/boards/a%00b"),
            ("DELETE", "/api/boards/a%00b"),
            ("GET", "/api/public/a%00b"),
            ("GET", "/api/logs/a%00b"),
            ("GET", "/api/logs/a%00b/2024-01-01"),
            ("DELETE", "/api/logs/a%00b"),
            ("PATCH", "/api/notify/a%00b/dismiss"),
            ("GET", "/api/export/a%00b/csv"),
        ]:
            with self.subTest(method=method, path=path):
                body = {"title": "t"} if method == "PUT" else None
                response = self.client.request(method, path, json=body, headers=self.ada)
                self.assertEqual(response.status_code, 404)
                self.assertFalse(response.json()["success"])

    def test_log_for_board_id_with_nul_is_not_found(self):
        response = self.client.post(
            "/api/logs",
            json={"boardId": "a\x00b", "actions": [{"type": "done", "time": "t"}]},
            headers=self.ada,
        )
        self.assertEqual(response.status_code, 404)

    def test_public_visibility_gate(self):
        board = self.create_board(self.ada)
        hidden = self.client.get(f"/api/public/{board['id']}")
        self.assertEqual(hidden.status_code, 404)
        self.assertEqual(hidden.json()["error"], "Public board not found")

        self.client.put(
            f"/api/boards/{board['id']}", json={"visibility": "public"}, headers=self.ada
        )
        visible = self.client.get(f"/api/public/{board['id']}")
        self.assertEqual(visible.status_code, 200)
        self.assertEqual(visible.json()["data"]["id"], board["id"])

        self.client.put(
            f"/api/boards/{board['id']}", json={"visibility": "private"}, headers=self.ada
        )
        self.assertEqual(self.client.get(f"/api/public/{board['id']}").status_code, 404)


class LogApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.ada = self.signup("ada")
        self.board = self.create_board(self.ada)

    def post_log(self, actions, date="2024-05-01", headers=None, board_id=None):
        body = {"boardId": board_id or self.board["id"], "actions": actions}
        if date:
            body["date"] = date
        return self.client.post("/api/logs", json=body, headers=headers or self.ada)

    def test_actions_for_same_date_merge_in_order(self):
        x = {"type": "check", "task": "stretch", "time": "2024-05-01T07:00:00.000Z"}
        y = {"type": "done", "time": "2024-05-01T21:00:00.000Z"}

        first = self.post_log([x])
        self.assertEqual(first.status_code, 201)
        second = self.post_log([y])
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json()["data"]["id"], first.json()["data"]["id"])

        fetched = self.client.get(
            f"/api/logs/{self.board['id']}/2024-05-01", headers=self.ada
        )
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.json()["data"]["actions"], [x, y])

        listed = self.client.get(f"/api/logs/{self.board['id']}", headers=self.ada)
        self.assertEqual(len(listed.json()["data"]), 1)

    def test_date_defaults_to_today(self):
        response = self.post_log([{"type": "reset"}], date=None)
        self.assertEqual(response.status_code, 201)
        log = response.json()["data"]
        self.assertEqual(log["date"], utc_today())
        self.assertTrue(log["actions"][0]["time"])

    def test_validation(self):
        self.assertEqual(self.post_log([], date="2024-13-01").status_code, 400)
        self.assertEqual(self.post_log([], date="20240501").status_code, 400)
        self.assertEqual(
            self.post_log([{"type": "skip", "time": "t"}]).status_code, 400
        )
        missing_actions = self.client.post(
            "/api/logs", json={"boardId": self.board["id"]}, headers=self.ada
        )
        self.assertEqual(missing_actions.status_code, 400)

    def test_missing_date_is_not_found(self):
        response = self.client.get(
            f"/api/logs/{self.board['id']}/2030-01-01", headers=self.ada
        )
        self.assertEqual(response.status_code, 404)

    def test_other_users_cannot_read_or_write_logs(self):
        created = self.post_log([{"type": "done", "time": "t"}]).json()["data"]
        grace = self.signup("grace")

        self.assertEqual(
            self.post_log([{"type": "done", "time": "t"}], headers=grace).status_code,
            404,
        )
        self.assertEqual(
            self.client.get(f"/api/logs/{self.board['id']}", headers=grace).status_code,
            404,
        )
        self.assertEqual(
            self.client.get(
                f"/api/logs/{self.board['id']}/2024-05-01", headers=grace
            ).status_code,
            404,
        )
        self.assertEqual(
            self.client.delete(f"/api/logs/{created['id']}", headers=grace).status_code,
            404,
        )
        # Still present for the owner
        listed = self.client.get(f"/api/logs/{self.board['id']}", headers=self.ada)
        self.assertEqual(len(listed.json()["data"]), 1)

    def test_delete_by_id(self):
        created = self.post_log([{"type": "done", "time": "t"}]).json()["data"]
        response = self.client.delete(f"/api/logs/{created['id']}", headers=self.ada)
        self.assertEqual(response.status_code, 204)
        listed = self.client.get(f"/api/logs/{self.board['id']}", headers=self.ada)
        self.assertEqual(listed.json()["data"], [])
        again = self.client.delete(f"/api/logs/{created['id']}", headers=self.ada)
        self.assertEqual(again.status_code, 404)
        self.assertEqual(again.json()["error"], "Log not found")

    def test_logs_of_deleted_board_are_unreachable(self):
        created = self.post_log([{"type": "done", "time": "t"}]).json()["data"]
        self.client.delete(f"/api/boards/{self.board['id']}", headers=self.ada)
        response = self.client.delete(f"/api/logs/{created['id']}", headers=self.ada)
        self.assertEqual(response.status_code, 404)


class NotificationApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.ada = self.signup("ada")
        self.board = self.create_board(self.ada)

    def notify(self, headers=None, **overrides):
        body = {"boardId": self.board["id"], "message": "Drink water", "time": "09:00"}
        body.update(overrides)
        return self.client.post("/api/notify", json=body, headers=headers or self.ada)

    def test_create_list_dismiss_delete(self):
        created = self.notify()
        self.assertEqual(created.status_code, 201)
        notification = created.json()["data"]
        self.assertFalse(notification["dismissed"])
        self.assertEqual(notification["boardId"], self.board["id"])

        listed = self.client.get(f"/api/notify/{self.board['id']}", headers=self.ada)
        self.assertEqual([n["id"] for n in listed.json()["data"]], [notification["id"]])

        dismissed = self.client.patch(
            f"/api/notify/{notification['id']}/dismiss", headers=self.ada
        )
        self.assertEqual(dismissed.status_code, 200)
        self.assertTrue(dismissed.json()["data"]["dismissed"])

        listed = self.client.get(f"/api/notify/{self.board['id']}", headers=self.ada)
        self.assertEqual(listed.json()["data"], [])

        deleted = self.client.delete(
            f"/api/notify/{notification['id']}", headers=self.ada
        )
        self.assertEqual(deleted.status_code, 204)
        gone = self.client.delete(f"/api/notify/{notification['id']}", headers=self.ada)
        self.assertEqual(gone.status_code, 404)
        self.assertEqual(gone.json()["error"], "Notification not found")

    def test_requires_message_and_time(self):
        self.assertEqual(self.notify(message="").status_code, 400)
        response = self.client.post(
            "/api/notify",
            json={"boardId": self.board["id"], "message": "hi"},
            headers=self.ada,
        )
        self.assertEqual(response.status_code, 400)

    def test_other_users_cannot_reach_notifications(self):
        notification = self.notify().json()["data"]
        grace = self.signup("grace")

        self.assertEqual(self.notify(headers=grace).status_code, 404)
        self.assertEqual(
            self.client.get(f"/api/notify/{self.board['id']}", headers=grace).status_code,
            404,
        )
        self.assertEqual(
            self.client.patch(
                f"/api/notify/{notification['id']}/dismiss", headers=grace
            ).status_code,
            404,
        )
        self.assertEqual(
            self.client.delete(
                f"/api/notify/{notification['id']}", headers=grace
            ).status_code,
            404,
        )
        listed = self.client.get(f"/api/notify/{self.board['id']}", headers=self.ada)
        self.assertEqual(len(listed.json()["data"]), 1)


class ExportApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.ada = self.signup("ada")
        self.board = self.create_board(self.ada, title="Morning routine!")
        for date, action in [
            ("2024-05-01", {"type": "check", "task": "stretch", "time": "2024-05-01T07:15:00.000Z"}),
            ("2024-05-02", {"type": "done", "time": "2024-05-02T21:00:00.000Z"}),
        ]:
            self.client.post(
                "/api/logs",
                json={"boardId": self.board["id"], "date": date, "actions": [action]},
                headers=self.ada,
            )

    def test_markdown_export(self):
        response = self.client.get(
            f"/api/export/{self.board['id']}/markdown", headers=self.ada
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/markdown"))
        self.assertIn(
            'filename="Morning_routine_.md"', response.headers["content-disposition"]
        )
        body = response.text
        self.assertTrue(body.startswith("# Morning routine!"))
        self.assertIn("- [ ] stretch", body)
        self.assertIn("Completed: stretch", body)
        self.assertIn("Board completed", body)
        self.assertLess(body.index("### 2024-05-02"), body.index("### 2024-05-01"))

    def test_csv_export(self):
        response = self.client.get(f"/api/export/{self.board['id']}/csv", headers=self.ada)
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.headers["content-type"].startswith("text/csv"))
        rows = response.text.strip().splitlines()
        self.assertEqual(rows[0], "Date,Time,Action Type,Task,Board")
        self.assertEqual(rows[1], "2024-05-02,21:00:00,done,-,Morning routine!")
        self.assertEqual(rows[2], "2024-05-01,07:15:00,check,stretch,Morning routine!")

    def test_json_export_covers_owned_boards(self):
        response = self.client.get("/api/export/all/json", headers=self.ada)
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["user"]["username"], "ada")
        self.assertEqual([b["id"] for b in data["boards"]], [self.board["id"]])
        self.assertEqual(len(data["logs"]), 2)

    def test_export_of_foreign_board_is_not_found(self):
        grace = self.signup("grace")
        for fmt in ("markdown", "csv"):
            response = self.client.get(
                f"/api/export/{self.board['id']}/{fmt}", headers=grace
            )
            self.assertEqual(response.status_code, 404)


class UnauthenticatedAccessTests(unittest.TestCase):
    OWNER_SCOPED = [
        ("GET", "/api/me", None),
        ("POST", "/api/logout", None),
        ("GET", "/api/boards", None),
        ("GET", "/api/boards/b1", None),
        ("POST", "/api/boards", {"title": "t", "markdownBody": "x"}),
        ("PUT", "/api/boards/b1", {"title": "t"}),
        ("DELETE", "/api/boards/b1", None),
        ("GET", "/api/logs/b1", None),
        ("GET", "/api/logs/b1/2024-05-01", None),
        ("POST", "/api/logs", {"boardId": "b1", "actions": []}),
        ("DELETE", "/api/logs/l1", None),
        ("GET", "/api/notify/b1", None),
        ("POST", "/api/notify", {"boardId": "b1", "message": "m", "time": "t"}),
        ("PATCH", "/api/notify/n1/dismiss", None),
        ("DELETE", "/api/notify/n1", None),
        ("GET", "/api/export/b1/markdown", None),
        ("GET", "/api/export/b1/csv", None),
        ("GET", "/api/export/all/json", None),
    ]

    def setUp(self):
        self.store = SpyStore()
        self.client = TestClient(create_app(settings=make_settings(), store=self.store))

    def test_no_store_calls_without_credentials(self):
        for headers in ({}, {"Authorization": "Bearer not-a-token"}):
            for method, path, body in self.OWNER_SCOPED:
                with self.subTest(method=method, path=path, headers=headers):
                    response = self.client.request(method, path, json=body, headers=headers)
                    self.assertEqual(response.status_code, 401)
                    self.assertFalse(response.json()["success"])
        self.assertEqual(self.store.calls, [])


class ServiceApiTests(unittest.TestCase):
    def test_status_and_index(self):
        client = TestClient(create_app(settings=make_settings(), store=InMemoryKvStore()))
        status = client.get("/")
        self.assertEqual(status.status_code, 200)
        self.assertEqual(status.json()["status"], "ok")
        index = client.get("/api").json()
        self.assertEqual(index["endpoints"]["logs"]["create"], "POST /api/logs")

    def test_unknown_route_uses_error_envelope(self):
        client = TestClient(create_app(settings=make_settings(), store=InMemoryKvStore()))
        response = client.get("/api/nope")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"success": False, "error": "Not Found"})

    def test_storage_fault_is_elided(self):
        client = TestClient(create_app(settings=make_settings(), store=BrokenStore()))
        response = client.post("/api/login", json={"username": "ada", "password": "secret1"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json(), {"success": False, "error": "Internal server error"}
        )

    def test_storage_fault_detail_in_debug_mode(self):
        client = TestClient(
            create_app(settings=make_settings(debug=True), store=BrokenStore())
        )
        response = client.post("/api/login", json={"username": "ada", "password": "secret1"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "disk on fire")

    def test_unexpected_error_is_generic(self):
        app = create_app(settings=make_settings(), store=InMemoryKvStore())

        def explode():
            raise RuntimeError("secret internals")

        app.add_api_route("/boom", explode, methods=["GET"])
        client = TestClient(app, raise_server_exceptions=False)
        response = client.get("/boom")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json(), {"success": False, "error": "Internal server error"}
        )


class MiddlewareApiTests(unittest.TestCase):
    def make_client(self, **overrides):
        app = create_app(settings=make_settings(**overrides), store=InMemoryKvStore())
        return TestClient(app)

    def test_security_headers(self):
        response = self.make_client().get("/")
        self.assertEqual(response.headers["x-content-type-options"], "nosniff")
        self.assertEqual(response.headers["x-frame-options"], "DENY")
        self.assertNotIn("strict-transport-security", response.headers)

        production = self.make_client(environment="production").get("/")
        self.assertIn("max-age=31536000", production.headers["strict-transport-security"])

    def test_auth_routes_have_tighter_limit(self):
        client = self.make_client(rate_limit_enabled=True, auth_rate_limit_max_requests=2)
        body = {"username": "nobody", "password": "secret1"}
        self.assertEqual(client.post("/api/login", json=body).status_code, 401)
        self.assertEqual(client.post("/api/login", json=body).status_code, 401)

        limited = client.post("/api/login", json=body)
        self.assertEqual(limited.status_code, 429)
        payload = limited.json()
        self.assertFalse(payload["success"])
        self.assertGreater(payload["retryAfter"], 0)
        self.assertEqual(limited.headers["x-ratelimit-limit"], "2")
        self.assertEqual(limited.headers["x-ratelimit-remaining"], "0")

        # Other routes draw from the general budget
        self.assertEqual(client.get("/").status_code, 200)

    def test_general_limit(self):
        client = self.make_client(rate_limit_enabled=True, rate_limit_max_requests=3)
        statuses = [client.get("/").status_code for _ in range(4)]
        self.assertEqual(statuses, [200, 200, 200, 429])

    def test_oversized_body_is_rejected(self):
        client = self.make_client(max_body_bytes=16)
        response = client.post(
            "/api/register",
            json={"username": "ada", "password": "a-rather-long-password"},
        )
        self.assertEqual(response.status_code, 413)
        self.assertEqual(response.json()["error"], "Request body too large")

    def test_oversized_chunked_body_is_rejected(self):
        client = self.make_client(max_body_bytes=16)

        def chunks():
            yield b'{"username": "ada", '
            yield b'"password": "a-rather-long-password"}'

        response = client.post(
            "/api/register",
            content=chunks(),
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 413)
        self.assertEqual(
            response.json(), {"success": False, "error": "Request body too large"}
        )

    def test_small_chunked_body_passes(self):
        client = self.make_client()

        def chunks():
            yield b'{"username": "ada", '
            yield b'"password": "secret1"}'

        response = client.post(
            "/api/register",
            content=chunks(),
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 201)

    def test_slow_request_times_out(self):
        app = create_app(
            settings=make_settings(request_timeout_seconds=0.05),
            store=InMemoryKvStore(),
        )

        async def slow():
            await asyncio.sleep(0.5)
            return {"done": True}

        app.add_api_route("/slow", slow, methods=["GET"])
        response = TestClient(app).get("/slow")
        self.assertEqual(response.status_code, 504)
        self.assertEqual(
            response.json(),
            {
                "success": False,
                "error": "Request timeout",
                "message": "The request took too long to process",
            },
        )

    def test_fast_request_is_not_timed_out(self):
        response = self.make_client(request_timeout_seconds=5).get("/")
        self.assertEqual(response.status_code, 200)


if __name__ == "__main__":
    unittest.main()
