import json
import re
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlparse

import pytest

from metabase_provider.core.client import MetabaseClient

ADMIN_USER = "admin@example.com"
ADMIN_PASSWORD = "s3cret"
SESSION_ID = "SESSION-123"
API_KEY = "mb_TESTKEY"


class FakeState:
    """In-memory Metabase: databases, groups and users plus a request log."""

    def __init__(self):
        self.requests = []          # (method, path, body)
        self.next_id = {"database": 10, "group": 3, "user": 2}
        self.databases = {}
        self.groups = {
            1: {"id": 1, "name": "All Users"},
            2: {"id": 2, "name": "Administrators"},
        }
        self.users = {
            1: self._new_user(1, ADMIN_USER, "Ad", "Min", [1, 2], superuser=True),
        }
        self.fail_superuser_update = False
        self.fail_status = {}       # (method, path) -> status

    @staticmethod
    def _new_user(uid, email, first, last, groups, superuser=False):
        return {
            "id": uid,
            "email": email,
            "first_name": first,
            "last_name": last,
            "common_name": " ".join(x for x in (first, last) if x) or None,
            "locale": None,
            "groups": list(groups),
            "is_active": True,
            "is_superuser": superuser,
            "is_qbnewb": True,
            "google_auth": False,
            "ldap_auth": False,
            "is_installer": uid == 1,
            "has_invited_second_user": False,
            "has_question_and_dashboard": False,
            "date_joined": "2024-01-01T00:00:00Z",
            "first_login": None,
            "last_login": None,
            "updated_at": "2024-01-01T00:00:00Z",
        }

    def allocate(self, kind):
        value = self.next_id[kind]
        self.next_id[kind] += 1
        return value

    def calls(self, method, pattern):
        rx = re.compile(pattern)
        return [r for r in self.requests if r[0] == method and rx.fullmatch(r[1])]

    # ---- representations ----

    @staticmethod
    def database_view(db):
        out = dict(db)
        details = dict(db["details"] or {})
        for key in ("password", "service-account-json"):
            if key in details:
                details[key] = "**MetabasePass**"
        out["details"] = details
        return out

    @staticmethod
    def user_view(user):
        out = {k: v for k, v in user.items() if k != "groups"}
        out["user_group_memberships"] = [{"id": g} for g in user["groups"]]
        return out


class _Handler(BaseHTTPRequestHandler):
    protocol_version = "HTTP/1.1"

    @property
    def fake(self) -> FakeState:
        return self.server.fake  # type: ignore[attr-defined]

    def _send_json(self, status, obj=None):
        raw = b"" if obj is None else json.dumps(obj).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        if raw:
            self.wfile.write(raw)

    def _body(self):
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b""
        return json.loads(raw.decode("utf-8")) if raw else None

    def _auth_ok(self):
        return (
            self.headers.get("X-Metabase-Session") == SESSION_ID
            or self.headers.get("X-API-KEY") == API_KEY
        )

    def _dispatch(self, method):
        path = urlparse(self.path).path
        body = self._body()
        self.fake.requests.append((method, path, body))

        forced = self.fake.fail_status.get((method, path))
        if forced:
            self._send_json(forced, {"message": "forced failure"})
            return

        if method == "POST" and path == "/api/session":
            if body and body.get("username") == ADMIN_USER and body.get("password") == ADMIN_PASSWORD:
                self._send_json(200, {"id": SESSION_ID})
            else:
                self._send_json(401, {"errors": {"password": "did not match stored password"}})
            return

        if not self._auth_ok():
            self._send_json(401, {"message": "Unauthenticated"})
            return

        for rx, handler in _ROUTES:
            m = rx.fullmatch(path)
            if m and handler[0] == method:
                handler[1](self, body, *m.groups())
                return
        self._send_json(404, {"message": "Not found."})

    def do_GET(self):  # noqa: N802
        self._dispatch("GET")

    def do_POST(self):  # noqa: N802
        self._dispatch("POST")

    def do_PUT(self):  # noqa: N802
        self._dispatch("PUT")

    def do_DELETE(self):  # noqa: N802
        self._dispatch("DELETE")

    def log_message(self, fmt, *args):  # silence server logs during tests
        return

    # ---- databases ----

    def get_database(self, body, db_id):
        db = self.fake.databases.get(int(db_id))
        if db is None:
            self._send_json(404, {"message": "Not found."})
            return
        self._send_json(200, FakeState.database_view(db))

    def post_database(self, body, *_):
        db_id = self.fake.allocate("database")
        details = dict(body.get("details") or {})
        details.setdefault("let-user-control-scheduling", False)
        db = {
            "id": db_id,
            "name": body["name"],
            "engine": body["engine"],
            "details": details,
            "schedules": {},
            "features": ["basic-aggregations", "nested-queries"],
            "auto_run_queries": True,
            "refingerprint": None,
            "caveats": None,
            "points_of_interest": None,
            "cache_ttl": None,
            "settings": None,
            "is_full_sync": True,
        }
        self.fake.databases[db_id] = db
        self._send_json(200, FakeState.database_view(db))

    def put_database(self, body, db_id):
        db = self.fake.databases.get(int(db_id))
        if db is None:
            self._send_json(404, {"message": "Not found."})
            return
        for key in ("name", "engine", "details", "caveats", "points_of_interest",
                    "auto_run_queries", "cache_ttl", "settings", "refingerprint"):
            if key in body:
                db[key] = body[key]
        self._send_json(200, FakeState.database_view(db))

    def delete_database(self, body, db_id):
        if self.fake.databases.pop(int(db_id), None) is None:
            self._send_json(404, {"message": "Not found."})
            return
        self._send_json(204)

    # ---- permissions groups ----

    def get_group(self, body, group_id):
        group = self.fake.groups.get(int(group_id))
        if group is None:
            self._send_json(404, {"message": "Not found."})
            return
        self._send_json(200, group)

    def post_group(self, body, *_):
        group_id = self.fake.allocate("group")
        self.fake.groups[group_id] = {"id": group_id, "name": body["name"]}
        self._send_json(200, self.fake.groups[group_id])

    def put_group(self, body, group_id):
        group = self.fake.groups.get(int(group_id))
        if group is None:
            self._send_json(404, {"message": "Not found."})
            return
        group["name"] = body["name"]
        self._send_json(200, group)

    def delete_group(self, body, group_id):
        if self.fake.groups.pop(int(group_id), None) is None:
            self._send_json(404, {"message": "Not found."})
            return
        self._send_json(204)

    # ---- users ----

    def get_current_user(self, body, *_):
        self._send_json(200, FakeState.user_view(self.fake.users[1]))

    def get_user(self, body, user_id):
        user = self.fake.users.get(int(user_id))
        if user is None or not user["is_active"]:
            self._send_json(404, {"message": "Not found."})
            return
        self._send_json(200, FakeState.user_view(user))

    def post_user(self, body, *_):
        user_id = self.fake.allocate("user")
        groups = [m["id"] for m in body.get("user_group_memberships") or []]
        if 1 not in groups:
            groups.append(1)
        user = FakeState._new_user(user_id, body["email"], body.get("first_name"), body.get("last_name"), groups)
        self.fake.users[user_id] = user
        self._send_json(200, FakeState.user_view(user))

    def put_user(self, body, user_id):
        user = self.fake.users.get(int(user_id))
        if user is None or not user["is_active"]:
            self._send_json(404, {"message": "Not found."})
            return
        if body.get("is_superuser") and self.fake.fail_superuser_update:
            self._send_json(500, {"message": "boom"})
            return
        for key in ("email", "first_name", "last_name", "locale", "is_superuser"):
            if key in body:
                user[key] = body[key]
        if "user_group_memberships" in body:
            user["groups"] = [m["id"] for m in body["user_group_memberships"]]
        if user["is_superuser"] and 2 not in user["groups"]:
            user["groups"].append(2)
        if not user["is_superuser"] and 2 in user["groups"]:
            user["groups"].remove(2)
        self._send_json(200, FakeState.user_view(user))

    def reactivate_user(self, body, user_id):
        user = self.fake.users.get(int(user_id))
        if user is None:
            self._send_json(404, {"message": "Not found."})
            return
        if user["is_active"]:
            self._send_json(400, {"message": "Not able to reactivate an active user"})
            return
        user["is_active"] = True
        self._send_json(200, {"success": True})

    def disable_user(self, body, user_id):
        user = self.fake.users.get(int(user_id))
        if user is None:
            self._send_json(404, {"message": "Not found."})
            return
        user["is_active"] = False
        self._send_json(200, {"success": True})


_ROUTES = [
    (re.compile(r"/api/database/(\d+)"), ("GET", _Handler.get_database)),
    (re.compile(r"/api/database"), ("POST", _Handler.post_database)),
    (re.compile(r"/api/database/(\d+)"), ("PUT", _Handler.put_database)),
    (re.compile(r"/api/database/(\d+)"), ("DELETE", _Handler.delete_database)),
    (re.compile(r"/api/permissions/group/(\d+)"), ("GET", _Handler.get_group)),
    (re.compile(r"/api/permissions/group"), ("POST", _Handler.post_group)),
    (re.compile(r"/api/permissions/group/(\d+)"), ("PUT", _Handler.put_group)),
    (re.compile(r"/api/permissions/group/(\d+)"), ("DELETE", _Handler.delete_group)),
    (re.compile(r"/api/user/current"), ("GET", _Handler.get_current_user)),
    (re.compile(r"/api/user/(\d+)"), ("GET", _Handler.get_user)),
    (re.compile(r"/api/user"), ("POST", _Handler.post_user)),
    (re.compile(r"/api/user/(\d+)/reactivate"), ("PUT", _Handler.reactivate_user)),
    (re.compile(r"/api/user/(\d+)"), ("PUT", _Handler.put_user)),
    (re.compile(r"/api/user/(\d+)"), ("DELETE", _Handler.disable_user)),
]


@pytest.fixture()
def metabase():
    """Start a fake Metabase on an ephemeral port; yields (base_url, FakeState)."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    server.fake = FakeState()  # type: ignore[attr-defined]
    host, port = server.server_address
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://{host}:{port}", server.fake
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)


@pytest.fixture()
def client(metabase):
    base_url, _ = metabase
    return MetabaseClient(base_url, username=ADMIN_USER, password=ADMIN_PASSWORD)
