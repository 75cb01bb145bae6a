"""
Shared fixtures: an in-memory Supabase client, a static Google token
provider, and a HologramService wired to both with zero poll intervals.
"""

import itertools
from types import SimpleNamespace

import httpx
import pytest

from holoframe import metrics
from holoframe.pipeline import replicate, veo
from holoframe.pipeline.orchestrator import HologramService

PUBLIC_BASE = "https://fake.supabase.co/storage/v1/object/public"


# ── Fake Supabase ─────────────────────────────────────────────────────────────

class FakeResult:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self._limit = None
        self._order = None

    def select(self, *columns, **kwargs):
        self.op = "select"
        return self

    def insert(self, row):
        self.op = "insert"
        self.payload = row
        return self

    def update(self, values):
        self.op = "update"
        self.payload = values
        return self

    def eq(self, column, value):
        self.filters.append(lambda r: r.get(column) == value)
        return self

    def in_(self, column, values):
        self.filters.append(lambda r: r.get(column) in values)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def execute(self):
        self.db.query_log.append((self.table, self.op, self.payload))
        if self.db.fail_tables.get(self.table) == self.op:
            raise RuntimeError(f"{self.table}.{self.op} unavailable")

        rows = self.db.tables.setdefault(self.table, [])
        if self.op == "insert":
            row = {"id": next(self.db.ids), "created_at": "2026-01-01T00:00:00Z", **self.payload}
            rows.append(row)
            return FakeResult([dict(row)])

        matched = [r for r in rows if all(f(r) for f in self.filters)]
        if self.op == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResult([dict(r) for r in matched])

        if self._order:
            column, desc = self._order
            matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
        if self._limit is not None:
            matched = matched[:self._limit]
        return FakeResult([dict(r) for r in matched])


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def list(self, folder, options=None):
        self.storage.list_calls.append((folder, options))
        prefix = f"{folder}/"
        entries = []
        for path, obj in self.storage.objects.items():
            if path.startswith(prefix) and "/" not in path[len(prefix):]:
                entries.append({
                    "name": path[len(prefix):],
                    "id": obj["id"],
                    "created_at": obj["created_at"],
                    "updated_at": obj["created_at"],
                    "metadata": {"size": len(obj["data"]), "mimetype": obj["content_type"]},
                })
        return entries

    def upload(self, path, data, file_options=None):
        file_options = file_options or {}
        self.storage.upload_calls.append((path, file_options))
        if path in self.storage.objects and file_options.get("upsert") != "true":
            raise RuntimeError("The resource already exists")
        self.storage.objects[path] = {
            "id": f"obj-{len(self.storage.objects) + 1}",
            "data": data,
            "content_type": file_options.get("content-type"),
            "created_at": f"2026-01-01T00:00:{len(self.storage.objects):02d}Z",
        }
        return {"path": path}

    def get_public_url(self, path):
        return f"{PUBLIC_BASE}/{self.name}/{path}"

    def remove(self, paths):
        for path in paths:
            self.storage.objects.pop(path, None)
        return [{"name": p} for p in paths]


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.list_calls = []
        self.upload_calls = []

    def from_(self, bucket):
        return FakeBucket(self, bucket)

    def put(self, path, data=b"x", content_type="application/octet-stream", created_at=None):
        self.objects[path] = {
            "id": f"seed-{len(self.objects) + 1}",
            "data": data,
            "content_type": content_type,
            "created_at": created_at or f"2025-12-01T00:00:{len(self.objects):02d}Z",
        }


class FakeAuth:
    def __init__(self):
        self.sessions = {}

    def get_user(self, jwt):
        if jwt not in self.sessions:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=SimpleNamespace(id=self.sessions[jwt]))


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.fail_tables = {}
        self.query_log = []
        self.ids = itertools.count(1)
        self.storage = FakeStorage()
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def add_user(self, user_id, credit, nickname=None, token=None):
        self.tables.setdefault("profiles", []).append(
            {"id": user_id, "nickname": nickname, "credit": credit}
        )
        token = token or f"jwt-{user_id}"
        self.auth.sessions[token] = user_id
        return token

    def credit_of(self, user_id):
        return next(r["credit"] for r in self.tables["profiles"] if r["id"] == user_id)


# ── Fake Google credentials ───────────────────────────────────────────────────

class FakeTokenProvider:
    def __init__(self, token="ya29.test-token-abcdefghijklmnop", project_id="test-project"):
        self.token = token
        self.source = SimpleNamespace(project_id=project_id, auth_method="Test Credentials")
        self.credentials = object()
        self.calls = 0

    def get_access_token(self):
        self.calls += 1
        return self.token


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def token_provider():
    return FakeTokenProvider()


@pytest.fixture(autouse=True)
def provider_config(monkeypatch):
    monkeypatch.setattr(replicate, "REPLICATE_API_TOKEN", "r8_test")
    monkeypatch.setattr(replicate, "REPLICATE_REMBG_VERSION", "rembg-version-1")
    monkeypatch.setattr(replicate, "REPLICATE_VIDEO_MODEL", "google/veo-3-fast")
    # Project comes from the token provider's credentials in tests
    monkeypatch.setattr(veo, "GOOGLE_PROJECT_ID", "")
    monkeypatch.setattr(veo, "VEO_OUTPUT_STORAGE_URI", "")


@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by `handler(request)`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def make_service(fake_supabase, token_provider):
    def _make(handler, credit_cost=10):
        return HologramService(
            supabase=fake_supabase,
            client=mock_client(handler),
            token_provider=token_provider,
            credit_cost=credit_cost,
            replicate_poll_interval=0,
            veo_poll_interval=0,
        )
    return _make
