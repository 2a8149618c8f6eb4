"""Shared test fixtures."""

import os
import time
import uuid
from copy import deepcopy

os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "service-role-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-for-hs256")
os.environ.setdefault("API_SECRET", "test-api-secret")
os.environ.setdefault("FISH_AUDIO_API_KEY", "server-fish-key")
os.environ.setdefault("RATE_LIMIT_STANDARD", "10000")
os.environ.setdefault("RATE_LIMIT_PROXY", "10000")
os.environ.setdefault("TRUSTED_PROXIES", "testclient")

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

from floaty.config.settings import get_settings
from floaty.main import app
from floaty.proxy.http import get_http_client_factory
from floaty.knowledge import service as knowledge_service
from floaty.sync import service as sync_service
from floaty.utils.dates import utc_now_iso

API_KEY = os.environ["API_SECRET"]


# --- In-memory PostgREST stand-in ---

class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, store: list[dict]):
        self._store = store
        self._op = "select"
        self._columns: list[str] | None = None
        self._count = None
        self._payload = None
        self._on_conflict = "id"
        self._filters = []
        self._order: list[tuple[str, bool]] = []
        self._range: tuple[int, int] | None = None
        self._limit: int | None = None

    # Operations
    def select(self, columns: str = "*", count=None):
        self._op = "select"
        self._columns = None if columns.strip() == "*" else [c.strip() for c in columns.split(",")]
        self._count = count
        return self

    def insert(self, payload):
        self._op, self._payload = "insert", payload
        return self

    def upsert(self, payload, on_conflict: str = "id"):
        self._op, self._payload, self._on_conflict = "upsert", payload, on_conflict
        return self

    def update(self, payload):
        self._op, self._payload = "update", payload
        return self

    def delete(self):
        self._op = "delete"
        return self

    # Filters
    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def gt(self, column, value):
        self._filters.append(lambda row: row.get(column) is not None and str(row[column]) > str(value))
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc: bool = False):
        self._order.append((column, desc))
        return self

    def range(self, start: int, end: int):
        self._range = (start, end)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    # Execution
    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    @staticmethod
    def _defaults(row: dict) -> dict:
        now = utc_now_iso()
        row = deepcopy(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", now)
        row.setdefault("updated_at", now)
        return row

    def _rows(self, payload) -> list[dict]:
        return payload if isinstance(payload, list) else [payload]

    def execute(self) -> FakeResult:
        if self._op == "insert":
            created = [self._defaults(r) for r in self._rows(self._payload)]
            self._store.extend(created)
            return FakeResult(deepcopy(created))

        if self._op == "upsert":
            written = []
            for incoming in self._rows(self._payload):
                key = incoming.get(self._on_conflict)
                existing = next((r for r in self._store if key is not None and r.get(self._on_conflict) == key), None)
                if existing is not None:
                    existing.update(deepcopy(incoming))
                    written.append(deepcopy(existing))
                else:
                    row = self._defaults(incoming)
                    self._store.append(row)
                    written.append(deepcopy(row))
            return FakeResult(written)

        if self._op == "update":
            updated = []
            for row in self._store:
                if self._matches(row):
                    row.update(deepcopy(self._payload))
                    updated.append(deepcopy(row))
            return FakeResult(updated)

        if self._op == "delete":
            removed = [r for r in self._store if self._matches(r)]
            self._store[:] = [r for r in self._store if not self._matches(r)]
            return FakeResult(removed)

        rows = [r for r in self._store if self._matches(r)]
        for column, desc in reversed(self._order):
            rows.sort(key=lambda r: str(r.get(column) or ""), reverse=desc)
        total = len(rows)
        if self._range is not None:
            rows = rows[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        if self._columns is not None:
            rows = [{c: r.get(c) for c in self._columns} for r in rows]
        return FakeResult(deepcopy(rows), count=total if self._count else None)


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failures: dict[str, list[Exception]] = {}

    def table(self, name: str) -> FakeQuery:
        failures = self.failures.get(name)
        if failures:
            raise failures.pop(0)
        return FakeQuery(self.tables.setdefault(name, []))

    def fail_next(self, table: str, exc: Exception, times: int = 1) -> None:
        self.failures.setdefault(table, []).extend([exc] * times)


@pytest.fixture(autouse=True)
def db(monkeypatch):
    fake = FakeSupabase()
    modules = (
        "floaty.sessions.repository",
        "floaty.messages.service",
        "floaty.sync.repository",
        "floaty.knowledge.repository",
    )
    for module in modules:
        monkeypatch.setattr(f"{module}.get_supabase", lambda: fake)
    sync_service.reset_services()
    knowledge_service.forget_entries()
    yield fake
    sync_service.reset_services()


# --- HTTP client ---

@pytest.fixture(scope="module")
def client():
    return TestClient(app)


@pytest.fixture
def api_key_header():
    return {"x-api-key": API_KEY}


@pytest.fixture
def mock_http():
    """Route outbound proxy requests to a handler: mock_http(lambda request: httpx.Response(...))."""

    def install(handler):
        transport = httpx.MockTransport(handler)

        def factory(**kwargs):
            return httpx.AsyncClient(transport=transport, **kwargs)

        app.dependency_overrides[get_http_client_factory] = lambda: factory

    yield install
    app.dependency_overrides.pop(get_http_client_factory, None)


# --- Supabase users ---

def make_token(user_id: str, email: str = "user@example.com", expires_in: int = 3600) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, get_settings().SUPABASE_JWT_SECRET, algorithm="HS256")


@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def auth_header(user_id):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def other_auth_header():
    return {"Authorization": f"Bearer {make_token(str(uuid.uuid4()), 'other@example.com')}"}
