"""Shared test fixtures for the Ordino test suite."""

import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

# Add project root to path
BASE_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BASE_DIR))


class FakeResult:
    """Stands in for a SQLAlchemy Result over a fixed list of rows."""

    def __init__(self, rows=None):
        self.rows = list(rows or [])

    def scalars(self):
        return self

    def all(self):
        return list(self.rows)

    def scalar_one_or_none(self):
        return self.rows[0] if self.rows else None

    def scalar_one(self):
        return self.rows[0]

    def one(self):
        return self.rows[0]


class FakeSession:
    """
    Minimal AsyncSession double.

    execute() hands back the queued results in order; get() looks records
    up by (model, id).
    """

    def __init__(self, results=None, records=None):
        self.results = list(results or [])
        self.records = dict(records or {})
        self.added = []
        self.deleted = []
        self.commits = 0
        self.rollbacks = 0

    def add(self, obj):
        self.added.append(obj)

    def add_all(self, objs):
        self.added.extend(objs)

    async def execute(self, statement):
        return self.results.pop(0) if self.results else FakeResult()

    async def get(self, model, record_id):
        return self.records.get((model, record_id))

    async def delete(self, obj):
        self.deleted.append(obj)

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1

    async def flush(self):
        pass

    def of_type(self, model):
        return [obj for obj in self.added if isinstance(obj, model)]


@pytest.fixture
def fake_db():
    return FakeSession()


@pytest.fixture
def company():
    return SimpleNamespace(
        id=uuid.uuid4(),
        name="Demo Expediting LLC",
        email="office@demo.local",
        phone="(212) 555-0100",
        address="100 Broadway\nNew York, NY 10005"
    )


@pytest.fixture
def user():
    return SimpleNamespace(
        id=uuid.uuid4(),
        email="pm@demo.local",
        full_name="Pat Manager",
        is_active=True,
        is_superuser=False
    )


@pytest.fixture
def mock_http(monkeypatch):
    """
    Route every httpx.AsyncClient through a handler.

    Usage:
        calls = mock_http(lambda request: httpx.Response(200, json={...}))
    """
    real_client = httpx.AsyncClient

    def install(handler):
        calls = []

        def recording(request):
            calls.append(request)
            return handler(request)

        def client_factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(recording)
            return real_client(*args, **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", client_factory)
        return calls

    return install


@pytest.fixture
def api(company, user):
    """
    TestClient with auth and the database overridden.

    The membership role defaults to admin; set `api.member.role` to test
    role checks.
    """
    from fastapi.testclient import TestClient

    from api.auth.dependencies import (
        get_current_company, get_current_membership, get_current_user
    )
    from api.main import app
    from api.middleware.rate_limit import limiter
    from database.connection import get_db

    member = SimpleNamespace(
        company_id=company.id,
        user_id=user.id,
        role="admin",
        is_active=True,
        created_at=datetime.now(timezone.utc)
    )

    async def override_db():
        yield FakeSession()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_current_membership] = lambda: member
    app.dependency_overrides[get_current_company] = lambda: company
    limiter.enabled = False

    client = TestClient(app)
    client.member = member
    yield client

    app.dependency_overrides.clear()
    limiter.enabled = True
