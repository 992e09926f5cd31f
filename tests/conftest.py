"""
pytest configuration and shared fixtures for the Rapid Response Hub tests.

Key concern: tests must not require a live MongoDB, SMTP server or Twilio
account. We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops so
     FastAPI's lifespan doesn't try to reach a real database.
  2. Overriding get_db with an in-memory FakeDB that mimics the subset of
     the Motor API the services use.
  3. Overriding get_dispatcher with a real NotificationDispatcher wired to
     recording fake providers.
"""

import copy
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
for _var in ("SMTP_USER", "SMTP_PASS", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
    os.environ[_var] = ""


# ── In-memory MongoDB emulator ─────────────────────────────────────────────────

_MISSING = object()


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        value = doc.get(key, _MISSING)
        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$exists":
                    if (value is not _MISSING) != arg:
                        return False
                elif op == "$in":
                    if value not in arg:
                        return False
                elif op == "$ne":
                    if value == arg:
                        return False
                elif op == "$gte":
                    if value is _MISSING or value is None or value < arg:
                        return False
                else:
                    raise NotImplementedError(op)
        elif value is _MISSING or value != cond:
            return False
    return True


def _apply_update(doc: dict, update: dict) -> None:
    for key, value in update.get("$set", {}).items():
        doc[key] = copy.deepcopy(value)
    for key, value in update.get("$inc", {}).items():
        doc[key] = doc.get(key, 0) + value
    for key, value in update.get("$push", {}).items():
        items = value["$each"] if isinstance(value, dict) and "$each" in value else [value]
        doc.setdefault(key, []).extend(copy.deepcopy(items))


class FakeCursor:
    def __init__(self, docs: list[dict]):
        self._docs = docs

    def sort(self, key, direction=None):
        keys = key if isinstance(key, list) else [(key, direction if direction is not None else 1)]
        for field, order in reversed(keys):
            self._docs.sort(key=lambda d: d.get(field) or 0, reverse=order < 0)
        return self

    def skip(self, n: int):
        self._docs = self._docs[n:]
        return self

    def limit(self, n: int):
        self._docs = self._docs[:n]
        return self

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for doc in self._docs:
            yield doc


class FakeCollection:
    """Minimal async-compatible replica of a Motor collection."""

    def __init__(self):
        self._docs: list[dict] = []

    async def find_one(self, query: dict):
        for doc in self._docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    def find(self, query: dict | None = None):
        return FakeCursor([copy.deepcopy(d) for d in self._docs if _matches(d, query or {})])

    async def count_documents(self, query: dict) -> int:
        return sum(1 for d in self._docs if _matches(d, query))

    async def insert_one(self, doc: dict):
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self._docs.append(stored)
        result = MagicMock()
        result.inserted_id = stored["_id"]
        return result

    async def update_one(self, query: dict, update: dict):
        result = MagicMock()
        result.matched_count = result.modified_count = 0
        for doc in self._docs:
            if _matches(doc, query):
                _apply_update(doc, update)
                result.matched_count = result.modified_count = 1
                break
        return result

    async def update_many(self, query: dict, update: dict):
        hits = [d for d in self._docs if _matches(d, query)]
        for doc in hits:
            _apply_update(doc, update)
        result = MagicMock()
        result.matched_count = result.modified_count = len(hits)
        return result

    async def delete_one(self, query: dict):
        result = MagicMock()
        result.deleted_count = 0
        for doc in self._docs:
            if _matches(doc, query):
                self._docs.remove(doc)
                result.deleted_count = 1
                break
        return result

    async def create_index(self, *args, **kwargs):
        return "ok"

    # Test helpers
    def all(self) -> list[dict]:
        return self._docs


class FakeDB:
    """Fake MongoDB database — lazily creates collections."""

    def __init__(self):
        self._cols: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._cols:
            self._cols[name] = FakeCollection()
        return self._cols[name]


# ── Fake notification providers ───────────────────────────────────────────────

class RecordingEmailProvider:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, to, subject, html_body, text_body):
        if self.fail:
            raise ConnectionError("SMTP down")
        self.sent.append({"to": to, "subject": subject, "html": html_body, "text": text_body})


class RecordingSMSProvider:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, to, body):
        if self.fail:
            raise ConnectionError("Twilio unreachable")
        self.sent.append({"to": to, "body": body})


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test and leave db_client
    disconnected, so the health check reports "disconnected".
    """
    with (
        patch("rapid_response.main.connect_to_mongo", new_callable=AsyncMock),
        patch("rapid_response.main.close_mongo_connection", new_callable=AsyncMock),
    ):
        import rapid_response.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from rapid_response.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
def fake_db():
    """Fresh in-memory DB for each test."""
    return FakeDB()


@pytest.fixture()
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture()
def sms_provider():
    return RecordingSMSProvider()


@pytest.fixture()
def dispatcher(email_provider, sms_provider):
    from rapid_response.services.notifier import NotificationDispatcher, NotifierConfig

    return NotificationDispatcher(
        NotifierConfig(timeout_seconds=2.0),
        email_provider=email_provider,
        sms_provider=sms_provider,
    )


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 — mock_db must run first
    """HTTPX client against the app with no database (degraded mode)."""
    from rapid_response.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def api_client(fake_db, dispatcher):
    """HTTPX client with get_db and get_dispatcher overridden."""
    from rapid_response.core.database import get_db
    from rapid_response.main import app
    from rapid_response.services.notifier import get_dispatcher

    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Helpers ───────────────────────────────────────────────────────────────────

async def make_user(
    db: FakeDB,
    email: str,
    role: str = "citizen",
    name: str = "Test User",
    phone: str | None = None,
    is_active: bool = True,
) -> tuple[str, dict]:
    """Insert a user directly and return (user_id, auth headers)."""
    from rapid_response.core.security import create_access_token

    result = await db["users"].insert_one(
        {
            "name": name,
            "email": email,
            "phone": phone,
            # Never checked by these helpers; login tests go through /register.
            "hashed_password": "not-a-real-hash",
            "role": role,
            "avatar": None,
            "is_active": is_active,
            "created_at": datetime.now(tz=timezone.utc),
        }
    )
    user_id = str(result.inserted_id)
    token = create_access_token(user_id, email=email, role=role)
    return user_id, {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def citizen(fake_db):
    return await make_user(fake_db, "citizen@example.com", name="Casey Citizen", phone="+15550001111")


@pytest.fixture()
async def admin(fake_db):
    return await make_user(fake_db, "admin@example.com", role="admin", name="Ada Admin")


INCIDENT_PAYLOAD = {
    "title": "Car crash on high street",
    "description": "Two cars collided at the junction, one driver injured.",
    "type": "accident",
    "severity": "high",
    "location": {"address": "1 High Street, London", "lat": 51.5074, "lng": -0.1278},
}
