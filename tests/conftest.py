"""
pytest configuration and shared fixtures for the VeriSight tests.

Tests must not require a live MongoDB. We achieve this by:
  1. Patching connect_to_mongo / close_mongo_connection to no-ops.
  2. Setting db_client.client / db_client.db = None (disconnected).
  3. Handing stores an in-memory FakeDB that mimics the subset of the Motor
     API the key/value store uses (find_one / replace_one / insert_one /
     delete_one).
"""

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("ENVIRONMENT", "test")


# ── In-memory MongoDB emulator ─────────────────────────────────────────────────

class FakeCollection:
    """Minimal async-compatible replica of a Motor collection keyed by _id."""

    def __init__(self):
        self.docs: dict[str, dict] = {}

    async def find_one(self, query: dict):
        doc = self.docs.get(query.get("_id"))
        return dict(doc) if doc is not None else None

    async def replace_one(self, query: dict, doc: dict, upsert: bool = False):
        key = query["_id"]
        result = MagicMock()
        if key in self.docs or upsert:
            self.docs[key] = dict(doc)
            result.modified_count = 1
        else:
            result.modified_count = 0
        return result

    async def insert_one(self, doc: dict):
        if doc["_id"] in self.docs:
            raise DuplicateKeyError(f"E11000 duplicate key error: _id {doc['_id']!r}")
        self.docs[doc["_id"]] = dict(doc)
        result = MagicMock()
        result.inserted_id = doc["_id"]
        return result

    async def delete_one(self, query: dict):
        result = MagicMock()
        result.deleted_count = 1 if self.docs.pop(query.get("_id"), None) is not None else 0
        return result


class YieldingCollection(FakeCollection):
    """Suspends before every call, like a real network round trip."""

    async def find_one(self, query: dict):
        await asyncio.sleep(0)
        return await super().find_one(query)

    async def replace_one(self, query: dict, doc: dict, upsert: bool = False):
        await asyncio.sleep(0)
        return await super().replace_one(query, doc, upsert)

    async def insert_one(self, doc: dict):
        await asyncio.sleep(0)
        return await super().insert_one(doc)


class BrokenCollection(FakeCollection):
    """Every driver call fails as if the server were unreachable."""

    async def find_one(self, query: dict):
        raise ServerSelectionTimeoutError("no servers available")

    async def replace_one(self, query: dict, doc: dict, upsert: bool = False):
        raise ServerSelectionTimeoutError("no servers available")

    async def insert_one(self, doc: dict):
        raise ServerSelectionTimeoutError("no servers available")

    async def delete_one(self, query: dict):
        raise ServerSelectionTimeoutError("no servers available")


class FakeDB:
    """Fake MongoDB database — lazily creates collections."""

    def __init__(self, collection_cls=FakeCollection):
        self._cls = collection_cls
        self._cols: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._cols:
            self._cols[name] = self._cls()
        return self._cols[name]


@pytest.fixture()
def fake_db():
    """Fresh in-memory DB for each test."""
    return FakeDB()


@pytest.fixture()
def broken_db():
    return FakeDB(BrokenCollection)


@pytest.fixture()
def yielding_db():
    return FakeDB(YieldingCollection)


# ── Lifecycle patches ─────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
async def mock_db():
    """
    Patch the MongoDB lifecycle for every test and leave the global client
    disconnected. Tests that need storage use fake_db explicitly.
    """
    with (
        patch("verisight.core.database.connect_to_mongo", new_callable=AsyncMock),
        patch("verisight.core.database.close_mongo_connection", new_callable=AsyncMock),
    ):
        import verisight.core.database as db_module

        original_client = db_module.db_client.client
        original_db = db_module.db_client.db

        db_module.db_client.client = None
        db_module.db_client.db = None

        yield

        db_module.db_client.client = original_client
        db_module.db_client.db = original_db


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from verisight.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
async def client(mock_db):  # noqa: ARG001 (mock_db must run first)
    """HTTPX async test client wired to the FastAPI app."""
    from verisight.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
