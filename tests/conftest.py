# tests/conftest.py
import sys
import os

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT_DIR)

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from api.main import app
from api.auth import get_services
from api.rate_limit import limiter
from finder.db import Store
from finder.models import SearchResult
from utils.config import Settings

NOW = datetime(2025, 3, 10, 14, 0, tzinfo=timezone.utc)


def _matches(doc, q):
    for k, v in (q or {}).items():
        docv = doc.get(k)
        if isinstance(v, dict):
            if "$in" in v and docv not in v["$in"]:
                return False
            if any(op in v for op in ("$lt", "$lte", "$gt", "$gte")) and docv is None:
                return False
            if "$lt" in v and not docv < v["$lt"]:
                return False
            if "$lte" in v and not docv <= v["$lte"]:
                return False
            if "$gt" in v and not docv > v["$gt"]:
                return False
            if "$gte" in v and not docv >= v["$gte"]:
                return False
        elif docv != v:
            return False
    return True


class Result:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class FakeCursor:
    """Chainable stand-in for a Motor cursor over in-memory documents."""

    def __init__(self, docs: List[Dict[str, Any]]):
        self._docs = list(docs)
        self._skip = 0
        self._limit = None

    def sort(self, order):
        # only the first key is honoured; missing values sort as empty strings
        field, direction = order[0]
        self._docs.sort(key=lambda d: str(d.get(field) or ""), reverse=(direction < 0))
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    async def to_list(self, length=None):
        start = self._skip
        end = None if self._limit is None else start + self._limit
        docs = self._docs[start:end]
        if length is not None:
            docs = docs[:length]
        return [dict(d) for d in docs]


class FakeCollection:
    """
    In-memory collection with the subset of the Motor API the store uses.

    Supports equality filters plus $in/$lt/$lte/$gt/$gte, $set updates and
    the bulk calls. Put a method name in ``fail_on`` to make it raise.
    """

    def __init__(self, docs=None):
        self.docs = [dict(d) for d in (docs or [])]
        for d in self.docs:
            d.setdefault("_id", str(ObjectId()))
        self.fail_on = set()
        self.sessions = []

    def _maybe_fail(self, name):
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def find(self, q=None, projection=None):
        self._maybe_fail("find")
        return FakeCursor([d for d in self.docs if _matches(d, q)])

    async def find_one(self, q):
        self._maybe_fail("find_one")
        for d in self.docs:
            if _matches(d, q):
                return dict(d)
        return None

    async def insert_one(self, doc):
        self._maybe_fail("insert_one")
        doc = dict(doc)
        doc.setdefault("_id", str(ObjectId()))
        self.docs.append(doc)
        return Result(inserted_id=doc["_id"])

    async def insert_many(self, docs, ordered=True, session=None):
        self._maybe_fail("insert_many")
        self.sessions.append(session)
        new = []
        for doc in docs:
            doc = dict(doc)
            doc.setdefault("_id", str(ObjectId()))
            new.append(doc)
        self.docs.extend(new)
        return Result(inserted_ids=[d["_id"] for d in new])

    async def update_one(self, q, u):
        self._maybe_fail("update_one")
        for d in self.docs:
            if _matches(d, q):
                d.update(u.get("$set", {}))
                return Result(matched_count=1, modified_count=1)
        return Result(matched_count=0, modified_count=0)

    async def delete_one(self, q):
        self._maybe_fail("delete_one")
        for i, d in enumerate(self.docs):
            if _matches(d, q):
                del self.docs[i]
                return Result(deleted_count=1)
        return Result(deleted_count=0)

    async def delete_many(self, q, session=None):
        self._maybe_fail("delete_many")
        self.sessions.append(session)
        keep = [d for d in self.docs if not _matches(d, q)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return Result(deleted_count=deleted)


class FakeDB:
    def __init__(self, users=None, books=None, notifications=None):
        self.users = FakeCollection(users)
        self.books = FakeCollection(books)
        self.notifications = FakeCollection(notifications)


class StubConnector:
    def __init__(self, name, results=None, error=None):
        self.name = name
        self.results = results or []
        self.error = error
        self.queries = []
        self.closed = False

    async def search(self, query):
        self.queries.append(query)
        if self.error:
            raise self.error
        return list(self.results)

    async def close(self):
        self.closed = True


class StubAggregator:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.calls = []

    async def search(self, title, author=None):
        self.calls.append((title, author))
        if self.error:
            raise self.error
        return list(self.results)


class StubMailer:
    def __init__(self, error=None):
        self.error = error
        self.sent = []
        self.texts = []

    async def send_listings(self, to_email, name, book_title, results):
        if self.error:
            raise self.error
        self.sent.append((to_email, name, book_title, list(results)))

    async def send_text(self, to_email, subject, body, attachments=None):
        if self.error:
            raise self.error
        self.texts.append((to_email, subject, body, attachments))


class FakeServices:
    def __init__(self, settings, store, aggregator, mailer):
        self.settings = settings
        self.store = store
        self.aggregator = aggregator
        self.mailer = mailer


def make_result(n, source="Craigslist", **kwargs):
    return SearchResult(
        title=kwargs.pop("title", f"Dune listing {n}"),
        price=kwargs.pop("price", f"${n}"),
        source=source,
        link=kwargs.pop("link", f"https://example.org/listing/{n}"),
        **kwargs,
    )


@pytest.fixture
def fake_db():
    return FakeDB(
        users=[
            {"_id": "u1", "email": "ann@example.org", "displayName": "Ann", "notifications": True},
            {"_id": "u2", "email": "bob@example.org", "displayName": "Bob", "notifications": False},
        ],
        books=[
            {"_id": "b1", "title": "Dune", "author": "Frank Herbert", "userId": "u1", "addedDate": "2025-01-02"},
            {"_id": "b2", "title": "Emma", "userId": "u1", "addedDate": "2025-01-01"},
            {"_id": "b3", "title": "Ulysses", "userId": "u2", "addedDate": "2025-01-01"},
        ],
    )


@pytest.fixture
def store(fake_db):
    return Store(fake_db, clock=lambda: NOW)


@pytest.fixture
def aggregator():
    return StubAggregator(results=[make_result(1), make_result(2, source="Reddit r/books", seller="/u/x")])


@pytest.fixture
def services(store, aggregator):
    settings = Settings(api_key="testapikey", report_dir="./reports-test")
    return FakeServices(settings, store, aggregator, StubMailer())


@pytest.fixture
def auth_headers():
    return {"X-API-Key": "testapikey", "X-User-Id": "u1"}


@pytest.fixture
async def client(services):
    """
    Async test client for the API with the service container swapped out.

    The app lifespan is not run by ASGITransport, so no database or HTTP
    clients are created; ``get_services`` returns the fake container.
    """
    app.dependency_overrides[get_services] = lambda: services
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
