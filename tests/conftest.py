"""Pytest configuration and fixtures."""
import asyncio
import itertools
import os
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from app.errors import StorageError
from app.models.pricing import PriceItem, RateTable
from app.models.project import Project
from app.models.time_entry import TimeEntry
from app.repositories.entry_repository import EntryRepository
from app.repositories.price_catalog import PriceCatalog


class InMemoryEntryRepository(EntryRepository):
    """
    Entry repository kept in a dict.

    Records every call in ``calls`` and raises StorageError for any call
    name listed in ``fail_on`` ("get", "list", "create", "patch", "remove").
    """

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self._ids = itertools.count(1)
        self._subscribers: list[asyncio.Queue] = []

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise StorageError(f"{operation} unavailable")

    def _notify(self) -> None:
        for queue in self._subscribers:
            queue.put_nowait(None)

    def add(self, user_id="user123", hours="0", **fields) -> TimeEntry:
        """Seed an entry without going through the port."""
        entry_id = str(next(self._ids))
        now = datetime.utcnow()
        doc = {
            "_id": entry_id,
            "user_id": user_id,
            "project_id": "proj-1",
            "task_id": "task-1",
            "price_item_id": "dev",
            "hours": Decimal(hours),
            "note": "",
            "date": date(2026, 10, 14),
            "is_active": False,
            "timer_started_at": None,
            "timer_seconds": 0,
            "created_at": now,
            "updated_at": now,
        }
        doc.update(fields)
        self.docs[entry_id] = doc
        return TimeEntry(**doc)

    def active(self, user_id: str = "user123") -> list[TimeEntry]:
        return [
            TimeEntry(**doc) for doc in self.docs.values()
            if doc["user_id"] == user_id and doc["is_active"]
        ]

    async def subscribe(self, user_id: str):
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            yield await self.list_for_user(user_id)
            while True:
                await queue.get()
                yield await self.list_for_user(user_id)
        finally:
            self._subscribers.remove(queue)

    async def get(self, entry_id: str) -> Optional[TimeEntry]:
        self._check("get")
        doc = self.docs.get(entry_id)
        return TimeEntry(**doc) if doc else None

    def _sorted(self, docs) -> list[TimeEntry]:
        docs = sorted(docs, key=lambda d: (d["date"], d["created_at"]), reverse=True)
        return [TimeEntry(**doc) for doc in docs]

    async def list_for_user(self, user_id: str) -> list[TimeEntry]:
        self._check("list")
        return self._sorted(d for d in self.docs.values() if d["user_id"] == user_id)

    async def list_for_project(self, project_id: str) -> list[TimeEntry]:
        self._check("list")
        return self._sorted(d for d in self.docs.values() if d["project_id"] == project_id)

    async def create(self, fields: dict) -> TimeEntry:
        self._check("create")
        entry_id = str(next(self._ids))
        now = datetime.utcnow()
        doc = {"_id": entry_id, "created_at": now, "updated_at": now, **fields}
        self.docs[entry_id] = doc
        self._notify()
        return TimeEntry(**doc)

    async def patch(
        self, entry_id: str, fields: dict, match: Optional[dict] = None
    ) -> Optional[TimeEntry]:
        self._check("patch")
        doc = self.docs.get(entry_id)
        if doc is None:
            return None
        if any(doc.get(key) != value for key, value in (match or {}).items()):
            return None
        doc.update(fields)
        doc["updated_at"] = datetime.utcnow()
        self._notify()
        return TimeEntry(**doc)

    async def remove(self, entry_id: str) -> bool:
        self._check("remove")
        deleted = self.docs.pop(entry_id, None) is not None
        self._notify()
        return deleted


class InMemoryPriceCatalog(PriceCatalog):
    """Price catalog with fixed tables."""

    def __init__(self, default_table: RateTable, customer_tables: Optional[dict] = None):
        self.default_table = default_table
        self.customer_tables = customer_tables or {}

    async def get_default_rate_table(self) -> RateTable:
        return self.default_table

    async def get_customer_rate_table(self, customer_id: str) -> Optional[RateTable]:
        return self.customer_tables.get(customer_id)


class InMemoryProjectRepository:
    """Project reader with fixed projects."""

    def __init__(self, projects: Optional[list[Project]] = None):
        self.projects = {p.id: p for p in projects or []}

    async def get(self, project_id: str) -> Optional[Project]:
        return self.projects.get(project_id)


@pytest.fixture
def default_table():
    """Default price list: development 100/h, meetings 80/h, internal 0/h."""
    return RateTable(items=[
        PriceItem(_id="dev", name="Development", hourly_rate=Decimal("100"), daily_rate=Decimal("800"), ordernum=1),
        PriceItem(_id="meet", name="Meetings", hourly_rate=Decimal("80"), daily_rate=Decimal("640"), ordernum=2),
        PriceItem(_id="internal", name="Internal", hourly_rate=Decimal("0"), daily_rate=Decimal("0"), ordernum=3),
    ])


@pytest.fixture
def customer_table():
    """ACME's own price list: development at 120/h."""
    return RateTable(customer_id="acme", items=[
        PriceItem(_id="dev", name="Development (ACME)", hourly_rate=Decimal("120"), daily_rate=Decimal("960"), ordernum=1),
    ])


@pytest.fixture
def repository():
    return InMemoryEntryRepository()


@pytest.fixture
def catalog(default_table, customer_table):
    return InMemoryPriceCatalog(default_table, {"acme": customer_table})


@pytest.fixture
def projects():
    return InMemoryProjectRepository([
        Project(_id="proj-1", name="Website relaunch", customer_id="acme", total_budget=Decimal("1000")),
        Project(_id="proj-2", name="Internal tooling", customer_id=None, total_budget=Decimal("0")),
    ])


@pytest.fixture
def auth_headers():
    """Bearer token for user123."""
    from app.utils.auth import create_access_token

    token = create_access_token(user_id="user123")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def app_client(repository, catalog, projects):
    """
    Create a test client backed by in-memory repositories.

    This fixture:
    - Overrides the storage dependencies with in-memory fakes
    - Yields an async HTTP client for testing
    - Removes the overrides afterwards
    """
    from app.main import app
    from app.routers.deps import (
        get_entry_repository,
        get_price_catalog,
        get_project_repository,
        get_ticker,
    )

    app.dependency_overrides[get_entry_repository] = lambda: repository
    app.dependency_overrides[get_price_catalog] = lambda: catalog
    app.dependency_overrides[get_project_repository] = lambda: projects
    app.dependency_overrides[get_ticker] = lambda: None

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
