"""Shared fakes for scheduler, store and HTTP tests"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from nuvemflow.models.order import Order
from nuvemflow.services.nuvemshop_client import UpstreamFetchError
from nuvemflow.services.order_store import PersistenceError


class FakeTask:
    """Repeating task driven by FakeClock.advance()"""

    def __init__(self, clock: "FakeClock", interval_seconds: float, callback, task_id: str):
        self.clock = clock
        self.interval = timedelta(seconds=interval_seconds)
        self.callback = callback
        self.task_id = task_id
        self.due = clock.current + self.interval
        self.cancelled = False

    @property
    def next_run_at(self) -> datetime | None:
        return None if self.cancelled else self.due

    def cancel(self) -> None:
        self.cancelled = True
        if self in self.clock.tasks:
            self.clock.tasks.remove(self)


class FakeClock:
    """Deterministic clock; time only moves when advance() is awaited"""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.tasks: list[FakeTask] = []
        self.scheduled: list[FakeTask] = []

    def now(self) -> datetime:
        return self.current

    def call_every(self, interval_seconds: float, callback, task_id: str) -> FakeTask:
        task = FakeTask(self, interval_seconds, callback, task_id)
        self.tasks.append(task)
        self.scheduled.append(task)
        return task

    async def advance(self, seconds: float) -> None:
        """Move time forward, running every tick that falls due on the way"""
        target = self.current + timedelta(seconds=seconds)
        while True:
            due = [task for task in self.tasks if task.due <= target]
            if not due:
                break
            task = min(due, key=lambda t: t.due)
            self.current = task.due
            task.due += task.interval
            await task.callback()
        self.current = target


class FakeOrderSource:
    """Upstream stand-in; set `gate` to hold fetches until released"""

    def __init__(self):
        self.orders: list[Order] = []
        self.error: Exception | None = None
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.fetch_started = asyncio.Event()

    async def fetch_orders(self) -> list[Order]:
        self.calls += 1
        self.fetch_started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.orders)

    async def fetch_order(self, order_id) -> Order:
        if self.error is not None:
            raise self.error
        for order in self.orders:
            if str(order.id) == str(order_id):
                return order
        raise UpstreamFetchError("Nuvemshop request failed (HTTP 404): Not Found", 404)

    async def exchange_code(self, code: str, client_id=None, client_secret=None):
        raise NotImplementedError

    async def close(self) -> None:
        pass


class InMemoryOrderStore:
    """Document store stand-in with Firestore merge semantics"""

    def __init__(self):
        self.documents: dict[str, dict] = {}
        self.fail_ids: set[int] = set()
        self.writes = 0
        self.probe_error: Exception | None = None
        self.initialized = False

    def initialize(self) -> bool:
        self.initialized = True
        return True

    async def test_connection(self) -> dict:
        if self.probe_error is not None:
            raise self.probe_error
        return {"connected": True, "collection": "orders"}

    async def upsert_order(self, order: Order, refreshed_at: datetime) -> None:
        if order.id in self.fail_ids:
            raise PersistenceError(f"Failed to write order {order.id}: deadline exceeded")
        self.writes += 1
        self.documents.setdefault(order.document_id, {}).update(order.to_document(refreshed_at))

    async def get_order(self, order_id: str) -> dict | None:
        return self.documents.get(str(order_id))

    async def list_orders(self, limit: int = 50) -> list[dict]:
        ordered = sorted(
            self.documents.values(), key=lambda d: d.get("created_at") or "", reverse=True
        )
        return ordered[:limit]

    async def get_notes(self, order_id: str) -> dict:
        document = self.documents.get(str(order_id), {})
        return {
            "orderId": str(order_id),
            "notes": document.get("notes", ""),
            "notesUpdatedAt": document.get("notesUpdatedAt"),
        }

    async def update_notes(self, order_id: str, notes: str) -> dict:
        fields = {"orderId": str(order_id), "notes": notes, "notesUpdatedAt": "2024-01-01T12:00:00"}
        self.documents.setdefault(str(order_id), {}).update(fields)
        return fields


def build_order(order_id: int, **fields) -> Order:
    defaults = {
        "number": 1000 + order_id,
        "status": "open",
        "payment_status": "paid",
        "total": "149.90",
        "currency": "BRL",
        "created_at": f"2024-01-0{order_id % 9 + 1}T10:00:00+0000",
    }
    defaults.update(fields)
    return Order(id=order_id, **defaults)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def order_source():
    return FakeOrderSource()


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def make_order():
    return build_order
