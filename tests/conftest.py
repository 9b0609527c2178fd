"""Shared test fixtures for the Marketplace Escrow test suite.

Provides:
    - A manual clock so deadlines can be crossed instantly
    - Services wired over in-memory stores with a recording notification sink
    - Factory fixtures for orders and submissions in common starting states
    - A FastAPI TestClient over the same services
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest
from fastapi.testclient import TestClient

from marketplace_escrow.domain.clock import ManualClock
from marketplace_escrow.domain.settlement import MarketplacePolicy
from marketplace_escrow.infrastructure.memory import MemoryStoreFactory
from marketplace_escrow.main import create_app
from marketplace_escrow.services.container import Services, build_services
from marketplace_escrow.services.notifications import Notification

BUYER = "buyer-alice"
SELLER = "seller-bob"
ADMIN = "admin"
STRANGER = "mallory"
PRICE = Decimal("100.00")


# ---------------------------------------------------------------------------
# Collaborator Fixtures
# ---------------------------------------------------------------------------


class RecordingSink:
    """NotificationSink that keeps every notification in memory."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(
        self,
        user_id: str,
        kind: str,
        title: str,
        description: str,
        action_url: str | None = None,
    ) -> None:
        self.sent.append(Notification(user_id, kind, title, description, action_url))

    def titles_for(self, user_id: str) -> list[str]:
        return [n.title for n in self.sent if n.user_id == user_id]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def policy() -> MarketplacePolicy:
    return MarketplacePolicy()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def store_factory(clock: ManualClock) -> MemoryStoreFactory:
    return MemoryStoreFactory(clock=clock)


# ---------------------------------------------------------------------------
# Service Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def services(
    store_factory: MemoryStoreFactory,
    policy: MarketplacePolicy,
    sink: RecordingSink,
    clock: ManualClock,
) -> Services:
    """All services over in-memory stores, with ``admin`` as the only admin."""
    return build_services(store_factory, policy, admin_ids=[ADMIN], sink=sink, clock=clock)


# ---------------------------------------------------------------------------
# Subject Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def place_order(services: Services):
    """Return a coroutine that places an order and returns its id."""

    async def _place(price: Decimal = PRICE, delivery_days: int = 5) -> str:
        result = await services.orders.place_order(
            BUYER, SELLER, price, delivery_days=delivery_days, service_name="Logo design"
        )
        return result.unwrap().id

    return _place


@pytest.fixture
def in_progress_order(services: Services, place_order):
    async def _make(**kwargs) -> str:
        order_id = await place_order(**kwargs)
        (await services.orders.accept(order_id, SELLER)).unwrap()
        (await services.orders.start(order_id, SELLER)).unwrap()
        return order_id

    return _make


@pytest.fixture
def delivered_order(services: Services, in_progress_order):
    async def _make(**kwargs) -> str:
        order_id = await in_progress_order(**kwargs)
        (await services.orders.submit_delivery(order_id, SELLER, "Final logo attached", ["logo.svg"])).unwrap()
        return order_id

    return _make


@pytest.fixture
def submit_work(services: Services):
    """Return a coroutine that submits work on a job and returns the submission id."""

    async def _submit(job_id: str = "JOB-1", amount: Decimal = PRICE) -> str:
        result = await services.submissions.submit_work(
            job_id, SELLER, BUYER, amount, "Dataset cleaned", links=["https://example.com/d"]
        )
        return result.unwrap().id

    return _submit


async def ledger_of(services: Services, subject_id: str):
    """Read the escrow reservation for a subject."""
    async with services.ctx.read() as stores:
        return await stores.ledger.get(subject_id)


def paid(reservation, recipient_id: str) -> Decimal:
    """Total settled to ``recipient_id`` on a reservation."""
    return sum((p.amount for p in reservation.parts if p.recipient_id == recipient_id), Decimal("0"))


# ---------------------------------------------------------------------------
# HTTP Fixtures
# ---------------------------------------------------------------------------


class FakeRedis:
    """Just enough of redis.asyncio.Redis for IdempotencyCache."""

    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        return self.data.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None, nx: bool = False) -> bool:
        if nx and key in self.data:
            return False
        self.data[key] = value
        return True


@pytest.fixture
def client(services: Services):
    """TestClient over the in-memory services; no storage setup, no sweeper."""
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


@pytest.fixture
def api_order(client: TestClient):
    """Place an order over HTTP and walk it forward to ``until``."""

    def _make(until: str = "placed") -> str:
        resp = client.post(
            "/api/v1/orders",
            json={"buyer_id": BUYER, "seller_id": SELLER, "price": "100.00", "delivery_days": 5},
        )
        assert resp.status_code == 201, resp.text
        order_id = resp.json()["id"]
        stop = {"placed": 0, "pending": 1, "in_progress": 2, "delivered": 3}[until]
        for step in ("accept", "start", "deliver")[:stop]:
            body: dict[str, Any] = {"actor_id": SELLER}
            if step == "deliver":
                body["message"] = "Final files attached"
            resp = client.post(f"/api/v1/orders/{order_id}/{step}", json=body)
            assert resp.status_code == 200, resp.text
        return order_id

    return _make
