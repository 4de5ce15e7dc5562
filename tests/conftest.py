"""Pytest fixtures for foodrun tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from foodrun.document_store import MemoryDocumentStore
from foodrun.lifecycle import OrderLifecycleManager
from foodrun.models import Customer, Driver, OrderItem, Restaurant


class StepClock:
    """Deterministic clock: every call is one second later than the last."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> str:
        self.current += timedelta(seconds=1)
        return self.current.isoformat().replace("+00:00", "Z")


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def manager(store, clock):
    return OrderLifecycleManager(store, clock=clock)


@pytest.fixture
def customer():
    return Customer(uid="cust-1", name="Asha")


@pytest.fixture
def restaurant():
    return Restaurant(uid="rest-user-1", name="Burger King")


@pytest.fixture
def driver():
    return Driver(uid="driver-1", name="Ravi")


def _make_items(*prices: str) -> list[OrderItem]:
    return [
        OrderItem(id=f"item-{i}", name=f"Dish {i}", unit_price=Decimal(p), quantity=1)
        for i, p in enumerate(prices, start=1)
    ]


def _place_order(manager, customer, restaurant_id: str = "1", prices=("300",)):
    return manager.create_order(
        customer=customer,
        restaurant_id=restaurant_id,
        restaurant_name="Burger King",
        items=_make_items(*prices),
        address="12 MG Road, Bengaluru",
    )


@pytest.fixture
def make_items():
    """Build cart items, one per price, quantity 1."""
    return _make_items


@pytest.fixture
def place_order():
    """Place a cash-on-delivery order with a given manager and return it."""
    return _place_order


@pytest.fixture
def cooking_order(manager):
    """Place an order and have the restaurant accept it."""

    def cook(customer, restaurant, **kwargs):
        order = _place_order(manager, customer, **kwargs)
        return manager.accept_order(order.id, restaurant)

    return cook
