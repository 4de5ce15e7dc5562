"""Tests for service wiring."""

from decimal import Decimal

import pytest

from foodrun.config import Settings
from foodrun.document_store import JsonDocumentStore, MemoryDocumentStore
from foodrun.errors import ServicesAlreadyInitializedError, ServicesNotInitializedError
from foodrun.services import build_services, get_services, init_services, reset_services


@pytest.fixture(autouse=True)
def clean_services():
    reset_services()
    yield
    reset_services()


class TestBuildServices:
    def test_defaults_to_json_store(self, temp_dir):
        services = build_services(Settings(data_dir=temp_dir))
        assert isinstance(services.store, JsonDocumentStore)
        assert services.store.data_dir == temp_dir

    def test_collaborators_share_store(self, store, temp_dir):
        services = build_services(Settings(data_dir=temp_dir), store=store)
        assert services.orders.store is store
        assert services.partners.store is store

    def test_pricing_from_settings(self, store, temp_dir):
        settings = Settings(data_dir=temp_dir, delivery_fee=Decimal("10"))
        services = build_services(settings, store=store)
        assert services.orders.pricing_rules.delivery_fee == Decimal("10")


class TestInitServices:
    def test_get_before_init(self):
        with pytest.raises(ServicesNotInitializedError):
            get_services()

    def test_init_once(self, temp_dir):
        services = init_services(Settings(data_dir=temp_dir), store=MemoryDocumentStore())
        assert get_services() is services

    def test_second_init_rejected(self, temp_dir):
        first = init_services(Settings(data_dir=temp_dir), store=MemoryDocumentStore())
        with pytest.raises(ServicesAlreadyInitializedError):
            init_services(Settings(data_dir=temp_dir), store=MemoryDocumentStore())
        assert get_services() is first

    def test_reset_allows_init(self, temp_dir):
        init_services(Settings(data_dir=temp_dir), store=MemoryDocumentStore())
        reset_services()
        with pytest.raises(ServicesNotInitializedError):
            get_services()
        assert init_services(Settings(data_dir=temp_dir), store=MemoryDocumentStore())
