"""Explicit wiring of foodrun's collaborators.

build_services() constructs a bundle from settings (tests call it directly
with their own store). init_services() is the one process-wide startup
routine; everything else receives the bundle or asks get_services().
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .config import Settings
from .document_store import DocumentStore, JsonDocumentStore
from .errors import ServicesAlreadyInitializedError, ServicesNotInitializedError
from .identity import PartnerDirectory, TokenIdentityProvider
from .lifecycle import OrderLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: DocumentStore
    identity: TokenIdentityProvider
    partners: PartnerDirectory
    orders: OrderLifecycleManager


def build_services(
    settings: Settings,
    store: DocumentStore | None = None,
    bcrypt_rounds: int = 12,
) -> Services:
    """Construct a service bundle. Defaults to a JSON store in settings.data_dir."""
    if store is None:
        store = JsonDocumentStore(settings.data_dir)
    return Services(
        settings=settings,
        store=store,
        identity=TokenIdentityProvider(settings.token_secret, settings.token_ttl_seconds),
        partners=PartnerDirectory(
            store,
            admin_username=settings.admin_username,
            admin_password_hash=settings.admin_password_hash,
            bcrypt_rounds=bcrypt_rounds,
        ),
        orders=OrderLifecycleManager(store, settings.pricing_rules()),
    )


_services: Services | None = None
_services_lock = threading.Lock()


def init_services(
    settings: Settings | None = None,
    store: DocumentStore | None = None,
    bcrypt_rounds: int = 12,
) -> Services:
    """
    Initialize the process-wide services exactly once.

    Raises:
        ServicesAlreadyInitializedError: If called again without reset_services().
    """
    global _services
    with _services_lock:
        if _services is not None:
            raise ServicesAlreadyInitializedError()
        settings = settings or Settings.from_env()
        _services = build_services(settings, store=store, bcrypt_rounds=bcrypt_rounds)
        logger.info("services initialized (data dir %s)", settings.data_dir)
        return _services


def get_services() -> Services:
    """
    Raises:
        ServicesNotInitializedError: If init_services() hasn't run.
    """
    services = _services
    if services is None:
        raise ServicesNotInitializedError()
    return services


def reset_services() -> None:
    """Drop the process-wide services (tests, shutdown)."""
    global _services
    with _services_lock:
        _services = None
