"""Shared fixtures: an in-memory billing store, a frozen clock, and wired services."""

import pytest

from billing_core.db.migrations import apply_migrations
from billing_core.db.session import create_db_engine, create_session_factory
from billing_core.models import PubSubSettings
from billing_core.repositories.product_repository import ProductRepository
from billing_core.services.catch_up_generator import CatchUpGenerator
from billing_core.services.event_dispatcher import EventDispatcher
from billing_core.services.fulfillment import FulfillmentResolver
from billing_core.services.invoice_numbers import InvoiceNumberGenerator
from billing_core.services.time_controller import TimeController
from tests.factories import NOW, TEST_CATALOG, build_bridges


def _build_store(database_url: str):
    engine = create_db_engine(database_url)
    apply_migrations(engine)
    factory = create_session_factory(engine)
    with factory.begin() as session:
        ProductRepository(session).seed_catalog(TEST_CATALOG)
    return engine, factory


@pytest.fixture
def engine_and_factory():
    """In-memory store with migrations applied and the test catalog seeded."""
    engine, factory = _build_store("sqlite://")
    yield engine, factory
    engine.dispose()


@pytest.fixture
def engine(engine_and_factory):
    return engine_and_factory[0]


@pytest.fixture
def session_factory(engine_and_factory):
    return engine_and_factory[1]


@pytest.fixture
def file_session_factory(tmp_path):
    """File-backed store for tests that use several threads."""
    engine, factory = _build_store(f"sqlite:///{tmp_path / 'billing.db'}")
    yield factory
    engine.dispose()


@pytest.fixture
def clock():
    """Frozen virtual clock starting at NOW."""
    return TimeController(frozen_at=NOW)


@pytest.fixture
def dispatcher(clock):
    """Disabled event dispatcher."""
    return EventDispatcher(PubSubSettings(enabled=False), clock)


@pytest.fixture
def numbers():
    return InvoiceNumberGenerator()


@pytest.fixture
def catch_up(numbers):
    return CatchUpGenerator(numbers, max_catch_up=3, dedup_window_minutes=10, due_days=3, batch_size=500)


@pytest.fixture
def fulfillment(session_factory, clock, dispatcher):
    return FulfillmentResolver(session_factory, clock, dispatcher)


@pytest.fixture
def bridges(session_factory, clock, numbers, dispatcher):
    """(credit, capture, webhook) bridges sharing one fulfillment resolver."""
    _, credit, capture, webhook = build_bridges(session_factory, clock, numbers, dispatcher)
    return credit, capture, webhook
