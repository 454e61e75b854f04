"""Wiring of the billing components for one process.

The FastAPI lifespan builds a container and stores it on ``app.state``;
tests build their own against an in-memory store.
"""

from dataclasses import dataclass
from typing import Optional

from google.cloud import pubsub_v1
from sqlalchemy import Engine
from sqlalchemy.orm import sessionmaker

from billing_core.config import Config
from billing_core.db.migrations import apply_migrations
from billing_core.db.session import create_db_engine, create_session_factory
from billing_core.logging_config import get_logger
from billing_core.repositories.product_repository import ProductRepository
from billing_core.repositories.settings_store import SettingsStore
from billing_core.services.catch_up_generator import CatchUpGenerator
from billing_core.services.event_dispatcher import EventDispatcher
from billing_core.services.fulfillment import FulfillmentResolver
from billing_core.services.invoice_numbers import PREFIX_SETTING, InvoiceNumberGenerator
from billing_core.services.payment_bridges import (
    CreditBalanceBridge,
    GatewayCaptureBridge,
    GatewayWebhookBridge,
)
from billing_core.services.purchase_manager import PurchaseManager
from billing_core.services.scheduler import BillingScheduler
from billing_core.services.subscription_manager import SubscriptionManager
from billing_core.services.time_controller import TimeController

logger = get_logger(__name__)


@dataclass
class BillingContainer:
    config: Config
    engine: Engine
    session_factory: sessionmaker
    time_controller: TimeController
    event_dispatcher: EventDispatcher
    number_generator: InvoiceNumberGenerator
    scheduler: BillingScheduler
    fulfillment: FulfillmentResolver
    credit_bridge: CreditBalanceBridge
    capture_bridge: GatewayCaptureBridge
    webhook_bridge: GatewayWebhookBridge
    purchases: PurchaseManager
    subscriptions: SubscriptionManager

    def start(self) -> None:
        """Start the scheduler if it is enabled in config."""
        if self.config.scheduler.enabled:
            self.scheduler.start()
        else:
            logger.info("scheduler_disabled", message="Scheduler is disabled in config")

    def shutdown(self) -> None:
        self.scheduler.stop()
        self.event_dispatcher.shutdown()
        self.engine.dispose()
        logger.info("container_shutdown_complete")


def seed_store(session_factory: sessionmaker, config: Config) -> None:
    """Insert default settings and catalog products that are not there yet."""
    with session_factory.begin() as session:
        SettingsStore(session).set_default(PREFIX_SETTING, config.invoice_prefix)
        ProductRepository(session).seed_catalog(config.catalog)


def build_container(
    config: Config,
    time_controller: Optional[TimeController] = None,
    engine: Optional[Engine] = None,
    publisher: Optional[pubsub_v1.PublisherClient] = None,
) -> BillingContainer:
    """Create the store, apply migrations, seed it, and wire every component.

    Args:
        config: loaded configuration
        time_controller: clock to use (default: real time)
        engine: existing engine (default: built from config.database_url)
        publisher: Pub/Sub client override
    """
    engine = engine or create_db_engine(config.database_url, echo=config.settings.database.echo)
    apply_migrations(engine)
    session_factory = create_session_factory(engine)
    seed_store(session_factory, config)

    time_controller = time_controller or TimeController()
    event_dispatcher = EventDispatcher(config.settings.pubsub, time_controller, publisher=publisher)
    numbers = InvoiceNumberGenerator(default_prefix=config.invoice_prefix)

    scheduler_settings = config.scheduler
    catch_up = CatchUpGenerator(
        numbers,
        max_catch_up=scheduler_settings.max_catch_up,
        dedup_window_minutes=scheduler_settings.dedup_window_minutes,
        due_days=scheduler_settings.due_days,
        batch_size=scheduler_settings.batch_size,
    )
    scheduler = BillingScheduler(
        session_factory,
        time_controller,
        catch_up,
        event_dispatcher=event_dispatcher,
        interval_seconds=scheduler_settings.interval_seconds,
    )
    fulfillment = FulfillmentResolver(session_factory, time_controller, event_dispatcher)
    bridge_args = (session_factory, time_controller, fulfillment, numbers, event_dispatcher)

    container = BillingContainer(
        config=config,
        engine=engine,
        session_factory=session_factory,
        time_controller=time_controller,
        event_dispatcher=event_dispatcher,
        number_generator=numbers,
        scheduler=scheduler,
        fulfillment=fulfillment,
        credit_bridge=CreditBalanceBridge(*bridge_args),
        capture_bridge=GatewayCaptureBridge(*bridge_args),
        webhook_bridge=GatewayWebhookBridge(*bridge_args),
        purchases=PurchaseManager(session_factory, time_controller, numbers, event_dispatcher),
        subscriptions=SubscriptionManager(session_factory, time_controller),
    )
    logger.info(
        "container_built",
        database_url=config.database_url.split("@")[-1],
        catalog_products=len(config.catalog),
        pubsub_enabled=event_dispatcher.is_enabled(),
    )
    return container
