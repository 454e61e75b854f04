"""Billing event publishing to Google Cloud Pub/Sub.

Responsibilities:
- Format BillingNotification messages
- Publish to the billing topic
- Manage Pub/Sub client lifecycle

Publishing never fails a billing operation: errors are logged and the
publish call returns False.
"""

from threading import RLock
from typing import Any, Optional

from google.api_core.exceptions import AlreadyExists, GoogleAPIError, NotFound
from google.cloud import pubsub_v1

from billing_core.logging_config import get_logger
from billing_core.models import (
    BillingNotification,
    BillingNotificationType,
    InvoiceRecord,
    PubSubSettings,
    ServiceRecord,
)
from billing_core.services.time_controller import TimeController

logger = get_logger(__name__)

PUBLISH_TIMEOUT_SECONDS = 5.0


class EventDispatcher:
    """Dispatches billing events to Google Cloud Pub/Sub.

    Args:
        settings: Pub/Sub settings; nothing is published unless enabled
        time_controller: clock used for event_time
        publisher: optional pre-built PublisherClient (tests pass a mock)
    """

    def __init__(
        self,
        settings: PubSubSettings,
        time_controller: TimeController,
        publisher: Optional[pubsub_v1.PublisherClient] = None,
    ):
        self._lock = RLock()
        self._settings = settings
        self._time_controller = time_controller
        self._publisher = publisher
        self._topic_path: Optional[str] = None
        self._enabled = settings.enabled
        self.published_count = 0

        self._initialize()

    def _initialize(self) -> None:
        if not self._enabled:
            logger.info("event_dispatcher_disabled", message="Billing notifications are disabled in config")
            return

        try:
            if self._publisher is None:
                self._publisher = pubsub_v1.PublisherClient()
            self._topic_path = self._publisher.topic_path(self._settings.project_id, self._settings.topic)
            self._ensure_topic_exists()
            logger.info(
                "event_dispatcher_initialized",
                project_id=self._settings.project_id,
                topic=self._settings.topic,
                topic_path=self._topic_path,
            )
        except Exception as e:
            logger.error(
                "event_dispatcher_init_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._enabled = False

    def _ensure_topic_exists(self) -> None:
        try:
            self._publisher.get_topic(request={"topic": self._topic_path})
            logger.info("pubsub_topic_exists", topic_path=self._topic_path)
        except NotFound:
            try:
                topic = self._publisher.create_topic(request={"name": self._topic_path})
                logger.info("pubsub_topic_created", topic_path=topic.name)
            except AlreadyExists:
                logger.info("pubsub_topic_exists", topic_path=self._topic_path)

    def is_enabled(self) -> bool:
        """True if notifications are enabled and the client is initialized."""
        return self._enabled and self._publisher is not None and self._topic_path is not None

    def publish(self, notification_type: BillingNotificationType, **fields: Any) -> bool:
        """Publish one billing notification.

        Args:
            notification_type: Event type
            **fields: BillingNotification fields (invoice_id, user_id, ...)

        Returns:
            True if published successfully, False otherwise
        """
        if not self.is_enabled():
            logger.debug("event_dispatcher_disabled", message="Skipping event publication")
            return False

        with self._lock:
            try:
                notification = BillingNotification(
                    notification_type=notification_type.value,
                    event_time=self._time_controller.now(),
                    **fields,
                )
                self._publish_notification(notification)
                self.published_count += 1
                logger.info(
                    "billing_event_published",
                    notification_type=notification_type.name,
                    invoice_id=notification.invoice_id,
                    service_id=notification.service_id,
                )
                return True
            except Exception as e:
                logger.error(
                    "billing_event_publish_failed",
                    notification_type=notification_type.name,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return False

    def publish_invoice_event(
        self,
        notification_type: BillingNotificationType,
        invoice: InvoiceRecord,
        payment_method: Optional[str] = None,
    ) -> bool:
        return self.publish(
            notification_type,
            invoice_id=invoice.id,
            invoice_number=invoice.number,
            service_id=invoice.service_id,
            user_id=invoice.user_id,
            product_id=invoice.product_id,
            payment_method=payment_method,
        )

    def publish_service_event(self, notification_type: BillingNotificationType, service: ServiceRecord) -> bool:
        return self.publish(
            notification_type,
            service_id=service.id,
            user_id=service.user_id,
            product_id=service.product_id,
        )

    def publish_overdue(self, count: int) -> bool:
        """Publish one bulk event for an overdue sweep; nothing when count is 0."""
        if count <= 0:
            return False
        return self.publish(BillingNotificationType.INVOICES_OVERDUE, count=count)

    def _publish_notification(self, notification: BillingNotification) -> None:
        """Publish a notification and wait for the server ack.

        Raises:
            GoogleAPIError: If publication fails
        """
        message_data = notification.model_dump_json().encode("utf-8")
        future = self._publisher.publish(
            self._topic_path,
            message_data,
            notification_type=str(notification.notification_type),
        )
        try:
            message_id = future.result(timeout=PUBLISH_TIMEOUT_SECONDS)
            logger.debug("pubsub_message_published", message_id=message_id)
        except GoogleAPIError as e:
            logger.error("pubsub_publish_failed", error=str(e), error_type=type(e).__name__)
            raise

    def shutdown(self) -> None:
        """Shutdown the event dispatcher and drop the client."""
        with self._lock:
            if self._publisher:
                logger.info("event_dispatcher_shutting_down")
                self._publisher = None
                self._topic_path = None
                logger.info("event_dispatcher_shutdown_complete")
