"""
Celery tasks for order notification emails.

Checkout enqueues one task per email after the order is committed. Delivery
failures the email provider may recover from are retried with exponential
backoff; rejected or unrenderable messages fail at once.
"""

import asyncio
from typing import Any

from celery import Task

from storefront.core.celery_app import celery_app
from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.services.notifications.service import (
    NotificationDeliveryError,
    OrderNotification,
    get_email_sender,
)

logger = get_logger(__name__)
settings = get_settings()


class NotificationTask(Task):
    """
    Base task class for notification tasks with retry logic.

    Only ``NotificationDeliveryError`` triggers a retry.
    """

    autoretry_for = (NotificationDeliveryError,)
    retry_kwargs = {"max_retries": settings.notification_max_retries}
    retry_backoff = True
    retry_backoff_max = settings.notification_retry_backoff_max
    retry_jitter = True

    def on_failure(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        """
        Handle task failure.

        Args:
            exc: Exception that caused the failure
            task_id: Unique task identifier
            args: Task positional arguments
            kwargs: Task keyword arguments
            einfo: Exception info object
        """
        logger.error(
            "Notification task failed",
            task_id=task_id,
            task=self.name,
            exception=str(exc),
            retries=self.request.retries,
        )

    def on_retry(
        self,
        exc: Exception,
        task_id: str,
        args: tuple,
        kwargs: dict,
        einfo: Any,
    ) -> None:
        logger.warning(
            "Notification task retrying",
            task_id=task_id,
            task=self.name,
            exception=str(exc),
            retry_count=self.request.retries,
            max_retries=self.max_retries,
        )

    def on_success(
        self,
        retval: Any,
        task_id: str,
        args: tuple,
        kwargs: dict,
    ) -> None:
        logger.info(
            "Notification task completed successfully",
            task_id=task_id,
            task=self.name,
            result=retval,
        )


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="notifications.send_order_confirmation",
    time_limit=300,
    soft_time_limit=240,
)
def send_order_confirmation_task(self: Task, payload: dict[str, Any]) -> str:
    """
    Email the order confirmation to the customer.

    Args:
        self: Task instance
        payload: ``OrderNotification.to_payload()`` of the committed order

    Returns:
        The order number
    """
    notification = OrderNotification.from_payload(payload)
    logger.info(
        "Sending order confirmation",
        task_id=self.request.id,
        order_number=notification.order_number,
        attempt=self.request.retries + 1,
    )
    asyncio.run(get_email_sender().send_order_confirmation(notification))
    return notification.order_number


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="notifications.send_admin_order_notification",
    time_limit=300,
    soft_time_limit=240,
)
def send_admin_order_notification_task(self: Task, payload: dict[str, Any]) -> str:
    """Email the new-order summary to the store administrators."""
    notification = OrderNotification.from_payload(payload)
    logger.info(
        "Sending admin order notification",
        task_id=self.request.id,
        order_number=notification.order_number,
        attempt=self.request.retries + 1,
    )
    asyncio.run(get_email_sender().send_admin_order_notification(notification))
    return notification.order_number


class CeleryNotificationQueue:
    """Hands order notifications to the Celery workers."""

    def dispatch(self, notification: OrderNotification) -> bool:
        payload = notification.to_payload()
        send_order_confirmation_task.delay(payload)
        send_admin_order_notification_task.delay(payload)
        logger.debug(
            "Order notifications enqueued",
            order_number=notification.order_number,
        )
        return True
