"""
Order notification messages and their email delivery.

Notifications are built from an immutable snapshot of a committed order so
that delivery can happen after the request's database session is gone.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, Optional, Protocol

from pydantic import TypeAdapter

from storefront.core.config import get_settings
from storefront.core.logging import get_logger
from storefront.database.models.order import Order
from storefront.services.notifications.aws_clients import (
    SESClient,
    SESClientError,
    get_ses_client,
)
from storefront.services.notifications.templates import (
    TemplateEngine,
    TemplateEngineError,
    get_template_engine,
)

logger = get_logger(__name__)


class NotificationServiceError(Exception):
    """Base exception for notification errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.context = context


class NotificationDeliveryError(NotificationServiceError):
    """The email provider could not be reached or asked us to try again later."""


class NotificationRejectedError(NotificationServiceError):
    """The message cannot be rendered or was refused for good."""


@dataclass(frozen=True)
class NotificationItem:
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True)
class OrderNotification:
    """Everything an order email needs, captured after commit."""

    order_id: uuid.UUID
    order_number: str
    is_guest: bool
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    currency: str
    subtotal: Decimal
    discount_total: Decimal
    shipping_fee: Decimal
    grand_total: Decimal
    payment_provider: str
    created_at: datetime
    items: tuple[NotificationItem, ...] = ()
    address: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_order(
        cls,
        order: Order,
        customer_name: str,
        customer_email: str,
        customer_phone: Optional[str] = None,
    ) -> "OrderNotification":
        return cls(
            order_id=order.id,
            order_number=order.order_number,
            is_guest=order.is_guest,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            currency=order.currency.value,
            subtotal=order.subtotal,
            discount_total=order.discount_total,
            shipping_fee=order.shipping_fee,
            grand_total=order.grand_total,
            payment_provider=order.payment_provider.value,
            created_at=order.created_at,
            items=tuple(
                NotificationItem(
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=item.line_total,
                )
                for item in order.items
            ),
            address=dict(order.address),
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe form used as a task argument."""
        return _notification_adapter.dump_python(self, mode="json")

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "OrderNotification":
        return _notification_adapter.validate_python(payload)

    def template_context(self) -> dict[str, Any]:
        return {
            "order": self,
            "items": self.items,
            "address": self.address,
            "storefront_url": get_settings().storefront_url,
        }


_notification_adapter = TypeAdapter(OrderNotification)


class NotificationSender(Protocol):
    """Port for delivering order notifications."""

    async def send_order_confirmation(self, notification: OrderNotification) -> None:
        ...

    async def send_admin_order_notification(self, notification: OrderNotification) -> None:
        ...


class EmailNotificationSender:
    """
    Sends order notifications as SES emails.

    Rendering happens on the event loop; the blocking boto3 call runs in a
    worker thread.
    """

    CONFIRMATION_TEMPLATE = "order_confirmation"
    ADMIN_TEMPLATE = "admin_new_order"

    def __init__(
        self,
        ses_client: Optional[SESClient] = None,
        template_engine: Optional[TemplateEngine] = None,
        admin_email: Optional[str] = None,
    ) -> None:
        """
        Initialize email sender.

        Args:
            ses_client: SES wrapper (defaults to one built from settings)
            template_engine: Template engine (defaults to the shared engine)
            admin_email: Recipient of admin notifications (defaults to settings)
        """
        self.ses_client = ses_client or get_ses_client()
        self.template_engine = template_engine or get_template_engine()
        self.admin_email = admin_email or get_settings().admin_notification_email

    async def send_order_confirmation(self, notification: OrderNotification) -> None:
        await self._send(self.CONFIRMATION_TEMPLATE, notification.customer_email, notification)

    async def send_admin_order_notification(self, notification: OrderNotification) -> None:
        if not self.admin_email:
            logger.debug(
                "Admin notification skipped, no recipient configured",
                order_number=notification.order_number,
            )
            return
        await self._send(self.ADMIN_TEMPLATE, self.admin_email, notification)

    async def _send(
        self, template_name: str, recipient: str, notification: OrderNotification
    ) -> None:
        try:
            rendered = self.template_engine.render_email(
                template_name, notification.template_context()
            )
            await asyncio.to_thread(
                self.ses_client.send_email,
                to_addresses=[recipient],
                subject=rendered["subject"],
                body_text=rendered["text_body"],
                body_html=rendered["html_body"],
            )
        except TemplateEngineError as e:
            raise NotificationRejectedError(
                f"Failed to render {template_name} email",
                order_number=notification.order_number,
                template=template_name,
                error=str(e),
            ) from e
        except SESClientError as e:
            error_class = NotificationRejectedError if e.permanent else NotificationDeliveryError
            raise error_class(
                f"Failed to send {template_name} email",
                order_number=notification.order_number,
                template=template_name,
                error=str(e),
            ) from e

        logger.info(
            "Order email sent",
            template=template_name,
            order_number=notification.order_number,
        )


@lru_cache
def get_email_sender() -> EmailNotificationSender:
    """Process-wide sender used by the notification tasks."""
    return EmailNotificationSender()
