# storefront/services/notification_service.py
from storefront.domain.money import format_money
from storefront.tasks.notifications import (
    send_order_confirmation_task,
    send_order_notification_task,
    send_recovery_email_task,
)
from storefront.utils.logging import get_logger
from storefront.utils.settings import ADMIN_EMAIL

logger = get_logger(__name__)


def order_payload(order, currency) -> dict:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_name": order.customer_full_name,
        "customer_email": order.customer_email,
        "items": [
            {
                "name": f"{i.product_name} ({i.variant_name})" if i.variant_name else i.product_name,
                "quantity": i.quantity,
                "subtotal": format_money(i.subtotal, currency),
            }
            for i in order.items
        ],
        "shipping": format_money(order.shipping_cost, currency),
        "discount": format_money(order.discount_amount, currency),
        "total": format_money(order.final_amount, currency),
    }


def recovery_payload(checkout, currency) -> dict:
    return {
        "checkout_id": checkout.id,
        "customer_name": checkout.customer_full_name,
        "customer_email": checkout.customer_email,
        "total_items": checkout.total_items,
        "total": format_money(checkout.final_amount, currency),
    }


class NotificationService:
    """
    Fire-and-forget email side effects.

    Only the enqueue happens in the caller's thread; delivery and its retries
    belong to the Celery worker pool. A broker that refuses the message is
    logged and otherwise ignored, the caller's use case has already committed.
    """

    def __init__(self, admin_email: str | None = None):
        self.admin_email = admin_email or ADMIN_EMAIL

    def _enqueue(self, task, *args, kind: str, ref) -> bool:
        try:
            task.delay(*args)
            return True
        except Exception:
            logger.exception("failed to enqueue notification", kind=kind, ref=ref)
            return False

    def send_order_confirmation(self, order, currency) -> bool:
        return self._enqueue(
            send_order_confirmation_task,
            order_payload(order, currency),
            kind="order_confirmation",
            ref=order.id,
        )

    def send_order_notification(self, order, currency) -> bool:
        return self._enqueue(
            send_order_notification_task,
            order_payload(order, currency),
            self.admin_email,
            kind="order_notification",
            ref=order.id,
        )

    def send_recovery_email(self, checkout, currency) -> bool:
        return self._enqueue(
            send_recovery_email_task,
            recovery_payload(checkout, currency),
            kind="checkout_recovery",
            ref=checkout.id,
        )
