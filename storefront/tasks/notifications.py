# storefront/tasks/notifications.py
"""
Email side effects of the order lifecycle.

Payloads are plain dicts built by NotificationService at enqueue time, so the
worker never reads the database and a task can be replayed as-is.
"""
import smtplib

from storefront.celery_worker import celery_app
from storefront.services.email_sender import get_sender
from storefront.utils.logging import get_logger
from storefront.utils.settings import NOTIFICATION_MAX_RETRIES, STORE_NAME, STORE_URL

logger = get_logger(__name__)

_RETRYABLE = (smtplib.SMTPException, OSError)


def _lines(payload: dict) -> str:
    return "\n".join(
        f"  {item['quantity']} x {item['name']}  {item['subtotal']}" for item in payload.get("items", [])
    )


def order_confirmation_body(payload: dict) -> str:
    return (
        f"Hi {payload['customer_name']},\n\n"
        f"Thank you for your order {payload['order_number']}.\n\n"
        f"{_lines(payload)}\n\n"
        f"Shipping: {payload['shipping']}\n"
        f"Discount: {payload['discount']}\n"
        f"Total: {payload['total']}\n\n"
        f"{STORE_NAME}\n"
    )


def order_notification_body(payload: dict) -> str:
    return (
        f"New order {payload['order_number']} from {payload['customer_name']} <{payload['customer_email']}>\n\n"
        f"{_lines(payload)}\n\n"
        f"Total: {payload['total']}\n"
    )


def recovery_body(payload: dict) -> str:
    name = payload.get("customer_name") or "there"
    return (
        f"Hi {name},\n\n"
        f"You left {payload['total_items']} item(s) in your basket ({payload['total']}).\n"
        f"Pick up where you left off: {STORE_URL}/checkout\n\n"
        f"{STORE_NAME}\n"
    )


def _send(task, recipient: str, subject: str, body: str, kind: str, ref):
    try:
        get_sender().send(recipient, subject, body)
    except _RETRYABLE as e:
        logger.warning("email delivery failed", kind=kind, ref=ref, attempt=task.request.retries, error=str(e))
        raise task.retry(exc=e)
    logger.info("email delivered", kind=kind, ref=ref)
    return {"kind": kind, "ref": ref, "status": "sent"}


@celery_app.task(
    name="storefront.tasks.notifications.send_order_confirmation_task",
    bind=True,
    max_retries=NOTIFICATION_MAX_RETRIES,
    default_retry_delay=30,
)
def send_order_confirmation_task(self, payload: dict):
    return _send(
        self,
        payload["customer_email"],
        f"Your {STORE_NAME} order {payload['order_number']}",
        order_confirmation_body(payload),
        "order_confirmation",
        payload["order_id"],
    )


@celery_app.task(
    name="storefront.tasks.notifications.send_order_notification_task",
    bind=True,
    max_retries=NOTIFICATION_MAX_RETRIES,
    default_retry_delay=30,
)
def send_order_notification_task(self, payload: dict, recipient: str):
    return _send(
        self,
        recipient,
        f"New order {payload['order_number']}",
        order_notification_body(payload),
        "order_notification",
        payload["order_id"],
    )


@celery_app.task(
    name="storefront.tasks.notifications.send_recovery_email_task",
    bind=True,
    max_retries=NOTIFICATION_MAX_RETRIES,
    default_retry_delay=60,
)
def send_recovery_email_task(self, payload: dict):
    return _send(
        self,
        payload["customer_email"],
        f"You left something in your {STORE_NAME} basket",
        recovery_body(payload),
        "checkout_recovery",
        payload["checkout_id"],
    )
