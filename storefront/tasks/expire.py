# storefront/tasks/expire.py
from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.repos.checkout_repo import CheckoutRepo
from storefront.repos.currency_repo import CurrencyRepo
from storefront.services.checkout_service import mark_abandoned, mark_expired
from storefront.services.notification_service import NotificationService
from storefront.utils.clock import utcnow
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def expire_checkouts(db) -> int:
    """Active checkouts past expires_at become expired. Returns how many."""
    repo = CheckoutRepo(db)
    checkouts = repo.find_expired(utcnow())
    logger.info(f"Found {len(checkouts)} checkouts to expire")

    for checkout in checkouts:
        mark_expired(checkout)
    repo.commit()
    return len(checkouts)


def recover_abandoned_checkouts(db, notifications: NotificationService | None = None, limit: int = 100) -> int:
    """
    Expired checkouts that still have an email and items are marked abandoned
    and get one recovery email. Marking them first keeps the email to one per
    checkout even if the sweep overlaps itself.
    """
    notifications = notifications or NotificationService()
    repo = CheckoutRepo(db)
    currencies = CurrencyRepo(db)

    checkouts = repo.find_recoverable(limit=limit)
    for checkout in checkouts:
        mark_abandoned(checkout)
    repo.commit()

    for checkout in checkouts:
        currency = currencies.get(checkout.currency)
        if currency is None:
            logger.warning("recovery email skipped, unknown currency", checkout_id=checkout.id, currency=checkout.currency)
            continue
        notifications.send_recovery_email(checkout, currency)

    logger.info(f"Marked {len(checkouts)} checkouts abandoned for recovery")
    return len(checkouts)


@celery_app.task(name="storefront.tasks.expire.expire_checkouts_task")
def expire_checkouts_task():
    logger.info("Expire checkouts task started")
    db = SessionLocal()
    try:
        return expire_checkouts(db)
    finally:
        db.close()


@celery_app.task(name="storefront.tasks.expire.recover_abandoned_checkouts_task")
def recover_abandoned_checkouts_task():
    logger.info("Recover abandoned checkouts task started")
    db = SessionLocal()
    try:
        return recover_abandoned_checkouts(db)
    finally:
        db.close()
