# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_URL,
    CELERY_RESULT_BACKEND,
    EXPIRE_SWEEP_SECONDS,
    NOTIFICATION_WORKER_CONCURRENCY,
    RECOVERY_SWEEP_SECONDS,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# explicit imports so the worker registers every task
celery_app.conf.imports = (
    "storefront.tasks.expire",
    "storefront.tasks.notifications",
)

# bounded pool for email side effects
celery_app.conf.worker_concurrency = NOTIFICATION_WORKER_CONCURRENCY

celery_app.conf.beat_schedule = {
    "expire-checkouts-every-minute": {
        "task": "storefront.tasks.expire.expire_checkouts_task",
        "schedule": EXPIRE_SWEEP_SECONDS,
    },
    "recover-abandoned-checkouts": {
        "task": "storefront.tasks.expire.recover_abandoned_checkouts_task",
        "schedule": RECOVERY_SWEEP_SECONDS,
    },
}

celery_app.conf.timezone = "UTC"
