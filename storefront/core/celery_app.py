"""
Celery application used for background notification delivery.

Workers are started with ``celery -A storefront.core.celery_app worker``.
"""

from celery import Celery

from storefront.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "storefront",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["storefront.services.notifications.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    task_acks_late=True,
    task_always_eager=settings.celery_task_always_eager,
)
