from celery import Celery
from app.core.config import settings

# Scheduling clock only: crontab parsing and timezone. Sync jobs run in the API process.
celery_app = Celery(
    "inventory_sync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.TIMEZONE,
    enable_utc=True,
    result_expires=3600,
)
