import logging

from celery import Celery
from celery.signals import setup_logging

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "pitchivo",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["app.workers.extraction_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max per task
    task_soft_time_limit=540,  # Soft limit at 9 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "app.workers.extraction_tasks.run_document_extraction": {"queue": "documents.extract"},
        "app.workers.extraction_tasks.send_rfq_notification_email": {"queue": "notifications.email"},
        "app.workers.extraction_tasks.send_access_link_email": {"queue": "notifications.email"},
    },
    task_annotations={
        "app.workers.extraction_tasks.send_rfq_notification_email": {
            "time_limit": 120,
            "soft_time_limit": 90,
        },
        "app.workers.extraction_tasks.send_access_link_email": {
            "time_limit": 120,
            "soft_time_limit": 90,
        },
    },
)


@setup_logging.connect
def configure_logging(**kwargs):
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
