"""Celery application configuration"""

from celery import Celery
from kombu import Exchange, Queue

from goalmania.core.config import settings

celery_app = Celery(
    "goalmania",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "goalmania.tasks.email_tasks",
        "goalmania.tasks.cleanup_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    task_routes={
        "goalmania.tasks.email_tasks.*": {"queue": "email"},
        "goalmania.tasks.cleanup_tasks.*": {"queue": "cleanup"},
    },

    task_default_retry_delay=60,
    task_max_retries=3,
    result_expires=3600,
)

celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("email", Exchange("email"), routing_key="email"),
    Queue("cleanup", Exchange("cleanup"), routing_key="cleanup"),
)

celery_app.conf.beat_schedule = {
    "sweep-abandoned-payment-intents": {
        "task": "goalmania.tasks.cleanup_tasks.sweep_abandoned_intents",
        "schedule": 60 * 60,  # Hourly
        "options": {"queue": "cleanup"},
    },
}
