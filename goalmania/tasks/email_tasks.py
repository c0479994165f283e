"""Deferred notification emails"""

from celery import Task
from celery.utils.log import get_task_logger
from typing import Any, Dict, Optional
import asyncio

from goalmania.core.celery_app import celery_app
from goalmania.services.notification_dispatcher import DeliveryResult, NotificationDispatcher

logger = get_task_logger(__name__)


class EmailTask(Task):
    """Base email task with retry logic"""
    autoretry_for = (RuntimeError,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True


async def deliver(
    kind: str,
    recipient: str,
    params: Dict[str, Any],
    language: Optional[str] = None,
    dispatcher: Optional[NotificationDispatcher] = None
) -> DeliveryResult:
    dispatcher = dispatcher or NotificationDispatcher()
    return await dispatcher.send(kind, recipient, params, language)


@celery_app.task(base=EmailTask, name="goalmania.tasks.email_tasks.send_notification_email")
def send_notification_email(
    kind: str,
    recipient: str,
    params: Dict[str, Any],
    language: Optional[str] = None
):
    """Send an order notification outside the request; failed sends are retried"""
    result = asyncio.run(deliver(kind, recipient, params, language))
    if not result.success:
        logger.warning(f"{kind} to {recipient} failed: {result.error}")
        raise RuntimeError(result.error)
    return {"success": True, "kind": result.kind, "recipient": result.recipient}
