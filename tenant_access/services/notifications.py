"""Notification collaborator: fire-and-forget email sends.

The lifecycle service calls ``send`` after its transaction commits. A
failed send is logged and counted, never raised: a broken mail path must
not undo an invitation that was already issued.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from tenant_access.core.metrics import NOTIFICATION_FAILURES
from tenant_access.services.task_queue import NOTIFICATIONS_QUEUE, TaskQueue

logger = logging.getLogger(__name__)

INVITATION_TEMPLATE = "invitation"


class Notifier(Protocol):
    async def send(self, email: str, template: str, data: dict[str, Any]) -> None: ...


class TaskQueueNotifier:
    """Enqueues an email task for the worker process to deliver."""

    def __init__(self, queue: TaskQueue) -> None:
        self._queue = queue

    async def send(self, email: str, template: str, data: dict[str, Any]) -> None:
        task = await self._queue.enqueue(
            NOTIFICATIONS_QUEUE,
            {"email": email, "template": template, "data": data},
        )
        logger.info("Queued %s email task=%s", template, task.id)


async def notify_quietly(
    notifier: Notifier, email: str, template: str, data: dict[str, Any]
) -> None:
    try:
        await notifier.send(email, template, data)
    except Exception:
        NOTIFICATION_FAILURES.labels(template=template).inc()
        logger.exception("Notification %s to %s failed", template, email)
