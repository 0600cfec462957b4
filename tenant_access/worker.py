"""Notification worker process.

RUN:  python -m tenant_access.worker

Same image as the API, different command:
  api:    uvicorn tenant_access.main:app --host 0.0.0.0 --port 8000
  worker: python -m tenant_access.worker

The loop polls every registered queue, dequeues one task at a time and
dispatches it to the queue's handler. A failing task is logged and
dropped (at-most-once delivery); invitations can always be resent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from tenant_access.core.config import SETTINGS
from tenant_access.core.logging import setup_logging
from tenant_access.services.notifications import INVITATION_TEMPLATE
from tenant_access.services.task_queue import NOTIFICATIONS_QUEUE, TaskQueue, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger(__name__)

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


def render_invitation(data: dict) -> tuple[str, str]:
    """Subject and plain-text body of an invitation email."""
    subject = f"You're invited to join {data['organization']}"
    lines = [
        f"You have been invited to join {data['organization']} as {data['role']}.",
        "",
        f"Accept with this token before {data['expires_at']}:",
        data["token"],
    ]
    if data.get("message"):
        lines[1:1] = ["", data["message"]]
    return subject, "\n".join(lines)


@register_handler(NOTIFICATIONS_QUEUE)
async def handle_notification(payload: dict) -> None:
    template = payload["template"]
    if template != INVITATION_TEMPLATE:
        raise ValueError(f"unknown notification template: {template}")

    subject, _body = render_invitation(payload["data"])
    # Delivery goes through the mail relay in production; here it is logged.
    logger.info("Delivered email to=%s subject=%r", payload["email"], subject)


async def process_one(queue: TaskQueue, queue_name: str, timeout: int = 1) -> bool:
    """Handle at most one task from ``queue_name``. True if a task was taken."""
    task = await queue.dequeue(queue_name, timeout=timeout)
    if task is None:
        return False

    try:
        await HANDLERS[queue_name](task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker(queue: TaskQueue = task_queue) -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS)
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        taken = False
        for queue_name in queues:
            taken = await process_one(queue, queue_name) or taken
        if not taken:
            # In-memory queues do not block on dequeue.
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
