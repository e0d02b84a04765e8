"""Background worker process.

RUN:  python -m online_courses.worker

Same image as the API, different command:
  api:    uvicorn online_courses.main:app --host 0.0.0.0 --port 8000
  worker: python -m online_courses.worker

The loop polls every registered queue in turn, dispatches each task to
its handler and logs the outcome.  A failed task is logged and dropped;
CRM sync is best-effort and the next enrollment change rewrites the
whole course list anyway.

The queue is only shared between processes when REDIS_URL is set.
Without it the worker sees its own empty in-memory queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from online_courses.core.config import SETTINGS
from online_courses.core.logging import setup_logging
from online_courses.core.metrics import QUEUE_DEPTH
from online_courses.db.redis import redis_pool
from online_courses.services.crm_sync import (
    CrmContact,
    hubspot_client,
    sync_completion,
    sync_enrollment,
)
from online_courses.services.task_queue import CRM_SYNC_QUEUE, task_queue

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("online_courses.worker")

IDLE_SLEEP = 1.0  # seconds, in-memory queue only

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(CRM_SYNC_QUEUE)
async def handle_crm_sync(payload: dict) -> None:
    """Push one enrollment or completion change to HubSpot."""
    contact = CrmContact.from_payload(payload["contact"])
    course_key = payload["course_key"]
    if payload["kind"] == "completed":
        await sync_completion(hubspot_client, course_key, contact)
    else:
        await sync_enrollment(
            hubspot_client, course_key, bool(payload.get("enrolled", True)), contact
        )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process_next(queue_name: str, timeout: int = 1) -> bool:
    """Run at most one task from the queue.  Returns False when it was empty."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    QUEUE_DEPTH.labels(queue_name=queue_name).set(await task_queue.queue_length(queue_name))
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        # No dead-letter queue: the task is dropped.
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
    return True


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)
    if redis_pool is None:
        logger.warning("No REDIS_URL configured; worker only sees its own in-memory queue")

    while True:
        handled = False
        for queue_name in queues:
            handled = await process_next(queue_name) or handled
        # BRPOP blocks on Redis; the in-memory queue returns immediately.
        if not handled and redis_pool is None:
            await asyncio.sleep(IDLE_SLEEP)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
