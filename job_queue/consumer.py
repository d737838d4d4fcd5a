"""
Queue Consumers — one independent loop per named queue.

  ┌─────────────┐   dequeue_next   ┌──────────────┐   handle_job   ┌────────────┐
  │ iot-sensors │ ───────────────▶ │ QueueConsumer│ ─────────────▶ │ Dispatcher │
  └─────────────┘                  └──────────────┘                └─────┬──────┘
  ┌─────────────┐                  ┌──────────────┐                      │
  │ irrigation  │ ───────────────▶ │ QueueConsumer│ ─────────────▶ ...   │ enqueue
  └─────────────┘                  └──────────────┘                      ▼
        ...                                                    follow-ups / send-sms

Within a queue jobs are handled strictly one at a time in arrival order.
Queues are independent of each other. A stop request is honoured between
jobs, never in the middle of one.
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Any, Awaitable, Callable, Iterable, Optional

from job_queue.message_queue import MessageQueue
from models.schemas import Job

logger = structlog.get_logger()

JobHandler = Callable[[Job], Awaitable[Any]]


class QueueConsumer:
    """
    Pulls jobs from one queue and hands each to the handler.

    Usage:
        consumer = QueueConsumer(queue, "irrigation", dispatcher.handle_job)
        await consumer.start()              # blocks until stop()
        await consumer.start_background()   # returns immediately, runs as task
        await consumer.stop()
    """

    def __init__(
        self,
        queue: MessageQueue,
        queue_name: str,
        handler: JobHandler,
        poll_timeout: float = 2.0,
    ):
        self.queue = queue
        self.queue_name = queue_name
        self.handler = handler
        self.poll_timeout = poll_timeout
        self.processed: int = 0
        self._task: Optional[asyncio.Task] = None
        self._current: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Consume until stop() is called."""
        self._running = True
        logger.info("consumer_started", queue=self.queue_name)

        while self._running:
            try:
                job = await self.queue.dequeue_next(self.queue_name, timeout=self.poll_timeout)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("consumer_error", queue=self.queue_name, error=str(e))
                await asyncio.sleep(1)
                continue

            if job is None:
                continue

            # Shielded so that stop() never aborts a job half way through.
            self._current = asyncio.create_task(self._run_one(job))
            await asyncio.shield(self._current)
            self._current = None

        self._running = False
        logger.info("consumer_stopped", queue=self.queue_name, processed=self.processed)

    async def _run_one(self, job: Job):
        try:
            await self.handler(job)
        except Exception as e:
            logger.error("job_handler_error",
                         queue=self.queue_name,
                         job_id=job.id,
                         error=str(e),
                         exc_info=True)
        self.processed += 1

    async def start_background(self) -> asyncio.Task:
        """Start consuming in a background task. Returns the task handle."""
        self._task = asyncio.create_task(self.start())
        return self._task

    async def stop(self):
        self._running = False
        if self._current is not None:
            await self._current
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


class ConsumerPool:
    """One QueueConsumer per queue name, started and stopped together."""

    def __init__(
        self,
        queue: MessageQueue,
        queue_names: Iterable[str],
        handler: JobHandler,
        poll_timeout: float = 2.0,
    ):
        self.consumers = [
            QueueConsumer(queue, name, handler, poll_timeout=poll_timeout)
            for name in queue_names
        ]

    async def start(self):
        for consumer in self.consumers:
            await consumer.start_background()
        logger.info("consumer_pool_started", queues=[c.queue_name for c in self.consumers])

    async def stop(self):
        await asyncio.gather(*(c.stop() for c in self.consumers))
        logger.info("consumer_pool_stopped")

    def stats(self) -> dict[str, Any]:
        return {
            c.queue_name: {"running": c.running, "processed": c.processed}
            for c in self.consumers
        }
