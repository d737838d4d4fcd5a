"""
Message Queue — Abstract interface with Redis and in-memory backends.

Queue Topology (one independent FIFO per domain):
  iot-sensors      — sensor collection jobs
  irrigation       — irrigation assessment and control
  market-data      — market price checks
  maintenance      — equipment health checks
  notifications    — outbound SMS

Job lifecycle:
  queued → active (dequeue_next, attempts += 1) → succeeded | failed

Delivery is at-least-once: a job left active by a crashed consumer is made
eligible again by the store (see RedisMessageQueue.connect). Retry policy is
not the queue's business; a failed job stays failed.
"""
from __future__ import annotations

import asyncio
import structlog
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from models.schemas import Job, JobState

logger = structlog.get_logger()


def empty_depth() -> dict[str, int]:
    return {state.value: 0 for state in JobState}


# ──────────────────────────────────────────────────────────────
#  Abstract Interface
# ──────────────────────────────────────────────────────────────

class MessageQueue(ABC):
    """Abstract message queue interface."""

    @abstractmethod
    async def connect(self):
        """Establish connection to the queue backend."""
        ...

    @abstractmethod
    async def close(self):
        """Gracefully shut down."""
        ...

    @abstractmethod
    async def enqueue(self, queue: str, job_type: str, payload: dict[str, Any]) -> str:
        """Append a job to a queue. Returns the job id."""
        ...

    @abstractmethod
    async def dequeue_next(self, queue: str, timeout: Optional[float] = None) -> Optional[Job]:
        """
        Take the oldest queued job and mark it active.
        Suspends until a job arrives; returns None only if timeout elapses.
        """
        ...

    @abstractmethod
    async def mark_succeeded(self, job_id: str, result: dict[str, Any]):
        ...

    @abstractmethod
    async def mark_failed(self, job_id: str, error: str):
        ...

    @abstractmethod
    async def depth_by_state(self, queue: str) -> dict[str, int]:
        """Return job counts by state for one queue."""
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    async def list_jobs(
        self, queue: str, state: Optional[JobState] = None, limit: int = 50,
    ) -> list[Job]:
        """Jobs on one queue, newest first, optionally filtered by state."""
        ...


# ──────────────────────────────────────────────────────────────
#  In-Memory Implementation (Development)
# ──────────────────────────────────────────────────────────────

class InMemoryMessageQueue(MessageQueue):
    """
    Development/test queue backed by asyncio primitives.
    Single-process only — no persistence, no redelivery.
    """

    def __init__(self):
        self._queues: dict[str, asyncio.Queue] = {}
        self._jobs: dict[str, Job] = {}

    def _get_queue(self, name: str) -> asyncio.Queue:
        if name not in self._queues:
            self._queues[name] = asyncio.Queue()
        return self._queues[name]

    async def connect(self):
        logger.info("inmemory_queue_connected")

    async def close(self):
        pass

    async def enqueue(self, queue: str, job_type: str, payload: dict[str, Any]) -> str:
        job = Job(queue_name=queue, job_type=job_type, payload=dict(payload))
        self._jobs[job.id] = job
        await self._get_queue(queue).put(job.id)
        logger.info("job_enqueued", queue=queue, job_type=job_type, job_id=job.id)
        return job.id

    async def dequeue_next(self, queue: str, timeout: Optional[float] = None) -> Optional[Job]:
        q = self._get_queue(queue)
        try:
            if timeout is None:
                job_id = await q.get()
            else:
                job_id = await asyncio.wait_for(q.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

        job = self._jobs[job_id]
        job.state = JobState.ACTIVE
        job.attempts += 1
        job.updated_at = datetime.now(timezone.utc)
        return job.model_copy(deep=True)

    async def mark_succeeded(self, job_id: str, result: dict[str, Any]):
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning("job_not_found", job_id=job_id)
            return
        job.state = JobState.SUCCEEDED
        job.result = result
        job.updated_at = datetime.now(timezone.utc)

    async def mark_failed(self, job_id: str, error: str):
        job = self._jobs.get(job_id)
        if job is None:
            logger.warning("job_not_found", job_id=job_id)
            return
        job.state = JobState.FAILED
        job.error = error
        job.result = {"error": error}
        job.updated_at = datetime.now(timezone.utc)

    async def depth_by_state(self, queue: str) -> dict[str, int]:
        counts = empty_depth()
        for job in self._jobs.values():
            if job.queue_name == queue:
                counts[job.state.value] += 1
        return counts

    async def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def list_jobs(
        self, queue: str, state: Optional[JobState] = None, limit: int = 50,
    ) -> list[Job]:
        matching = [
            j for j in reversed(list(self._jobs.values()))
            if j.queue_name == queue and (state is None or j.state == state)
        ]
        return [j.model_copy(deep=True) for j in matching[:limit]]

    def jobs(self, queue: str = None) -> list[Job]:
        """All known jobs in enqueue order, optionally filtered by queue."""
        return [
            j.model_copy(deep=True) for j in self._jobs.values()
            if queue is None or j.queue_name == queue
        ]


# ──────────────────────────────────────────────────────────────
#  Redis Implementation
# ──────────────────────────────────────────────────────────────

class RedisMessageQueue(MessageQueue):
    """
    Production queue backed by Redis lists, sets and a job hash.

    - {prefix}:{queue}:waiting   list, LPUSH on enqueue
    - {prefix}:{queue}:active    list, BLMOVE from waiting (RIGHT → LEFT)
    - {prefix}:{queue}:{state}   set of job ids per state, for depth counts
    - {prefix}:jobs              hash job_id → Job JSON
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", key_prefix: str = "locci"):
        self._redis_url = redis_url
        self._prefix = key_prefix
        self._redis = None

    def _key(self, queue: str, suffix: str) -> str:
        return f"{self._prefix}:{queue}:{suffix}"

    @property
    def _jobs_key(self) -> str:
        return f"{self._prefix}:jobs"

    async def connect(self):
        import redis.asyncio as aioredis
        self._redis = aioredis.from_url(
            self._redis_url,
            decode_responses=True,
            max_connections=20,
        )
        await self._redis.ping()
        await self._recover_active()
        logger.info("redis_queue_connected", url=self._redis_url)

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _recover_active(self):
        """Push jobs stranded in an active list back onto waiting."""
        async for key in self._redis.scan_iter(match=f"{self._prefix}:*:active"):
            queue = key[len(self._prefix) + 1:-len(":active")]
            while True:
                job_id = await self._redis.lmove(key, self._key(queue, "waiting"), "LEFT", "RIGHT")
                if job_id is None:
                    break
                job = await self._load(job_id)
                if job is not None:
                    job.state = JobState.QUEUED
                    await self._save(job)
                await self._set_state(queue, job_id, JobState.ACTIVE, JobState.QUEUED)
                logger.warning("job_redelivered", queue=queue, job_id=job_id)

    async def _load(self, job_id: str) -> Optional[Job]:
        raw = await self._redis.hget(self._jobs_key, job_id)
        return Job.model_validate_json(raw) if raw else None

    async def _save(self, job: Job):
        job.updated_at = datetime.now(timezone.utc)
        await self._redis.hset(self._jobs_key, job.id, job.model_dump_json())

    async def _set_state(self, queue: str, job_id: str, old: JobState, new: JobState):
        await self._redis.smove(self._key(queue, old.value), self._key(queue, new.value), job_id)

    async def enqueue(self, queue: str, job_type: str, payload: dict[str, Any]) -> str:
        job = Job(queue_name=queue, job_type=job_type, payload=dict(payload))
        pipe = self._redis.pipeline()
        pipe.hset(self._jobs_key, job.id, job.model_dump_json())
        pipe.sadd(self._key(queue, JobState.QUEUED.value), job.id)
        pipe.lpush(self._key(queue, "waiting"), job.id)
        await pipe.execute()
        logger.info("job_enqueued", queue=queue, job_type=job_type, job_id=job.id)
        return job.id

    async def dequeue_next(self, queue: str, timeout: Optional[float] = None) -> Optional[Job]:
        job_id = await self._redis.blmove(
            self._key(queue, "waiting"),
            self._key(queue, "active"),
            timeout=timeout or 0,
            src="RIGHT",
            dest="LEFT",
        )
        if job_id is None:
            return None

        job = await self._load(job_id)
        if job is None:
            logger.error("job_payload_missing", queue=queue, job_id=job_id)
            await self._redis.lrem(self._key(queue, "active"), 1, job_id)
            return None

        job.state = JobState.ACTIVE
        job.attempts += 1
        await self._save(job)
        await self._set_state(queue, job.id, JobState.QUEUED, JobState.ACTIVE)
        return job

    async def _finish(self, job_id: str, state: JobState, result: dict[str, Any], error: str = None):
        job = await self._load(job_id)
        if job is None:
            logger.warning("job_not_found", job_id=job_id)
            return
        previous = job.state
        job.state = state
        job.result = result
        job.error = error
        await self._save(job)
        await self._set_state(job.queue_name, job.id, previous, state)
        await self._redis.lrem(self._key(job.queue_name, "active"), 1, job.id)

    async def mark_succeeded(self, job_id: str, result: dict[str, Any]):
        await self._finish(job_id, JobState.SUCCEEDED, result)

    async def mark_failed(self, job_id: str, error: str):
        await self._finish(job_id, JobState.FAILED, {"error": error}, error)

    async def depth_by_state(self, queue: str) -> dict[str, int]:
        pipe = self._redis.pipeline()
        states = list(JobState)
        for state in states:
            pipe.scard(self._key(queue, state.value))
        counts = await pipe.execute()
        return {state.value: int(n) for state, n in zip(states, counts)}

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self._load(job_id)

    async def list_jobs(
        self, queue: str, state: Optional[JobState] = None, limit: int = 50,
    ) -> list[Job]:
        states = [state] if state is not None else list(JobState)
        job_ids: set[str] = set()
        for s in states:
            job_ids.update(await self._redis.smembers(self._key(queue, s.value)))
        if not job_ids:
            return []
        raws = await self._redis.hmget(self._jobs_key, list(job_ids))
        jobs = [Job.model_validate_json(raw) for raw in raws if raw]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]


# ──────────────────────────────────────────────────────────────
#  Factory
# ──────────────────────────────────────────────────────────────

def create_message_queue(queue_config: dict[str, Any] = None) -> MessageQueue:
    """Factory: create the appropriate queue backend."""
    config = queue_config or {}
    backend = config.get("backend", "memory")

    if backend == "redis":
        return RedisMessageQueue(
            redis_url=config.get("redis_url", "redis://localhost:6379"),
            key_prefix=config.get("key_prefix", "locci"),
        )
    return InMemoryMessageQueue()
