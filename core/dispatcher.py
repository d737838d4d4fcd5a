"""
Dispatcher — routes jobs to processors and applies what they return.

Flow for one job:
  consumer → handle_job(job) → processor(job, ctx) → ProcessorResult
           → hold (simulated work) → enqueue follow-ups in order
           → render each NotificationEvent → enqueue notifications/send-sms
           → mark_succeeded(output + created job ids)

A processor that raises, or a job with no registered processor, is marked
failed with "<ExceptionType>: message" and produces no follow-ups and no
notifications. There is no retry here; redelivery belongs to the queue store.
"""
from __future__ import annotations

import asyncio
import inspect
import structlog
from typing import Any, Awaitable, Callable, Union

from core.context import AppContext
from core.triggers import build_trigger
from models.schemas import Job, JobTypes, ProcessorResult, Queues
from processors.irrigation import assess_irrigation_needs, start_irrigation
from processors.maintenance import check_equipment_status
from processors.market import fetch_market_prices
from processors.sensors import collect_crop_health, collect_soil_moisture, collect_weather_data
from processors.sms import send_sms
from templates.notifications import format_notification

logger = structlog.get_logger()

Processor = Callable[[Job, AppContext], Union[ProcessorResult, Awaitable[ProcessorResult]]]


class NoProcessorError(LookupError):
    pass


class Dispatcher:

    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self._handlers: dict[tuple[str, str], Processor] = {}

    # ──────────────────────────────────────────────────────────────
    #  Registration
    # ──────────────────────────────────────────────────────────────

    def register(self, queue: str, job_type: str, handler: Processor):
        self._handlers[(queue, job_type)] = handler

    def register_defaults(self) -> "Dispatcher":
        self.register(Queues.IOT_SENSORS, JobTypes.COLLECT_SOIL_MOISTURE, collect_soil_moisture)
        self.register(Queues.IOT_SENSORS, JobTypes.COLLECT_WEATHER_DATA, collect_weather_data)
        self.register(Queues.IOT_SENSORS, JobTypes.COLLECT_CROP_HEALTH, collect_crop_health)
        self.register(Queues.IRRIGATION, JobTypes.START_IRRIGATION, start_irrigation)
        self.register(Queues.IRRIGATION, JobTypes.ASSESS_IRRIGATION_NEEDS, assess_irrigation_needs)
        self.register(Queues.MARKET_DATA, JobTypes.FETCH_MARKET_PRICES, fetch_market_prices)
        self.register(Queues.MAINTENANCE, JobTypes.CHECK_EQUIPMENT_STATUS, check_equipment_status)
        self.register(Queues.NOTIFICATIONS, JobTypes.SEND_SMS, send_sms)
        return self

    def registered(self) -> list[tuple[str, str]]:
        return sorted(self._handlers)

    # ──────────────────────────────────────────────────────────────
    #  Triggers
    # ──────────────────────────────────────────────────────────────

    async def trigger(self, name: str, body: Any = None) -> list[str]:
        """
        Seed the jobs for a named trigger. Raises UnknownTriggerError or
        TriggerError before anything is enqueued.
        """
        requests = build_trigger(name, self.ctx.settings, body)
        job_ids = []
        for req in requests:
            job_ids.append(await self.ctx.queue.enqueue(req.queue, req.job_type, req.payload))
        logger.info("trigger_fired", trigger=name, jobs=len(job_ids))
        return job_ids

    # ──────────────────────────────────────────────────────────────
    #  Job handling
    # ──────────────────────────────────────────────────────────────

    async def handle_job(self, job: Job):
        handler = self._handlers.get((job.queue_name, job.job_type))
        if handler is None:
            await self._fail(job, NoProcessorError(
                f"No processor registered for {job.queue_name}/{job.job_type}"))
            return

        logger.info("job_started", job_id=job.id, queue=job.queue_name,
                    job_type=job.job_type, attempt=job.attempts)
        try:
            result = handler(job, self.ctx)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            await self._fail(job, e)
            return

        try:
            await self._apply(job, result)
        except Exception as e:
            await self._fail(job, e)

    async def _apply(self, job: Job, result: ProcessorResult):
        """
        Carry out a processor's intents, then record success. Follow-ups
        already enqueued stay queued if a later step raises.
        """
        if result.hold_seconds > 0:
            await asyncio.sleep(result.hold_seconds)

        follow_up_ids = []
        for req in result.follow_ups:
            job_id = await self.ctx.queue.enqueue(req.queue, req.job_type, req.payload)
            follow_up_ids.append(job_id)
            logger.info("follow_up_enqueued", parent_job_id=job.id, job_id=job_id,
                        queue=req.queue, job_type=req.job_type)

        notification_ids = []
        for event in result.notifications:
            farm_id = event.farm_id or self.ctx.farm_id
            kind = getattr(event.kind, "value", event.kind)
            job_id = await self.ctx.queue.enqueue(Queues.NOTIFICATIONS, JobTypes.SEND_SMS, {
                "phoneNumber": self.ctx.settings.farm.farmer_phone,
                "message": format_notification(event.kind, event.details, farm_id),
                "farmId": farm_id,
                "type": kind,
            })
            notification_ids.append(job_id)
            logger.info("notification_enqueued", parent_job_id=job.id, job_id=job_id, kind=kind)

        output = dict(result.output)
        output["followUpJobIds"] = follow_up_ids
        output["notificationJobIds"] = notification_ids
        await self.ctx.queue.mark_succeeded(job.id, output)
        logger.info("job_succeeded", job_id=job.id, queue=job.queue_name, job_type=job.job_type,
                    follow_ups=len(follow_up_ids), notifications=len(notification_ids))

    async def _fail(self, job: Job, error: Exception):
        message = f"{type(error).__name__}: {error}"
        await self.ctx.queue.mark_failed(job.id, message)
        logger.error("job_failed", job_id=job.id, queue=job.queue_name,
                     job_type=job.job_type, error=message)

    # ──────────────────────────────────────────────────────────────
    #  Status
    # ──────────────────────────────────────────────────────────────

    async def status(self) -> dict[str, Any]:
        queues = {}
        for name in Queues.ALL:
            queues[name] = await self.ctx.queue.depth_by_state(name)
        return {
            "queues": queues,
            "environment": {
                "farmId": self.ctx.farm_id,
                "webhookBaseUrl": self.ctx.settings.scheduler.webhook_base_url,
                "queueHost": self.ctx.settings.queue_host,
            },
        }
