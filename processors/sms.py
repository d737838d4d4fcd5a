"""Outbound SMS processor (queue: notifications)."""
from __future__ import annotations

import structlog
from typing import TYPE_CHECKING

from models.schemas import Job, ProcessorResult

if TYPE_CHECKING:
    from core.context import AppContext

logger = structlog.get_logger()


async def send_sms(job: Job, ctx: "AppContext") -> ProcessorResult:
    to = job.payload.get("phoneNumber") or ctx.settings.farm.farmer_phone
    message = job.payload.get("message") or ""
    kind = job.payload.get("type") or "notification"

    result = await ctx.sms.send(to, message)

    if result.success:
        return ProcessorResult(output={
            "status": "sent",
            "to": result.to,
            "type": kind,
            "providerResponse": {
                "messageId": result.provider_message_id,
                "cost": result.cost,
                "segments": result.segments,
                "provider": result.provider,
            },
        })

    logger.warning("sms_job_undelivered", job_id=job.id, to=to, error=result.error)
    return ProcessorResult(output={
        "status": "failed",
        "to": result.to or to,
        "type": kind,
        "error": result.error,
    })
