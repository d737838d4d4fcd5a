"""Irrigation processors (queue: irrigation)."""
from __future__ import annotations

import structlog
from typing import TYPE_CHECKING

from models.schemas import (
    EnqueueRequest, Job, JobTypes, NotificationEvent, NotificationKind,
    ProcessorResult, Queues,
)

if TYPE_CHECKING:
    from core.context import AppContext

logger = structlog.get_logger()

# The assessment path has historically used a higher trigger level than
# sensor collection (30); both are kept as found.
ASSESSMENT_MOISTURE_DEFAULT = 35.0


def start_irrigation(job: Job, ctx: "AppContext") -> ProcessorResult:
    farm_id = job.payload.get("farmId") or ctx.farm_id
    zone = job.payload.get("zone") or "zone-a"
    reason = job.payload.get("reason") or "manual"
    logger.info("starting_irrigation", farm_id=farm_id, zone=zone, reason=reason)

    given = job.payload.get("moistureLevel")
    before = float(given) if given is not None else ctx.readings.reading("moisture_before", 20, 60)
    after = min(100.0, before + ctx.readings.reading("moisture_gain", 20, 50))
    duration = ctx.settings.irrigation.duration_minutes

    return ProcessorResult(
        output={
            "farmId": farm_id,
            "zone": zone,
            "reason": reason,
            "beforeLevel": before,
            "afterLevel": after,
            "durationMinutes": duration,
            "status": "irrigation_completed",
        },
        notifications=[NotificationEvent(
            kind=NotificationKind.IRRIGATION_COMPLETED,
            farm_id=farm_id,
            details={
                "zone": zone,
                "reason": reason,
                "before_level": before,
                "after_level": after,
                "duration_minutes": duration,
            },
        )],
        hold_seconds=ctx.settings.irrigation.simulated_delay_seconds,
    )


def assess_irrigation_needs(job: Job, ctx: "AppContext") -> ProcessorResult:
    farm_id = job.payload.get("farmId") or ctx.farm_id
    zones = job.payload.get("zones") or ctx.settings.farm.zones
    logger.info("assessing_irrigation_needs", farm_id=farm_id, zones=len(zones))

    threshold = ctx.thresholds.resolve("soil_moisture_low", default=ASSESSMENT_MOISTURE_DEFAULT)
    readings: dict[str, float] = {}
    irrigated: list[str] = []
    follow_ups: list[EnqueueRequest] = []

    for zone in zones:
        moisture = ctx.readings.reading(f"soil_moisture.{zone}", 0, 100)
        readings[zone] = moisture
        if moisture < threshold:
            irrigated.append(zone)
            follow_ups.append(EnqueueRequest(
                queue=Queues.IRRIGATION,
                job_type=JobTypes.START_IRRIGATION,
                payload={
                    "farmId": farm_id,
                    "zone": zone,
                    "reason": "scheduled_assessment",
                    "moistureLevel": moisture,
                },
            ))

    summary = NotificationEvent(
        kind=NotificationKind.TASK_COMPLETED,
        farm_id=farm_id,
        details={
            "task": "irrigation_assessment",
            "summary": f"{len(zones)} zones checked, {len(irrigated)} need irrigation",
            "items": irrigated,
        },
    )

    return ProcessorResult(
        output={
            "farmId": farm_id,
            "status": "assessment_complete",
            "zonesChecked": len(zones),
            "zonesIrrigated": irrigated,
            "readings": readings,
            "threshold": threshold,
        },
        follow_ups=follow_ups,
        notifications=[summary],
    )
