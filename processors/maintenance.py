"""Equipment maintenance processor (queue: maintenance)."""
from __future__ import annotations

import structlog
from typing import TYPE_CHECKING, Optional

from models.schemas import Job, NotificationEvent, NotificationKind, ProcessorResult

if TYPE_CHECKING:
    from core.context import AppContext
    from rules.thresholds import ThresholdRegistry

logger = structlog.get_logger()


def health_band(health: float, thresholds: "ThresholdRegistry") -> Optional[NotificationKind]:
    """Failure below the failure edge, maintenance up to the maintenance edge, else nothing."""
    if health < thresholds.resolve("equipment_failure_health"):
        return NotificationKind.EQUIPMENT_FAILURE
    if health < thresholds.resolve("equipment_maintenance_health"):
        return NotificationKind.MAINTENANCE_REQUIRED
    return None


def check_equipment_status(job: Job, ctx: "AppContext") -> ProcessorResult:
    farm_id = job.payload.get("farmId") or ctx.farm_id
    equipment = job.payload.get("equipment") or ctx.settings.farm.equipment
    logger.info("checking_equipment_status", farm_id=farm_id, equipment=equipment)

    health: dict[str, float] = {}
    alerts: list[NotificationEvent] = []

    for item in equipment:
        value = ctx.readings.reading(f"equipment_health.{item}", 0, 100)
        health[item] = value
        kind = health_band(value, ctx.thresholds)
        if kind is None:
            continue
        alerts.append(NotificationEvent(
            kind=kind,
            farm_id=farm_id,
            details={
                "equipment": item,
                "health": value,
                "urgent": kind == NotificationKind.EQUIPMENT_FAILURE,
            },
        ))
        logger.warning("equipment_alert", equipment=item, health=round(value, 1), kind=kind.value)

    summary = NotificationEvent(
        kind=NotificationKind.TASK_COMPLETED,
        farm_id=farm_id,
        details={
            "task": "maintenance_check",
            "summary": f"{len(equipment)} items checked, {len(alerts)} alerts",
            "items": list(equipment),
        },
    )

    return ProcessorResult(
        output={
            "farmId": farm_id,
            "status": "maintenance_checked",
            "health": health,
            "totalAlerts": len(alerts),
        },
        notifications=alerts + [summary],
    )
