"""
IoT sensor collection processors (queue: iot-sensors).

Each handler takes a simulated reading, applies its alert rules and returns
intents; none of them touch the queue directly.
"""
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

# Crop-health limits are fixed, not registry-resolved.
LEAF_HEALTH_MIN = 60.0
PEST_ACTIVITY_MAX = 70.0

LOW_MOISTURE_ZONE = "zone-a"


def collect_soil_moisture(job: Job, ctx: "AppContext") -> ProcessorResult:
    farm_id = job.payload.get("farmId") or ctx.farm_id
    zone = job.payload.get("zone") or LOW_MOISTURE_ZONE
    logger.info("collecting_sensor_data", sensor_type="soil_moisture", farm_id=farm_id)

    moisture = ctx.readings.reading("soil_moisture", 0, 100)
    threshold = ctx.thresholds.resolve("soil_moisture_low")

    result = ProcessorResult(output={
        "farmId": farm_id,
        "sensorType": "soil_moisture",
        "moistureLevel": moisture,
        "threshold": threshold,
        "status": "collected",
    })

    if moisture < threshold:
        result.follow_ups.append(EnqueueRequest(
            queue=Queues.IRRIGATION,
            job_type=JobTypes.START_IRRIGATION,
            payload={
                "farmId": farm_id,
                "zone": zone,
                "reason": "low_soil_moisture",
                "moistureLevel": moisture,
            },
        ))
        result.notifications.append(NotificationEvent(
            kind=NotificationKind.IRRIGATION_STARTED,
            farm_id=farm_id,
            details={"zone": zone, "reason": "low_soil_moisture", "moisture_level": moisture},
        ))
        logger.info("low_soil_moisture", farm_id=farm_id, moisture=round(moisture, 1),
                    threshold=threshold)
    elif ctx.settings.notifications.notify_on_collection:
        result.notifications.append(NotificationEvent(
            kind=NotificationKind.SENSOR_DATA_COLLECTED,
            farm_id=farm_id,
            details={"sensor_type": "soil_moisture", "value": moisture, "unit": "%"},
        ))

    return result


def collect_weather_data(job: Job, ctx: "AppContext") -> ProcessorResult:
    farm_id = job.payload.get("farmId") or ctx.farm_id
    logger.info("collecting_sensor_data", sensor_type="weather", farm_id=farm_id)

    temperature = ctx.readings.reading("temperature", 20, 35)
    humidity = ctx.readings.reading("humidity", 40, 80)
    rainfall = ctx.readings.reading("rainfall", 0, 10)

    result = ProcessorResult(output={
        "farmId": farm_id,
        "sensorType": "weather",
        "temperature": temperature,
        "humidity": humidity,
        "rainfall": rainfall,
        "status": "collected",
    })

    # Independent checks: both may fire for one job.
    if temperature > ctx.thresholds.resolve("temperature_high"):
        result.notifications.append(NotificationEvent(
            kind=NotificationKind.WEATHER_WARNING,
            farm_id=farm_id,
            details={"alert": "High temperature alert", "reading": "temperature",
                     "value": temperature, "unit": "°C"},
        ))
    if humidity < ctx.thresholds.resolve("humidity_low"):
        result.notifications.append(NotificationEvent(
            kind=NotificationKind.WEATHER_WARNING,
            farm_id=farm_id,
            details={"alert": "Low humidity alert", "reading": "humidity",
                     "value": humidity, "unit": "%"},
        ))

    if not result.notifications and ctx.settings.notifications.notify_on_collection:
        result.notifications.append(NotificationEvent(
            kind=NotificationKind.SENSOR_DATA_COLLECTED,
            farm_id=farm_id,
            details={"sensor_type": "temperature", "value": temperature, "unit": "°C"},
        ))

    return result


def collect_crop_health(job: Job, ctx: "AppContext") -> ProcessorResult:
    farm_id = job.payload.get("farmId") or ctx.farm_id
    logger.info("collecting_sensor_data", sensor_type="crop_health", farm_id=farm_id)

    leaf_health = ctx.readings.reading("leaf_health", 0, 100)
    growth_rate = ctx.readings.reading("growth_rate", 5, 15)
    pest_activity = ctx.readings.reading("pest_activity", 0, 100)
    disease_risk = ctx.readings.reading("disease_risk", 0, 100)

    result = ProcessorResult(output={
        "farmId": farm_id,
        "sensorType": "crop_health",
        "leafHealth": leaf_health,
        "growthRate": growth_rate,
        "pestActivity": pest_activity,
        "diseaseRisk": disease_risk,
        "status": "collected",
    })

    if leaf_health < LEAF_HEALTH_MIN:
        result.notifications.append(NotificationEvent(
            kind=NotificationKind.SENSOR_DATA_COLLECTED,
            farm_id=farm_id,
            details={"alert": "Low leaf health", "sensor_type": "leaf_health",
                     "value": leaf_health, "unit": "%"},
        ))
    if pest_activity > PEST_ACTIVITY_MAX:
        result.notifications.append(NotificationEvent(
            kind=NotificationKind.SENSOR_DATA_COLLECTED,
            farm_id=farm_id,
            details={"alert": "High pest activity", "sensor_type": "pest_activity",
                     "value": pest_activity, "unit": "%"},
        ))

    return result
