"""
Triggers — named entry points that seed jobs.

Each trigger turns an inbound call (webhook or scheduler) into one or more
EnqueueRequests. Trigger builders never touch the queue; the dispatcher
enqueues what they return.
"""
from __future__ import annotations

from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from config.settings import Settings
from models.schemas import EnqueueRequest, JobTypes, Queues


class TriggerError(Exception):
    """Trigger body could not be used. Nothing was enqueued."""


class UnknownTriggerError(TriggerError):
    def __init__(self, name: str):
        super().__init__(f"Unknown trigger: {name}")
        self.name = name


class SmsTriggerBody(BaseModel):
    message: Optional[str] = None
    phoneNumber: Optional[str] = None
    type: Optional[str] = None


DEFAULT_TEST_MESSAGE = "Test message from Locci Farm"


# ──────────────────────────────────────────────────────────────
#  Trigger builders
# ──────────────────────────────────────────────────────────────

def _collect_sensor_data(settings: Settings, body: dict[str, Any]) -> list[EnqueueRequest]:
    payload = {"farmId": settings.farm.farm_id}
    return [
        EnqueueRequest(queue=Queues.IOT_SENSORS, job_type=JobTypes.COLLECT_SOIL_MOISTURE,
                       payload={**payload, "sensorType": "soil_moisture"}),
        EnqueueRequest(queue=Queues.IOT_SENSORS, job_type=JobTypes.COLLECT_WEATHER_DATA,
                       payload={**payload, "sensorType": "weather"}),
        EnqueueRequest(queue=Queues.IOT_SENSORS, job_type=JobTypes.COLLECT_CROP_HEALTH,
                       payload={**payload, "sensorType": "crop_health"}),
    ]


def _irrigation_check(settings: Settings, body: dict[str, Any]) -> list[EnqueueRequest]:
    return [EnqueueRequest(
        queue=Queues.IRRIGATION,
        job_type=JobTypes.ASSESS_IRRIGATION_NEEDS,
        payload={"farmId": settings.farm.farm_id, "zones": list(settings.farm.zones)},
    )]


def _market_prices(settings: Settings, body: dict[str, Any]) -> list[EnqueueRequest]:
    return [EnqueueRequest(
        queue=Queues.MARKET_DATA,
        job_type=JobTypes.FETCH_MARKET_PRICES,
        payload={
            "farmId": settings.farm.farm_id,
            "crops": list(settings.farm.crops),
            "markets": list(settings.farm.markets),
        },
    )]


def _maintenance_check(settings: Settings, body: dict[str, Any]) -> list[EnqueueRequest]:
    return [EnqueueRequest(
        queue=Queues.MAINTENANCE,
        job_type=JobTypes.CHECK_EQUIPMENT_STATUS,
        payload={"farmId": settings.farm.farm_id, "equipment": list(settings.farm.equipment)},
    )]


def _test_sms(settings: Settings, body: dict[str, Any]) -> list[EnqueueRequest]:
    try:
        req = SmsTriggerBody.model_validate(body)
    except ValidationError as e:
        raise TriggerError(f"Invalid test-sms body: {e.errors()[0].get('msg', 'invalid')}") from e

    return [EnqueueRequest(
        queue=Queues.NOTIFICATIONS,
        job_type=JobTypes.SEND_SMS,
        payload={
            "phoneNumber": req.phoneNumber or settings.farm.farmer_phone,
            "message": req.message or DEFAULT_TEST_MESSAGE,
            "farmId": settings.farm.farm_id,
            "type": req.type or "test",
        },
    )]


TriggerBuilder = Callable[[Settings, dict[str, Any]], list[EnqueueRequest]]

TRIGGERS: dict[str, tuple[TriggerBuilder, str]] = {
    "collect-sensor-data": (_collect_sensor_data, "Sensor data collection triggered"),
    "irrigation-check": (_irrigation_check, "Irrigation check triggered"),
    "market-prices": (_market_prices, "Market price check triggered"),
    "maintenance-check": (_maintenance_check, "Maintenance check triggered"),
    "test-sms": (_test_sms, "Test SMS queued"),
}


def build_trigger(name: str, settings: Settings, body: Any = None) -> list[EnqueueRequest]:
    """Resolve a trigger name and body to the jobs it seeds."""
    if name not in TRIGGERS:
        raise UnknownTriggerError(name)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise TriggerError("Trigger body must be a JSON object")
    builder, _ = TRIGGERS[name]
    return builder(settings, body)


def trigger_message(name: str) -> str:
    return TRIGGERS[name][1] if name in TRIGGERS else ""
