"""
Core data models for the Locci Farm task engine.
These are the universal types shared across all modules.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class JobState(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class NotificationKind(str, Enum):
    SENSOR_DATA_COLLECTED = "sensor_data_collected"
    IRRIGATION_STARTED = "irrigation_started"
    IRRIGATION_COMPLETED = "irrigation_completed"
    MARKET_PRICE_ALERT = "market_price_alert"
    MAINTENANCE_REQUIRED = "maintenance_required"
    EQUIPMENT_FAILURE = "equipment_failure"
    WEATHER_WARNING = "weather_warning"
    TASK_COMPLETED = "task_completed"
    SYSTEM_STATUS = "system_status"


# ──────────────────────────────────────────────────────────────
#  Queue & job type names
# ──────────────────────────────────────────────────────────────

class Queues:
    IOT_SENSORS = "iot-sensors"
    IRRIGATION = "irrigation"
    MARKET_DATA = "market-data"
    MAINTENANCE = "maintenance"
    NOTIFICATIONS = "notifications"

    ALL = (IOT_SENSORS, IRRIGATION, MARKET_DATA, MAINTENANCE, NOTIFICATIONS)


class JobTypes:
    COLLECT_SOIL_MOISTURE = "collect-soil-moisture"
    COLLECT_WEATHER_DATA = "collect-weather-data"
    COLLECT_CROP_HEALTH = "collect-crop-health"
    START_IRRIGATION = "start-irrigation"
    ASSESS_IRRIGATION_NEEDS = "assess-irrigation-needs"
    FETCH_MARKET_PRICES = "fetch-market-prices"
    CHECK_EQUIPMENT_STATUS = "check-equipment-status"
    SEND_SMS = "send-sms"


# ──────────────────────────────────────────────────────────────
#  Job — a unit of work on a named queue
# ──────────────────────────────────────────────────────────────

class Job(BaseModel):
    id: str = Field(default_factory=lambda: f"job_{uuid.uuid4().hex[:12]}")
    queue_name: str
    job_type: str
    payload: dict[str, Any] = {}
    state: JobState = JobState.QUEUED
    attempts: int = 0
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.SUCCEEDED, JobState.FAILED)


class EnqueueRequest(BaseModel):
    """Intent to put a job on a queue, returned by processors and triggers."""
    queue: str
    job_type: str
    payload: dict[str, Any] = {}


# ──────────────────────────────────────────────────────────────
#  Notifications
# ──────────────────────────────────────────────────────────────

class NotificationEvent(BaseModel):
    """Structured intent to inform the farmer, rendered to text before delivery."""
    kind: Union[NotificationKind, str]
    farm_id: str = ""
    details: dict[str, Any] = {}
    timestamp: datetime = Field(default_factory=_utcnow)


# ──────────────────────────────────────────────────────────────
#  Processor output
# ──────────────────────────────────────────────────────────────

class ProcessorResult(BaseModel):
    output: dict[str, Any] = {}
    follow_ups: list[EnqueueRequest] = []
    notifications: list[NotificationEvent] = []
    hold_seconds: float = 0.0                 # bounded simulated work duration


# ──────────────────────────────────────────────────────────────
#  SMS delivery
# ──────────────────────────────────────────────────────────────

class SmsSendResult(BaseModel):
    success: bool
    to: str = ""
    provider_message_id: str = ""
    cost: str = ""
    segments: int = 0
    error: str = ""
    provider: str = ""
