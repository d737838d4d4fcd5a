"""
Locci Scheduler client — registers the periodic webhook schedules.

At start-up (when scheduler.enabled is set) the service asks the external
interval scheduler to POST to its own webhooks:

  collect-sensor-data   every 15 minutes
  irrigation-check      every 2 hours
  market-prices         every 12 hours
  maintenance-check     every 7 days

A failed registration is logged and skipped; the service keeps running and
the webhooks can still be called by hand.
"""
from __future__ import annotations

import structlog
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.settings import SchedulerConfig

logger = structlog.get_logger()

SCHEDULER_SOURCE = "locci_scheduler"


@dataclass(frozen=True)
class IntervalSchedule:
    name: str
    description: str
    trigger: str
    interval_seconds: int


DEFAULT_SCHEDULES = (
    IntervalSchedule("IoT Sensor Data Collection",
                     "Collect soil moisture, weather, and crop health data",
                     "collect-sensor-data", 900),
    IntervalSchedule("Irrigation Assessment",
                     "Check irrigation needs across all farm zones",
                     "irrigation-check", 7200),
    IntervalSchedule("Market Price Updates",
                     "Fetch latest crop prices from major markets",
                     "market-prices", 43200),
    IntervalSchedule("Equipment Maintenance Check",
                     "Weekly health check of all farm equipment",
                     "maintenance-check", 604800),
)


class SchedulerError(Exception):
    pass


class SchedulerClient:
    """Thin REST client for the interval scheduler."""

    INTERVAL_PATH = "/api/v1/schedules/interval"

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_token:
                headers["Authorization"] = f"Bearer {self.api_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(15.0, connect=5.0),
                headers=headers,
                transport=self._transport,
            )
        return self._client

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=10),
        reraise=True,
    )
    async def schedule_interval(
        self,
        name: str,
        webhook_url: str,
        interval_seconds: int,
        description: str = "",
        payload: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        client = await self._get_client()
        resp = await client.post(self.INTERVAL_PATH, json={
            "name": name,
            "description": description,
            "webhook": {
                "url": webhook_url,
                "method": "POST",
                "payload": payload or {},
            },
            "intervalSeconds": interval_seconds,
        })
        if resp.status_code >= 400:
            raise SchedulerError(f"Scheduler HTTP {resp.status_code}: {resp.text[:200]}")
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            logger.warning("scheduler_non_json_response", status=resp.status_code, body=resp.text[:200])
            return {}

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


async def register_default_schedules(
    config: SchedulerConfig,
    client: Optional[SchedulerClient] = None,
) -> list[str]:
    """Register every default schedule. Returns the names that were accepted."""
    owns_client = client is None
    client = client or SchedulerClient(config.base_url, config.api_token)
    webhook_base = config.webhook_base_url.rstrip("/")
    registered = []

    try:
        for schedule in DEFAULT_SCHEDULES:
            try:
                await client.schedule_interval(
                    name=schedule.name,
                    description=schedule.description,
                    webhook_url=f"{webhook_base}/webhooks/{schedule.trigger}",
                    interval_seconds=schedule.interval_seconds,
                    payload={"source": SCHEDULER_SOURCE},
                )
            except (httpx.HTTPError, SchedulerError, ValueError) as e:
                logger.error("schedule_registration_failed", schedule=schedule.name, error=str(e))
                continue
            registered.append(schedule.name)
            logger.info("schedule_registered", schedule=schedule.name,
                        interval_seconds=schedule.interval_seconds)
    finally:
        if owns_client:
            await client.close()

    logger.info("schedules_configured", registered=len(registered), total=len(DEFAULT_SCHEDULES))
    return registered
