"""
Application context — every long-lived collaborator, built once at start-up.

The dispatcher and each task processor receive this object explicitly;
nothing in the engine reaches for module-level singletons.
"""
from __future__ import annotations

from dataclasses import dataclass

from channels.sms_adapter import SMSAdapter, create_sms_adapter
from config.settings import Settings
from job_queue.message_queue import MessageQueue, create_message_queue
from processors.readings import ReadingSource
from rules.thresholds import ThresholdRegistry


@dataclass
class AppContext:
    settings: Settings
    queue: MessageQueue
    thresholds: ThresholdRegistry
    readings: ReadingSource
    sms: SMSAdapter

    @property
    def farm_id(self) -> str:
        return self.settings.farm.farm_id


def build_context(
    settings: Settings,
    queue: MessageQueue = None,
    sms: SMSAdapter = None,
    readings: ReadingSource = None,
) -> AppContext:
    """Wire the context from settings; any collaborator can be supplied instead."""
    if queue is None:
        queue = create_message_queue({
            "backend": settings.queue.backend,
            "redis_url": settings.queue.redis_url,
            "key_prefix": settings.queue.key_prefix,
        })
    if readings is None:
        readings = ReadingSource(
            seed=settings.simulation.seed,
            overrides=settings.simulation.overrides,
        )
    return AppContext(
        settings=settings,
        queue=queue,
        thresholds=ThresholdRegistry(settings.thresholds),
        readings=readings,
        sms=sms or create_sms_adapter(settings.sms),
    )
