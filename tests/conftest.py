"""Shared test fixtures for the Locci Farm engine."""
import pytest

from channels.sms_adapter import MockSmsProvider, SMSAdapter
from config.settings import Settings
from core.context import AppContext, build_context
from core.dispatcher import Dispatcher
from job_queue.message_queue import InMemoryMessageQueue
from processors.readings import ReadingSource


@pytest.fixture
def settings() -> Settings:
    s = Settings()
    s.irrigation.simulated_delay_seconds = 0.0
    return s


@pytest.fixture
def queue() -> InMemoryMessageQueue:
    return InMemoryMessageQueue()


@pytest.fixture
def sms_provider() -> MockSmsProvider:
    return MockSmsProvider()


@pytest.fixture
def readings() -> ReadingSource:
    return ReadingSource(seed=7)


@pytest.fixture
def ctx(settings, queue, sms_provider, readings) -> AppContext:
    return build_context(
        settings,
        queue=queue,
        sms=SMSAdapter(sms_provider),
        readings=readings,
    )


@pytest.fixture
def dispatcher(ctx) -> Dispatcher:
    return Dispatcher(ctx).register_defaults()
