"""
Configuration loader for the Locci Farm task engine.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml


@dataclass
class FarmConfig:
    farm_id: str = "farm-001"
    farmer_phone: str = "+254712345678"
    zones: list[str] = field(default_factory=lambda: ["zone-a", "zone-b", "zone-c"])
    crops: list[str] = field(default_factory=lambda: ["maize", "beans", "tomatoes"])
    markets: list[str] = field(default_factory=lambda: ["nairobi", "mombasa", "kisumu"])
    equipment: list[str] = field(default_factory=lambda: ["irrigation-pumps", "sensors", "drones"])


@dataclass
class QueueConfig:
    backend: str = "memory"             # "memory" for dev, "redis" for production
    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "locci"
    poll_timeout: float = 2.0           # seconds a consumer blocks before re-checking for stop


@dataclass
class IrrigationConfig:
    duration_minutes: int = 30
    simulated_delay_seconds: float = 2.0


@dataclass
class SmsConfig:
    provider: str = "mock"              # "mock" | "africastalking"
    username: str = "sandbox"
    api_key: str = ""
    sender_id: str = ""
    sandbox: bool = True
    max_segments: int = 3


@dataclass
class SchedulerConfig:
    enabled: bool = False
    base_url: str = "http://localhost:9696"
    api_token: str = ""
    webhook_base_url: str = "http://localhost:5151"


@dataclass
class SimulationConfig:
    seed: int | None = None
    overrides: dict[str, float] = field(default_factory=dict)


@dataclass
class NotificationConfig:
    notify_on_collection: bool = False


@dataclass
class Settings:
    app_name: str = "Locci Farm"
    debug: bool = False
    port: int = 5151
    farm: FarmConfig = field(default_factory=FarmConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    irrigation: IrrigationConfig = field(default_factory=IrrigationConfig)
    sms: SmsConfig = field(default_factory=SmsConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    thresholds: dict[str, float] = field(default_factory=dict)

    @property
    def queue_host(self) -> str:
        """Host:port of the queue store, as echoed by the status endpoint."""
        if self.queue.backend != "redis":
            return "in-memory"
        parsed = urlparse(self.queue.redis_url)
        return f"{parsed.hostname or 'localhost'}:{parsed.port or 6379}"


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} and ${VAR_NAME:-default} patterns with environment values."""
    pattern = re.compile(r'\$\{(\w+)(?::-([^}]*))?\}')
    def replacer(match):
        var_name, default = match.group(1), match.group(2)
        if var_name in os.environ:
            return os.environ[var_name]
        return default if default is not None else match.group(0)
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file. Missing file → defaults."""
    if config_path is None:
        config_path = os.environ.get(
            "LOCCI_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if not Path(config_path).exists():
        return settings

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    raw = _process_values(raw)

    settings.app_name = raw.get("app_name", settings.app_name)
    settings.debug = _as_bool(raw.get("debug"), settings.debug)
    settings.port = int(raw.get("port", settings.port))

    if "farm" in raw:
        fm = raw["farm"] or {}
        defaults = FarmConfig()
        settings.farm = FarmConfig(
            farm_id=fm.get("farm_id", defaults.farm_id),
            farmer_phone=str(fm.get("farmer_phone", defaults.farmer_phone)),
            zones=list(fm.get("zones", defaults.zones)),
            crops=list(fm.get("crops", defaults.crops)),
            markets=list(fm.get("markets", defaults.markets)),
            equipment=list(fm.get("equipment", defaults.equipment)),
        )

    if "queue" in raw:
        q = raw["queue"] or {}
        settings.queue = QueueConfig(
            backend=q.get("backend", "memory"),
            redis_url=q.get("redis_url", "redis://localhost:6379"),
            key_prefix=q.get("key_prefix", "locci"),
            poll_timeout=float(q.get("poll_timeout", 2.0)),
        )

    if "irrigation" in raw:
        ir = raw["irrigation"] or {}
        settings.irrigation = IrrigationConfig(
            duration_minutes=int(ir.get("duration_minutes", 30)),
            simulated_delay_seconds=float(ir.get("simulated_delay_seconds", 2.0)),
        )

    if "sms" in raw:
        sms = raw["sms"] or {}
        settings.sms = SmsConfig(
            provider=sms.get("provider", "mock"),
            username=sms.get("username", "sandbox"),
            api_key=sms.get("api_key", ""),
            sender_id=sms.get("sender_id", ""),
            sandbox=_as_bool(sms.get("sandbox"), True),
            max_segments=int(sms.get("max_segments", 3)),
        )

    if "scheduler" in raw:
        sc = raw["scheduler"] or {}
        settings.scheduler = SchedulerConfig(
            enabled=_as_bool(sc.get("enabled"), False),
            base_url=sc.get("base_url", "http://localhost:9696"),
            api_token=sc.get("api_token", ""),
            webhook_base_url=sc.get("webhook_base_url", "http://localhost:5151"),
        )

    if "simulation" in raw:
        sim = raw["simulation"] or {}
        seed = sim.get("seed")
        settings.simulation = SimulationConfig(
            seed=int(seed) if seed is not None else None,
            overrides={k: float(v) for k, v in (sim.get("overrides") or {}).items()},
        )

    if "notifications" in raw:
        nt = raw["notifications"] or {}
        settings.notifications = NotificationConfig(
            notify_on_collection=_as_bool(nt.get("notify_on_collection"), False),
        )

    settings.thresholds = {
        k: float(v) for k, v in (raw.get("thresholds") or {}).items()
    }

    return settings
