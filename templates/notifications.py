"""
Notification Formatter — renders a NotificationEvent into farmer-facing SMS text.

One renderer per NotificationKind, plus a fallback for kinds this build does
not know. Rendering is pure: it reads only (kind, details, farm_id), never the
clock or the random source, and never raises. Every message ends with the
farm suffix " [Farm: <farm_id>]".
"""
from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Union

from models.schemas import NotificationEvent, NotificationKind

DEFAULT_FARM_ID = "farm-001"

Details = Mapping[str, Any]


# ──────────────────────────────────────────────────────────────
#  Value helpers — tolerate missing and badly typed details
# ──────────────────────────────────────────────────────────────

def _num(value: Any, digits: int = 1, default: str = "?") -> str:
    if isinstance(value, bool) or value is None:
        return default
    try:
        return f"{float(value):.{digits}f}"
    except (TypeError, ValueError):
        return str(value)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _humanize(value: Any, default: str = "") -> str:
    """'low_soil_moisture' → 'low soil moisture', 'irrigation-pumps' → 'irrigation pumps'."""
    return _text(value, default).replace("_", " ").replace("-", " ")


def _items(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return ", ".join(str(v) for v in value)
    return _text(value)


# ──────────────────────────────────────────────────────────────
#  Per-kind renderers
# ──────────────────────────────────────────────────────────────

def _sensor_data_collected(d: Details) -> str:
    sensor = _humanize(d.get("sensor_type"), "sensor")
    value = _num(d.get("value"))
    unit = _text(d.get("unit"))
    alert = _text(d.get("alert"))
    if alert:
        return f"⚠️ {alert}: {sensor} reading {value}{unit}"
    return f"📊 {sensor.capitalize()} reading collected: {value}{unit}"


def _irrigation_started(d: Details) -> str:
    zone = _text(d.get("zone"), "field")
    reason = _humanize(d.get("reason"), "scheduled irrigation")
    moisture = _num(d.get("moisture_level"))
    return f"💧 Irrigation started in {zone}: {reason} detected ({moisture}% moisture)."


def _irrigation_completed(d: Details) -> str:
    zone = _text(d.get("zone"), "field")
    before = _num(d.get("before_level"))
    after = _num(d.get("after_level"))
    duration = _text(d.get("duration_minutes"), "?")
    return (
        f"✅ Irrigation completed in {zone}: moisture {before}% → {after}% "
        f"after {duration} minutes."
    )


def _market_price_alert(d: Details) -> str:
    crop = _text(d.get("crop"), "Crop").capitalize()
    price = _num(d.get("price"), digits=0)
    threshold = _num(d.get("threshold"), digits=0)
    if d.get("action") == "hold":
        return (
            f"📉 {crop} prices down. Current: {price} KES/kg "
            f"(alert level {threshold}). Consider holding stock."
        )
    return f"📈 {crop} prices up! Current: {price} KES/kg (alert level {threshold}). Consider selling."


def _maintenance_required(d: Details) -> str:
    equipment = _humanize(d.get("equipment"), "equipment")
    health = _num(d.get("health"), digits=0)
    return f"⚠️ {equipment} needs maintenance ({health}% health)"


def _equipment_failure(d: Details) -> str:
    equipment = _humanize(d.get("equipment"), "equipment")
    health = _num(d.get("health"), digits=0)
    return f"🚨 URGENT: {equipment} at risk of failure ({health}% health). Inspect immediately."


def _weather_warning(d: Details) -> str:
    alert = _text(d.get("alert"), "Weather alert")
    reading = _text(d.get("reading"))
    value = _num(d.get("value"))
    unit = _text(d.get("unit"))
    if reading:
        return f"🌡️ {alert}: {reading} {value}{unit}"
    return f"🌡️ {alert}"


def _task_completed(d: Details) -> str:
    task = _humanize(d.get("task"), "task")
    summary = _text(d.get("summary"), "done")
    items = _items(d.get("items"))
    return f"✅ {task.capitalize()} completed: {summary}" + (f" ({items})" if items else "")


def _system_status(d: Details) -> str:
    status = _text(d.get("status"), "ok")
    message = _text(d.get("message"))
    return f"ℹ️ System status: {status}" + (f". {message}" if message else "")


def _fallback(kind: str, d: Details) -> str:
    message = _text(d.get("message"))
    if message:
        return f"🔔 Farm update ({_humanize(kind, 'notification')}): {message}"
    return f"🔔 Farm update: {_humanize(kind, 'notification')}"


RENDERERS: dict[NotificationKind, Callable[[Details], str]] = {
    NotificationKind.SENSOR_DATA_COLLECTED: _sensor_data_collected,
    NotificationKind.IRRIGATION_STARTED: _irrigation_started,
    NotificationKind.IRRIGATION_COMPLETED: _irrigation_completed,
    NotificationKind.MARKET_PRICE_ALERT: _market_price_alert,
    NotificationKind.MAINTENANCE_REQUIRED: _maintenance_required,
    NotificationKind.EQUIPMENT_FAILURE: _equipment_failure,
    NotificationKind.WEATHER_WARNING: _weather_warning,
    NotificationKind.TASK_COMPLETED: _task_completed,
    NotificationKind.SYSTEM_STATUS: _system_status,
}


# ──────────────────────────────────────────────────────────────
#  Public API
# ──────────────────────────────────────────────────────────────

def _coerce_kind(kind: Union[NotificationKind, str, None]) -> Optional[NotificationKind]:
    if isinstance(kind, NotificationKind):
        return kind
    try:
        return NotificationKind(kind)
    except (TypeError, ValueError):
        return None


def farm_suffix(farm_id: Optional[str]) -> str:
    return f" [Farm: {_text(farm_id, DEFAULT_FARM_ID)}]"


def format_notification(
    kind: Union[NotificationKind, str, None],
    details: Optional[Details] = None,
    farm_id: Optional[str] = None,
) -> str:
    """Render one notification. Unknown kinds use the generic fallback."""
    d: Details = details if isinstance(details, Mapping) else {}
    resolved = _coerce_kind(kind)
    if resolved is None:
        body = _fallback(_text(kind, "notification"), d)
    else:
        body = RENDERERS[resolved](d)
    return body + farm_suffix(farm_id)


def render_event(event: NotificationEvent) -> str:
    return format_notification(event.kind, event.details, event.farm_id)
