"""Tests for farmer notification rendering."""
import random
from datetime import datetime, timezone

import pytest

from models.schemas import NotificationEvent, NotificationKind
from templates.notifications import RENDERERS, farm_suffix, format_notification, render_event


class TestRendererTable:
    def test_every_kind_has_a_renderer(self):
        assert set(RENDERERS) == set(NotificationKind)

    @pytest.mark.parametrize("kind", list(NotificationKind))
    def test_empty_details_never_raise(self, kind):
        text = format_notification(kind, {})
        assert text.endswith(" [Farm: farm-001]")

    @pytest.mark.parametrize("kind", list(NotificationKind))
    def test_badly_typed_details_never_raise(self, kind):
        details = {
            "zone": 12, "reason": None, "moisture_level": "wet",
            "before_level": [], "after_level": {}, "crop": 3, "price": "n/a",
            "equipment": None, "health": object(), "items": 5,
        }
        text = format_notification(kind, details, "farm-xyz")
        assert text.endswith(" [Farm: farm-xyz]")

    def test_details_not_a_mapping(self):
        text = format_notification(NotificationKind.SYSTEM_STATUS, ["not", "a", "dict"])
        assert text == "ℹ️ System status: ok [Farm: farm-001]"


class TestMessages:
    def test_irrigation_started_mentions_low_soil_moisture(self):
        text = format_notification(
            NotificationKind.IRRIGATION_STARTED,
            {"zone": "zone-a", "reason": "low_soil_moisture", "moisture_level": 10},
            "farm-001",
        )
        assert text == (
            "💧 Irrigation started in zone-a: low soil moisture detected (10.0% moisture)."
            " [Farm: farm-001]"
        )

    def test_irrigation_completed(self):
        text = format_notification(
            NotificationKind.IRRIGATION_COMPLETED,
            {"zone": "zone-b", "before_level": 22.04, "after_level": 61.5, "duration_minutes": 30},
        )
        assert "zone-b" in text
        assert "22.0% → 61.5%" in text
        assert "30 minutes" in text

    def test_market_sell_and_hold(self):
        sell = format_notification(NotificationKind.MARKET_PRICE_ALERT,
                                   {"crop": "maize", "price": 95, "threshold": 80, "action": "sell"})
        hold = format_notification(NotificationKind.MARKET_PRICE_ALERT,
                                   {"crop": "beans", "price": 80, "threshold": 120, "action": "hold"})
        assert sell.startswith("📈 Maize prices up!")
        assert "Consider selling" in sell
        assert hold.startswith("📉 Beans prices down.")
        assert "Consider holding stock" in hold

    def test_equipment_messages(self):
        failure = format_notification(NotificationKind.EQUIPMENT_FAILURE,
                                      {"equipment": "irrigation-pumps", "health": 12})
        maintenance = format_notification(NotificationKind.MAINTENANCE_REQUIRED,
                                          {"equipment": "drones", "health": 33})
        assert "URGENT" in failure
        assert "irrigation pumps" in failure
        assert "drones needs maintenance (33% health)" in maintenance

    def test_weather_warning(self):
        text = format_notification(NotificationKind.WEATHER_WARNING,
                                   {"alert": "High temperature alert", "reading": "temperature",
                                    "value": 36.2, "unit": "°C"})
        assert text.startswith("🌡️ High temperature alert: temperature 36.2°C")

    def test_sensor_alert_vs_plain_reading(self):
        alert = format_notification(NotificationKind.SENSOR_DATA_COLLECTED,
                                    {"alert": "Low leaf health", "sensor_type": "leaf_health",
                                     "value": 41, "unit": "%"})
        plain = format_notification(NotificationKind.SENSOR_DATA_COLLECTED,
                                    {"sensor_type": "soil_moisture", "value": 55, "unit": "%"})
        assert alert.startswith("⚠️ Low leaf health")
        assert plain.startswith("📊 Soil moisture reading collected: 55.0%")

    def test_task_completed_lists_items(self):
        text = format_notification(NotificationKind.TASK_COMPLETED,
                                   {"task": "market_price_check", "summary": "3 crops checked",
                                    "items": ["maize", "beans"]})
        assert text == "✅ Market price check completed: 3 crops checked (maize, beans) [Farm: farm-001]"


class TestFallback:
    def test_unknown_string_kind(self):
        text = format_notification("frost_warning", {"message": "Cover seedlings"}, "farm-002")
        assert text == "🔔 Farm update (frost warning): Cover seedlings [Farm: farm-002]"

    def test_unknown_kind_without_message(self):
        assert format_notification("harvest_day") == "🔔 Farm update: harvest day [Farm: farm-001]"

    def test_none_kind(self):
        assert format_notification(None).endswith("[Farm: farm-001]")

    def test_known_kind_as_string(self):
        as_str = format_notification("system_status", {"status": "degraded"})
        as_enum = format_notification(NotificationKind.SYSTEM_STATUS, {"status": "degraded"})
        assert as_str == as_enum


class TestPurity:
    def test_farm_suffix_default(self):
        assert farm_suffix(None) == " [Farm: farm-001]"
        assert farm_suffix("") == " [Farm: farm-001]"
        assert farm_suffix("farm-009") == " [Farm: farm-009]"

    def test_rerender_is_byte_identical(self):
        event = NotificationEvent(
            kind=NotificationKind.MARKET_PRICE_ALERT,
            farm_id="farm-001",
            details={"crop": "maize", "price": 95.0, "threshold": 80.0, "action": "sell"},
        )
        first = render_event(event)
        random.seed(99)
        later = event.model_copy(update={"timestamp": datetime(2030, 1, 1, tzinfo=timezone.utc)})
        assert render_event(event) == first
        assert render_event(later) == first

    def test_details_not_mutated(self):
        details = {"zone": "zone-c", "reason": "manual", "moisture_level": 20}
        before = dict(details)
        format_notification(NotificationKind.IRRIGATION_STARTED, details)
        assert details == before
