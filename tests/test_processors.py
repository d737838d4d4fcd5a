"""
Tests for the task processors.

Coverage:
  Sensors:     soil moisture trigger edge, weather alerts, crop-health warnings
  Irrigation:  start (given/simulated level, cap, hold), assessment per zone
  Market:      sell/hold/no alert bands, one alert per crop
  Maintenance: health bands partition [0, 100)
  SMS:         sent and failed outputs
"""
import pytest
from unittest.mock import AsyncMock

from models.schemas import Job, JobTypes, NotificationKind, Queues, SmsSendResult
from processors.irrigation import assess_irrigation_needs, start_irrigation
from processors.maintenance import check_equipment_status, health_band
from processors.market import fetch_market_prices
from processors.sensors import collect_crop_health, collect_soil_moisture, collect_weather_data
from processors.sms import send_sms
from rules.thresholds import ThresholdRegistry


def make_job(queue_name, job_type, **payload):
    return Job(queue_name=queue_name, job_type=job_type, payload=payload)


def kinds(result):
    return [n.kind for n in result.notifications]


# ══════════════════════════════════════════════════════════════
#  SENSORS
# ══════════════════════════════════════════════════════════════

class TestCollectSoilMoisture:
    @pytest.mark.parametrize("reading", [0.0, 10.0, 29.99])
    def test_below_threshold_starts_irrigation(self, ctx, reading):
        ctx.readings.fix("soil_moisture", reading)
        result = collect_soil_moisture(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_SOIL_MOISTURE, farmId="farm-001"), ctx)

        assert len(result.follow_ups) == 1
        follow_up = result.follow_ups[0]
        assert follow_up.queue == Queues.IRRIGATION
        assert follow_up.job_type == JobTypes.START_IRRIGATION
        assert follow_up.payload == {
            "farmId": "farm-001",
            "zone": "zone-a",
            "reason": "low_soil_moisture",
            "moistureLevel": reading,
        }
        assert kinds(result) == [NotificationKind.IRRIGATION_STARTED]

    @pytest.mark.parametrize("reading", [30.0, 30.01, 75.0, 100.0])
    def test_at_or_above_threshold_does_nothing(self, ctx, reading):
        ctx.readings.fix("soil_moisture", reading)
        result = collect_soil_moisture(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_SOIL_MOISTURE), ctx)
        assert result.follow_ups == []
        assert result.notifications == []
        assert result.output["moistureLevel"] == reading

    def test_threshold_override(self, ctx):
        ctx.thresholds = ThresholdRegistry({"soil_moisture_low": 50})
        ctx.readings.fix("soil_moisture", 45)
        result = collect_soil_moisture(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_SOIL_MOISTURE), ctx)
        assert len(result.follow_ups) == 1

    def test_notify_on_collection(self, ctx):
        ctx.settings.notifications.notify_on_collection = True
        ctx.readings.fix("soil_moisture", 60)
        result = collect_soil_moisture(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_SOIL_MOISTURE), ctx)
        assert kinds(result) == [NotificationKind.SENSOR_DATA_COLLECTED]
        assert result.follow_ups == []

    def test_farm_id_defaults_to_configured(self, ctx):
        ctx.readings.fix("soil_moisture", 5)
        result = collect_soil_moisture(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_SOIL_MOISTURE), ctx)
        assert result.follow_ups[0].payload["farmId"] == "farm-001"
        assert result.notifications[0].farm_id == "farm-001"


class TestCollectWeatherData:
    def test_no_alerts_in_normal_range(self, ctx):
        ctx.readings.fix("temperature", 25)
        ctx.readings.fix("humidity", 60)
        result = collect_weather_data(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_WEATHER_DATA), ctx)
        assert result.notifications == []
        assert result.output["temperature"] == 25.0

    def test_independent_alerts_both_fire(self, ctx):
        ctx.readings.fix("temperature", 36)
        ctx.readings.fix("humidity", 35)
        result = collect_weather_data(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_WEATHER_DATA), ctx)
        assert kinds(result) == [NotificationKind.WEATHER_WARNING] * 2
        alerts = [n.details["alert"] for n in result.notifications]
        assert alerts == ["High temperature alert", "Low humidity alert"]

    def test_edges_do_not_fire(self, ctx):
        ctx.readings.fix("temperature", 35)
        ctx.readings.fix("humidity", 40)
        result = collect_weather_data(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_WEATHER_DATA), ctx)
        assert result.notifications == []

    def test_default_draws_stay_in_range(self, ctx):
        for _ in range(50):
            out = collect_weather_data(
                make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_WEATHER_DATA), ctx).output
            assert 20 <= out["temperature"] <= 35
            assert 40 <= out["humidity"] <= 80
            assert 0 <= out["rainfall"] <= 10


class TestCollectCropHealth:
    def test_healthy_crop(self, ctx):
        ctx.readings.fix("leaf_health", 80)
        ctx.readings.fix("pest_activity", 20)
        result = collect_crop_health(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_CROP_HEALTH), ctx)
        assert result.notifications == []

    def test_warnings(self, ctx):
        ctx.readings.fix("leaf_health", 59)
        ctx.readings.fix("pest_activity", 71)
        result = collect_crop_health(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_CROP_HEALTH), ctx)
        assert kinds(result) == [NotificationKind.SENSOR_DATA_COLLECTED] * 2
        assert [n.details["alert"] for n in result.notifications] == [
            "Low leaf health", "High pest activity",
        ]

    def test_thresholds_not_configurable(self, ctx):
        ctx.thresholds = ThresholdRegistry({"leaf_health_min": 90})
        ctx.readings.fix("leaf_health", 70)
        ctx.readings.fix("pest_activity", 70)
        result = collect_crop_health(
            make_job(Queues.IOT_SENSORS, JobTypes.COLLECT_CROP_HEALTH), ctx)
        assert result.notifications == []


# ══════════════════════════════════════════════════════════════
#  IRRIGATION
# ══════════════════════════════════════════════════════════════

class TestStartIrrigation:
    def test_uses_given_moisture(self, ctx):
        ctx.readings.fix("moisture_gain", 25)
        result = start_irrigation(
            make_job(Queues.IRRIGATION, JobTypes.START_IRRIGATION,
                     zone="zone-b", reason="low_soil_moisture", moistureLevel=12.5), ctx)
        assert result.output["beforeLevel"] == 12.5
        assert result.output["afterLevel"] == 37.5
        assert result.output["durationMinutes"] == 30
        assert kinds(result) == [NotificationKind.IRRIGATION_COMPLETED]
        assert result.notifications[0].details["zone"] == "zone-b"

    def test_after_level_capped(self, ctx):
        ctx.readings.fix("moisture_gain", 50)
        result = start_irrigation(
            make_job(Queues.IRRIGATION, JobTypes.START_IRRIGATION, moistureLevel=70), ctx)
        assert result.output["afterLevel"] == 100.0

    def test_simulated_before_level(self, ctx):
        result = start_irrigation(make_job(Queues.IRRIGATION, JobTypes.START_IRRIGATION), ctx)
        assert 20 <= result.output["beforeLevel"] <= 60
        assert result.output["afterLevel"] > result.output["beforeLevel"]

    def test_hold_from_settings(self, ctx):
        ctx.settings.irrigation.simulated_delay_seconds = 2.0
        result = start_irrigation(make_job(Queues.IRRIGATION, JobTypes.START_IRRIGATION), ctx)
        assert result.hold_seconds == 2.0
        assert result.follow_ups == []


class TestAssessIrrigationNeeds:
    def test_assessment_uses_35_default(self, ctx):
        ctx.readings.fix("soil_moisture.zone-a", 32)
        ctx.readings.fix("soil_moisture.zone-b", 35)
        ctx.readings.fix("soil_moisture.zone-c", 80)
        result = assess_irrigation_needs(
            make_job(Queues.IRRIGATION, JobTypes.ASSESS_IRRIGATION_NEEDS,
                     zones=["zone-a", "zone-b", "zone-c"]), ctx)

        assert [f.payload["zone"] for f in result.follow_ups] == ["zone-a"]
        assert result.follow_ups[0].payload["reason"] == "scheduled_assessment"
        assert result.follow_ups[0].payload["moistureLevel"] == 32.0
        assert result.output["zonesChecked"] == 3
        assert result.output["zonesIrrigated"] == ["zone-a"]
        assert kinds(result) == [NotificationKind.TASK_COMPLETED]

    def test_configured_threshold_replaces_default(self, ctx):
        ctx.thresholds = ThresholdRegistry({"soil_moisture_low": 30})
        ctx.readings.fix("soil_moisture", 32)
        result = assess_irrigation_needs(
            make_job(Queues.IRRIGATION, JobTypes.ASSESS_IRRIGATION_NEEDS, zones=["zone-a"]), ctx)
        assert result.follow_ups == []

    def test_zones_default_to_farm(self, ctx):
        ctx.readings.fix("soil_moisture", 10)
        result = assess_irrigation_needs(
            make_job(Queues.IRRIGATION, JobTypes.ASSESS_IRRIGATION_NEEDS), ctx)
        assert [f.payload["zone"] for f in result.follow_ups] == ["zone-a", "zone-b", "zone-c"]


# ══════════════════════════════════════════════════════════════
#  MARKET
# ══════════════════════════════════════════════════════════════

class TestFetchMarketPrices:
    def test_maize_at_95_is_a_sell(self, ctx):
        ctx.readings.fix("market_price.maize", 95)
        result = fetch_market_prices(
            make_job(Queues.MARKET_DATA, JobTypes.FETCH_MARKET_PRICES, crops=["maize"]), ctx)

        alerts = [n for n in result.notifications if n.kind == NotificationKind.MARKET_PRICE_ALERT]
        assert len(alerts) == 1
        assert alerts[0].details["action"] == "sell"
        assert alerts[0].details["trend"] == "up"
        assert alerts[0].details["threshold"] == 80.0
        assert result.notifications[-1].kind == NotificationKind.TASK_COMPLETED

    def test_low_price_is_a_hold(self, ctx):
        ctx.readings.fix("market_price.beans", 80)
        result = fetch_market_prices(
            make_job(Queues.MARKET_DATA, JobTypes.FETCH_MARKET_PRICES, crops=["beans"]), ctx)
        assert result.notifications[0].details["action"] == "hold"
        assert result.notifications[0].details["trend"] == "down"

    def test_mid_band_no_alert(self, ctx):
        ctx.readings.fix("market_price.maize", 70)
        result = fetch_market_prices(
            make_job(Queues.MARKET_DATA, JobTypes.FETCH_MARKET_PRICES, crops=["maize"]), ctx)
        assert kinds(result) == [NotificationKind.TASK_COMPLETED]
        assert result.output["alerts"] == []

    def test_one_alert_per_crop_at_most(self, ctx):
        crops = ["maize", "beans", "tomatoes"]
        for _ in range(100):
            result = fetch_market_prices(
                make_job(Queues.MARKET_DATA, JobTypes.FETCH_MARKET_PRICES, crops=crops), ctx)
            alerted = [n.details["crop"] for n in result.notifications
                       if n.kind == NotificationKind.MARKET_PRICE_ALERT]
            assert len(alerted) == len(set(alerted))
            for crop in crops:
                assert result.output["prices"][crop] is not None

    def test_summary_lists_crops(self, ctx):
        result = fetch_market_prices(make_job(Queues.MARKET_DATA, JobTypes.FETCH_MARKET_PRICES), ctx)
        summary = result.notifications[-1]
        assert summary.details["items"] == ["maize", "beans", "tomatoes"]


# ══════════════════════════════════════════════════════════════
#  MAINTENANCE
# ══════════════════════════════════════════════════════════════

class TestHealthBands:
    @pytest.mark.parametrize("health,expected", [
        (0, NotificationKind.EQUIPMENT_FAILURE),
        (19.99, NotificationKind.EQUIPMENT_FAILURE),
        (20, NotificationKind.MAINTENANCE_REQUIRED),
        (39.99, NotificationKind.MAINTENANCE_REQUIRED),
        (40, None),
        (99.9, None),
    ])
    def test_band_edges(self, health, expected):
        assert health_band(health, ThresholdRegistry()) == expected

    def test_edges_from_registry(self):
        reg = ThresholdRegistry({"equipment_failure_health": 10, "equipment_maintenance_health": 50})
        assert health_band(15, reg) == NotificationKind.MAINTENANCE_REQUIRED
        assert health_band(45, reg) == NotificationKind.MAINTENANCE_REQUIRED
        assert health_band(5, reg) == NotificationKind.EQUIPMENT_FAILURE

    def test_check_equipment_status(self, ctx):
        ctx.readings.fix("equipment_health.irrigation-pumps", 10)
        ctx.readings.fix("equipment_health.sensors", 30)
        ctx.readings.fix("equipment_health.drones", 90)
        result = check_equipment_status(
            make_job(Queues.MAINTENANCE, JobTypes.CHECK_EQUIPMENT_STATUS,
                     equipment=["irrigation-pumps", "sensors", "drones"]), ctx)
        assert kinds(result) == [
            NotificationKind.EQUIPMENT_FAILURE,
            NotificationKind.MAINTENANCE_REQUIRED,
            NotificationKind.TASK_COMPLETED,
        ]
        assert result.notifications[0].details["urgent"] is True
        assert result.output["totalAlerts"] == 2


# ══════════════════════════════════════════════════════════════
#  SMS
# ══════════════════════════════════════════════════════════════

class TestSendSms:
    @pytest.mark.asyncio
    async def test_sent(self, ctx, sms_provider):
        result = await send_sms(make_job(Queues.NOTIFICATIONS, JobTypes.SEND_SMS,
                                         phoneNumber="+254700000001", message="hi", type="test"), ctx)
        assert result.output["status"] == "sent"
        assert result.output["to"] == "+254700000001"
        assert result.output["providerResponse"]["messageId"].startswith("mock_")
        assert sms_provider.sent[0]["text"] == "hi"

    @pytest.mark.asyncio
    async def test_defaults_to_farmer_phone(self, ctx, sms_provider):
        await send_sms(make_job(Queues.NOTIFICATIONS, JobTypes.SEND_SMS, message="hello"), ctx)
        assert sms_provider.sent[0]["to"] == "+254712345678"

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, ctx):
        ctx.sms = AsyncMock()
        ctx.sms.send.return_value = SmsSendResult(success=False, to="+254700000001",
                                                  error="provider down")
        result = await send_sms(make_job(Queues.NOTIFICATIONS, JobTypes.SEND_SMS,
                                         phoneNumber="+254700000001", message="x"), ctx)
        assert result.output == {
            "status": "failed", "to": "+254700000001", "type": "notification",
            "error": "provider down",
        }
