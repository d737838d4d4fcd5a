"""
Threshold Registry — named numeric alert thresholds.

Values come from the `thresholds:` section of settings.yaml; anything not
configured falls back to a per-rule default. Per-crop price rules are
name-templated (`<crop>_price_alert`) and default to the crop's base price
plus 10. The registry is read-only once built, so consumer loops can share it.
"""
from __future__ import annotations

import structlog
from types import MappingProxyType
from typing import Any, Mapping, Optional

logger = structlog.get_logger()


# KES per kg
CROP_BASE_PRICES: Mapping[str, float] = MappingProxyType({
    "maize": 70.0,
    "beans": 110.0,
})
DEFAULT_CROP_BASE_PRICE = 55.0
PRICE_ALERT_MARGIN = 10.0
PRICE_ALERT_SUFFIX = "_price_alert"

DEFAULT_THRESHOLDS: Mapping[str, float] = MappingProxyType({
    "soil_moisture_low": 30.0,
    "temperature_high": 35.0,
    "humidity_low": 40.0,
    "equipment_failure_health": 20.0,
    "equipment_maintenance_health": 40.0,
})


def crop_base_price(crop: str) -> float:
    return CROP_BASE_PRICES.get(crop.lower(), DEFAULT_CROP_BASE_PRICE)


class ThresholdRegistry:
    """Resolves rule names to numbers. Never raises."""

    def __init__(self, overrides: Optional[Mapping[str, Any]] = None):
        clean: dict[str, float] = {}
        for name, value in (overrides or {}).items():
            try:
                clean[name] = float(value)
            except (TypeError, ValueError):
                logger.warning("threshold_override_ignored", rule=name, value=value)
        self._overrides: Mapping[str, float] = MappingProxyType(clean)

    def resolve(self, rule_name: str, default: Optional[float] = None) -> float:
        """
        Lookup order: configured override, caller default, rule default,
        templated crop-price default, then 0.0.
        """
        if rule_name in self._overrides:
            return self._overrides[rule_name]
        if default is not None:
            return float(default)
        if rule_name in DEFAULT_THRESHOLDS:
            return DEFAULT_THRESHOLDS[rule_name]
        if rule_name.endswith(PRICE_ALERT_SUFFIX):
            crop = rule_name[: -len(PRICE_ALERT_SUFFIX)]
            return crop_base_price(crop) + PRICE_ALERT_MARGIN
        logger.warning("threshold_unknown_rule", rule=rule_name)
        return 0.0

    def price_alert(self, crop: str) -> float:
        return self.resolve(f"{crop}{PRICE_ALERT_SUFFIX}")

    @property
    def overrides(self) -> Mapping[str, float]:
        return self._overrides

    def snapshot(self) -> dict[str, float]:
        """Effective values for every known rule."""
        merged = dict(DEFAULT_THRESHOLDS)
        merged.update(self._overrides)
        return merged
