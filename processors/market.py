"""Market price processor (queue: market-data)."""
from __future__ import annotations

import structlog
from typing import TYPE_CHECKING

from models.schemas import Job, NotificationEvent, NotificationKind, ProcessorResult
from rules.thresholds import crop_base_price

if TYPE_CHECKING:
    from core.context import AppContext

logger = structlog.get_logger()

PRICE_SPREAD = 15.0
HOLD_RATIO = 0.7


def fetch_market_prices(job: Job, ctx: "AppContext") -> ProcessorResult:
    farm_id = job.payload.get("farmId") or ctx.farm_id
    crops = job.payload.get("crops") or ctx.settings.farm.crops
    markets = job.payload.get("markets") or ctx.settings.farm.markets
    logger.info("fetching_market_prices", farm_id=farm_id, crops=crops, markets=markets)

    prices: dict[str, float] = {}
    alerts: list[NotificationEvent] = []

    for crop in crops:
        base = crop_base_price(crop)
        price = ctx.readings.reading(f"market_price.{crop}", base - PRICE_SPREAD, base + PRICE_SPREAD)
        threshold = ctx.thresholds.price_alert(crop)
        prices[crop] = price

        if price > threshold:
            action, trend = "sell", "up"
        elif price < threshold * HOLD_RATIO:
            action, trend = "hold", "down"
        else:
            continue

        alerts.append(NotificationEvent(
            kind=NotificationKind.MARKET_PRICE_ALERT,
            farm_id=farm_id,
            details={
                "crop": crop,
                "price": price,
                "threshold": threshold,
                "action": action,
                "trend": trend,
            },
        ))
        logger.info("market_price_alert", crop=crop, price=round(price, 2), action=action)

    summary = NotificationEvent(
        kind=NotificationKind.TASK_COMPLETED,
        farm_id=farm_id,
        details={
            "task": "market_price_check",
            "summary": f"{len(crops)} crops checked, {len(alerts)} alerts sent",
            "items": list(crops),
        },
    )

    return ProcessorResult(
        output={
            "farmId": farm_id,
            "status": "prices_checked",
            "markets": list(markets),
            "prices": prices,
            "alerts": [
                {"crop": a.details["crop"], "action": a.details["action"], "trend": a.details["trend"]}
                for a in alerts
            ],
        },
        notifications=alerts + [summary],
    )
