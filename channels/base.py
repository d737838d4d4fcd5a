"""
Delivery plumbing shared by outbound channels.

ChannelError is what providers raise. The SMS adapter keeps one
CircuitBreaker and one DeliveryMetrics per provider and reports both from
/health.
"""
from __future__ import annotations

import time
import structlog
from collections import Counter, deque
from typing import Any, Optional

logger = structlog.get_logger()


class ChannelError(Exception):
    """Raised by a provider when a message could not be handed over."""

    def __init__(self, message: str, channel: str = "", retryable: bool = False):
        super().__init__(message)
        self.channel = channel
        self.retryable = retryable


# ══════════════════════════════════════════════════════════════
#  CIRCUIT BREAKER
# ══════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Opens after `failure_threshold` consecutive failures and stays open for
    `recovery_timeout` seconds. After that one probe is let through
    (half_open): success closes the breaker, failure re-opens it.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._consecutive = 0
        self._open_until: Optional[float] = None

    @property
    def state(self) -> str:
        if self._open_until is None:
            return "closed"
        return "open" if time.monotonic() < self._open_until else "half_open"

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    def record_failure(self):
        self._consecutive += 1
        probing = self.state == "half_open"
        if probing or self._consecutive >= self.failure_threshold:
            self._open_until = time.monotonic() + self.recovery_timeout
            logger.warning("circuit_opened", consecutive_failures=self._consecutive,
                           retry_in_seconds=self.recovery_timeout)

    def record_success(self):
        if self._open_until is not None:
            logger.info("circuit_closed")
        self._consecutive = 0
        self._open_until = None

    @property
    def stats(self) -> dict[str, Any]:
        return {"state": self.state, "consecutive_failures": self._consecutive}


# ══════════════════════════════════════════════════════════════
#  DELIVERY METRICS
# ══════════════════════════════════════════════════════════════

class DeliveryMetrics:
    """Running totals for one channel: messages, segments, latency, failure reasons."""

    def __init__(self, channel: str, window: int = 100):
        self.channel = channel
        self.sent = 0
        self.failed = 0
        self.segments = 0
        self._latency_ms: deque[float] = deque(maxlen=window)
        self._reasons: Counter[str] = Counter()
        self._recent: deque[str] = deque(maxlen=10)

    def record_send(self, latency_ms: float, segments: int = 1):
        self.sent += 1
        self.segments += segments
        self._latency_ms.append(latency_ms)

    def record_failure(self, reason: str):
        self.failed += 1
        self._reasons[reason.split(":", 1)[0]] += 1
        self._recent.append(reason)

    def to_dict(self) -> dict[str, Any]:
        attempts = self.sent + self.failed
        latency = sum(self._latency_ms) / len(self._latency_ms) if self._latency_ms else 0.0
        return {
            "channel": self.channel,
            "sent": self.sent,
            "failed": self.failed,
            "segments": self.segments,
            "failure_rate": round(self.failed / attempts, 4) if attempts else 0.0,
            "avg_latency_ms": round(latency, 1),
            "failure_reasons": dict(self._reasons),
            "recent_errors": list(self._recent),
        }
