"""
SMS Channel Adapter — outbound farmer notifications.

Provides:
- GSM-7 vs Unicode detection for accurate segment counting
- Automatic message truncation to max segment limit
- Pluggable providers: mock (dev/test) and Africa's Talking (production)
- Circuit breaker and per-channel metrics around every send

Contract: send(phone_number, text) -> SmsSendResult. A provider failure is
reported in the result and never raised to the caller.
"""
from __future__ import annotations

import re
import time
import uuid
import structlog
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from channels.base import ChannelError, DeliveryMetrics, CircuitBreaker
from config.settings import SmsConfig
from models.schemas import SmsSendResult

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
#  GSM-7 CHARACTER SET & SEGMENT COUNTING
# ══════════════════════════════════════════════════════════════

_GSM7_CHARS = set(
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞÆæßÉ !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÑÜ§¿abcdefghijklmnopqrstuvwxyzäöñüà"
)

# Extended GSM-7 characters cost two septets each
_GSM7_EXTENDED = set("^{}[]~|\\€")


def is_gsm7(text: str) -> bool:
    return all(c in _GSM7_CHARS or c in _GSM7_EXTENDED for c in text)


def ucs2_units(text: str) -> int:
    """UTF-16 code units; characters outside the BMP (most emoji) take two."""
    return len(text.encode("utf-16-le")) // 2


def segment_count(text: str) -> int:
    """
    GSM-7: 160 chars single / 153 per concatenated segment.
    UCS-2 (any emoji or non-GSM char): 70 single / 67 per segment.
    """
    if not text:
        return 0

    if is_gsm7(text):
        septets = sum(2 if c in _GSM7_EXTENDED else 1 for c in text)
        return 1 if septets <= 160 else (septets + 152) // 153
    units = ucs2_units(text)
    return 1 if units <= 70 else (units + 66) // 67


def truncate_to_segments(text: str, max_segments: int) -> str:
    if segment_count(text) <= max_segments:
        return text
    if is_gsm7(text):
        return text[: 153 * max_segments - 3] + "..."

    budget = 67 * max_segments - 3
    kept = []
    for c in text:
        budget -= ucs2_units(c)
        if budget < 0:
            break
        kept.append(c)
    return "".join(kept) + "..."


def normalize_phone(phone: str) -> str:
    """Strip formatting; keep a leading + for E.164 numbers."""
    phone = (phone or "").strip()
    digits = re.sub(r"[^\d]", "", phone)
    if not digits:
        return ""
    return f"+{digits}" if phone.startswith("+") else digits


# ══════════════════════════════════════════════════════════════
#  PROVIDERS
# ══════════════════════════════════════════════════════════════

@runtime_checkable
class SmsProvider(Protocol):
    """
    Returns {"message_id": str, "cost": str, "status": str, "raw": Any}.
    Raises ChannelError (or an httpx error) on failure.
    """

    name: str

    async def send(self, to: str, text: str) -> dict[str, Any]:
        ...

    async def close(self) -> None:
        ...


class MockSmsProvider:
    """Logs instead of sending. Keeps a record of outbound messages for tests."""

    name = "mock"

    def __init__(self):
        self.sent: list[dict[str, str]] = []

    async def send(self, to: str, text: str) -> dict[str, Any]:
        message_id = f"mock_{uuid.uuid4().hex[:16]}"
        self.sent.append({"to": to, "text": text, "message_id": message_id})
        logger.info("sms_mock_sent", to=to, message_id=message_id)
        return {"message_id": message_id, "cost": "KES 0.0000", "status": "Success", "raw": None}

    async def close(self) -> None:
        pass


def _should_retry(exc: BaseException) -> bool:
    """Network errors and 5xx replies get a second attempt; 4xx never do."""
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, ChannelError) and exc.retryable


class AfricasTalkingProvider:
    """Africa's Talking bulk SMS REST API."""

    name = "africastalking"

    LIVE_URL = "https://api.africastalking.com/version1/messaging"
    SANDBOX_URL = "https://api.sandbox.africastalking.com/version1/messaging"

    def __init__(
        self,
        username: str,
        api_key: str,
        sender_id: str = "",
        sandbox: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.username = username
        self.api_key = api_key
        self.sender_id = sender_id
        self.url = self.SANDBOX_URL if sandbox else self.LIVE_URL
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                headers={
                    "apiKey": self.api_key,
                    "Accept": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    @retry(
        retry=retry_if_exception(_should_retry),
        stop=stop_after_attempt(2),
        wait=wait_exponential(min=1, max=5),
        reraise=True,
    )
    async def _post(self, data: dict[str, str]) -> dict[str, Any]:
        client = await self._get_client()
        resp = await client.post(self.url, data=data)
        if resp.status_code >= 400:
            logger.error("africastalking_api_error", status=resp.status_code, body=resp.text[:500])
            raise ChannelError(
                f"Africa's Talking HTTP {resp.status_code}: {resp.text[:200]}",
                channel="sms",
                retryable=resp.status_code >= 500,
            )
        return resp.json() if resp.content else {}

    async def send(self, to: str, text: str) -> dict[str, Any]:
        data = {"username": self.username, "to": to, "message": text}
        if self.sender_id:
            data["from"] = self.sender_id

        body = await self._post(data)
        recipients = body.get("SMSMessageData", {}).get("Recipients", [])
        if not recipients:
            message = body.get("SMSMessageData", {}).get("Message", "no recipients accepted")
            raise ChannelError(f"Africa's Talking rejected message: {message}", channel="sms")

        recipient = recipients[0]
        status = recipient.get("status", "")
        if status != "Success":
            raise ChannelError(f"Africa's Talking delivery status: {status or 'unknown'}", channel="sms")

        return {
            "message_id": recipient.get("messageId", ""),
            "cost": recipient.get("cost", ""),
            "status": status,
            "raw": body,
        }

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


# ══════════════════════════════════════════════════════════════
#  SMS ADAPTER
# ══════════════════════════════════════════════════════════════

class SMSAdapter:
    """
    Wraps a provider with segment-aware truncation, a circuit breaker and
    metrics. send() always returns a result, never raises.
    """

    def __init__(self, provider: SmsProvider, max_segments: int = 3):
        self.provider = provider
        self.max_segments = max_segments
        self._breaker = CircuitBreaker()
        self._metrics = DeliveryMetrics("sms")

    async def send(self, phone_number: str, text: str) -> SmsSendResult:
        to = normalize_phone(phone_number)
        if not to:
            self._metrics.record_failure("invalid_phone_number")
            return SmsSendResult(success=False, to=phone_number or "", error="Invalid phone number",
                                 provider=self.provider.name)

        if not text:
            self._metrics.record_failure("empty_message")
            return SmsSendResult(success=False, to=to, error="Empty message",
                                 provider=self.provider.name)

        if self._breaker.is_open:
            self._metrics.record_failure("circuit_open")
            return SmsSendResult(success=False, to=to, error="SMS circuit breaker open",
                                 provider=self.provider.name)

        content = truncate_to_segments(text or "", self.max_segments)
        segments = segment_count(content)
        start = time.monotonic()

        try:
            response = await self.provider.send(to, content)
        except Exception as e:
            self._breaker.record_failure()
            self._metrics.record_failure(str(e))
            logger.warning("sms_send_failed", to=to, provider=self.provider.name, error=str(e))
            return SmsSendResult(success=False, to=to, segments=segments, error=str(e),
                                 provider=self.provider.name)

        latency = (time.monotonic() - start) * 1000
        self._breaker.record_success()
        self._metrics.record_send(latency, segments)
        logger.info("sms_sent", to=to, segments=segments, provider=self.provider.name,
                    message_id=response.get("message_id", ""))
        return SmsSendResult(
            success=True,
            to=to,
            provider_message_id=response.get("message_id", ""),
            cost=response.get("cost", ""),
            segments=segments,
            provider=self.provider.name,
        )

    async def health_check(self) -> dict[str, Any]:
        return {
            "channel": "sms",
            "provider": self.provider.name,
            "circuit_breaker": self._breaker.stats,
            "metrics": self._metrics.to_dict(),
        }

    async def shutdown(self) -> None:
        await self.provider.close()


def create_sms_adapter(config: SmsConfig = None) -> SMSAdapter:
    """Factory: pick the provider named in config."""
    config = config or SmsConfig()
    if config.provider == "africastalking":
        provider = AfricasTalkingProvider(
            username=config.username,
            api_key=config.api_key,
            sender_id=config.sender_id,
            sandbox=config.sandbox,
        )
    else:
        if config.provider != "mock":
            logger.warning("sms_provider_unknown", provider=config.provider, fallback="mock")
        provider = MockSmsProvider()
    return SMSAdapter(provider, max_segments=config.max_segments)
