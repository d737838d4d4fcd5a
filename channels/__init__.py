"""Outbound channel adapters. SMS is the only channel the farm engine uses."""
from channels.base import ChannelError, CircuitBreaker, DeliveryMetrics
from channels.sms_adapter import SMSAdapter, MockSmsProvider, AfricasTalkingProvider, create_sms_adapter

__all__ = [
    "ChannelError", "CircuitBreaker", "DeliveryMetrics",
    "SMSAdapter", "MockSmsProvider", "AfricasTalkingProvider", "create_sms_adapter",
]
