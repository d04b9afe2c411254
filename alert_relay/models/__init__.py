"""Database models."""

from alert_relay.models.trade import Trade, TradeEvent
from alert_relay.models.forwarding_config import ForwardingConfig
from alert_relay.models.activity_log import ActivityLog

__all__ = [
    "Trade",
    "TradeEvent",
    "ForwardingConfig",
    "ActivityLog",
]
