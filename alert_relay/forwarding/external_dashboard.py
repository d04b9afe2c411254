"""Generic external dashboard sink: flat JSON record per signal."""

from datetime import datetime
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from alert_relay.forwarding.router import ForwardedSignal


def build_external_payload(fwd: "ForwardedSignal", now: datetime) -> dict[str, Any]:
    return {
        "symbol": fwd.ticker,
        "action": fwd.action,
        "price": fwd.price,
        "timestamp": int(now.timestamp() * 1000),
        "stopLoss": fwd.stop_loss or None,
        "takeProfit": fwd.take_profit or None,
        "positionSize": fwd.quantity or 1,
        "strategy": fwd.strategy,
    }
