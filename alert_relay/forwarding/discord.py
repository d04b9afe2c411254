"""Discord webhook embeds for forwarded signals."""

from datetime import datetime
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from alert_relay.forwarding.router import ForwardedSignal

_COLORS = {"entry": 0x00FF00, "take_profit": 0x0099FF, "stop_loss": 0xFF0000}
_EMOJI = {"entry": "🟢", "take_profit": "🎯", "stop_loss": "🛑"}


def _money(value: float) -> str:
    return f"+${value:.2f}" if value >= 0 else f"-${abs(value):.2f}"


def build_discord_embed(fwd: "ForwardedSignal", now: datetime) -> dict[str, Any]:
    action = fwd.action
    fields: list[dict[str, Any]] = [
        {"name": "Action", "value": action.upper(), "inline": True},
        {"name": "Ticker", "value": fwd.ticker, "inline": True},
        {"name": "Price", "value": f"${fwd.price}", "inline": True},
    ]
    if fwd.strategy:
        fields.append({"name": "Strategy", "value": fwd.strategy, "inline": True})
    if fwd.direction:
        fields.append({"name": "Direction", "value": fwd.direction.upper(), "inline": True})

    if action == "entry":
        if fwd.take_profit:
            fields.append({"name": "Take Profit", "value": f"${fwd.take_profit}", "inline": True})
        if fwd.stop_loss:
            fields.append({"name": "Stop Loss", "value": f"${fwd.stop_loss}", "inline": True})
    elif fwd.entry_price:
        fields.append({"name": "Entry Price", "value": f"${fwd.entry_price}", "inline": True})
        if fwd.pnl is not None:
            marker = "🟢" if fwd.pnl >= 0 else "🔴"
            fields.append({"name": "P&L", "value": f"{marker} {_money(fwd.pnl)}", "inline": True})
        if fwd.pnl_percent is not None:
            sign = "+" if fwd.pnl_percent >= 0 else ""
            fields.append({"name": "P&L %", "value": f"{sign}{fwd.pnl_percent:.2f}%", "inline": True})

    return {
        "title": f"{_EMOJI.get(action, '📈')} {action.upper()} Signal",
        "description": f"New trading signal received for {fwd.ticker}",
        "color": _COLORS.get(action, 0x808080),
        "fields": fields,
        "timestamp": now.isoformat(),
        "footer": {"text": "TradingView Webhook"},
    }
