"""Broker-automation relay (PickMyTrade) destination.

Each ForwardingConfig is one relay account. Only fresh entries are relayed,
filtered by the config's per-ticker strategy allow-list, with quantity scaled
by the account's risk percentage and the ticker remapped to the broker's
contract symbol.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TYPE_CHECKING

from cryptography.fernet import InvalidToken
from sqlmodel import Session, select

from alert_relay.models.forwarding_config import ForwardingConfig
from alert_relay.schemas.signal import SignalKind
from alert_relay.services.encryption import decrypt

if TYPE_CHECKING:
    from alert_relay.forwarding.router import ForwardedSignal

logger = logging.getLogger(__name__)


def ensure_utc(value: datetime) -> datetime:
    """SQLite returns naive datetimes; everything is stored as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class BrokerTarget:
    """Detached snapshot of a ForwardingConfig with its token decrypted."""

    config_id: int
    name: str
    enabled: bool
    webhook_urls: tuple[str, ...]
    token: str
    account_id: str
    allowed_strategies: dict[str, list[str]] = field(default_factory=dict)
    symbol_map: dict[str, str] = field(default_factory=dict)
    risk_percentage: float = 100.0
    rounding_mode: str = "down"
    paused_until: datetime | None = None

    @classmethod
    def from_config(cls, config: ForwardingConfig, token: str) -> "BrokerTarget":
        return cls(
            config_id=config.id,
            name=config.name,
            enabled=config.enabled,
            webhook_urls=tuple(config.webhook_urls or ()),
            token=token,
            account_id=config.account_id,
            allowed_strategies=dict(config.allowed_strategies or {}),
            symbol_map=dict(config.symbol_map or {}),
            risk_percentage=config.risk_percentage,
            rounding_mode=config.rounding_mode,
            paused_until=config.paused_until,
        )

    def is_paused(self, now: datetime) -> bool:
        return self.paused_until is not None and now < ensure_utc(self.paused_until)


def load_broker_targets(session: Session) -> list[BrokerTarget]:
    """Enabled configs as BrokerTargets. Configs whose token cannot be decrypted are skipped."""
    configs = session.exec(
        select(ForwardingConfig).where(ForwardingConfig.enabled == True)  # noqa: E712
    ).all()
    targets = []
    for config in configs:
        try:
            token = decrypt(config.token_encrypted) if config.token_encrypted else ""
        except (InvalidToken, RuntimeError) as e:
            logger.error(
                f"PickMyTrade [{config.name}]: cannot decrypt token, config skipped: {e}",
                extra={"category": "broker", "details": {"configName": config.name, "error": str(e)}},
            )
            continue
        targets.append(BrokerTarget.from_config(config, token))
    return targets


def scale_quantity(quantity: float | None, risk_percentage: float, rounding_mode: str) -> int:
    """Scale contracts by risk percentage, round per mode, never below 1."""
    scaled = (quantity or 1) * risk_percentage / 100
    scaled = round(scaled, 9)  # 0.1 * 3 style float noise must not push ceil up
    rounded = math.ceil(scaled) if rounding_mode == "up" else math.floor(scaled)
    return max(1, int(rounded))


def skip_reason(fwd: "ForwardedSignal", target: BrokerTarget, now: datetime) -> str | None:
    """Why ``target`` must not receive ``fwd``, or None when it should."""
    if not target.enabled:
        return "disabled"
    if target.is_paused(now):
        return f"paused until {ensure_utc(target.paused_until).isoformat()}"
    if fwd.kind != SignalKind.ENTRY:
        return f"{fwd.kind.value} signals are not relayed"
    if fwd.ticker not in target.allowed_strategies:
        return f"ticker {fwd.ticker} not in allow-list"
    allowed = target.allowed_strategies[fwd.ticker]
    if allowed and fwd.strategy not in allowed:
        return f"strategy {fwd.strategy} not allowed for {fwd.ticker}"
    if not target.webhook_urls:
        return "no webhook URLs configured"
    if not target.token or not target.account_id:
        return "token or account ID not configured"
    return None


def build_broker_payload(fwd: "ForwardedSignal", target: BrokerTarget, now: datetime) -> dict[str, Any]:
    return {
        "symbol": target.symbol_map.get(fwd.ticker) or fwd.ticker,
        "date": now.isoformat(),
        "data": "buy" if fwd.direction == "long" else "sell",
        "quantity": scale_quantity(fwd.quantity, target.risk_percentage, target.rounding_mode),
        "risk_percentage": 0,
        "price": fwd.price,
        "gtd_in_second": 0,
        "stp_limit_stp_price": 0,
        "tp": fwd.take_profit or 0,
        "percentage_tp": 0,
        "dollar_tp": 0,
        "sl": fwd.stop_loss or 0,
        "percentage_sl": 0,
        "dollar_sl": 0,
        "trail": 0,
        "trail_stop": 0,
        "trail_trigger": 0,
        "trail_freq": 0,
        "update_tp": False,
        "update_sl": False,
        "breakeven": 0,
        "breakeven_offset": 0,
        "token": target.token,
        "pyramid": False,
        "same_direction_ignore": False,
        "reverse_order_close": True,
        "order_type": "MKT",
        "multiple_accounts": [
            {
                "token": target.token,
                "account_id": target.account_id,
                "risk_percentage": 0,
                "quantity_multiplier": 1,
            }
        ],
    }
