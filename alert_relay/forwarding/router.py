"""Forwarding router: decide which destinations receive a signal, then fan out.

Routing (``plan``) is a pure function of the signal kind, the lifecycle
outcome and destination configuration. Dispatch runs every planned delivery
concurrently; a failing delivery is logged and never affects the others.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable

from alert_relay.config import Settings
from alert_relay.errors import DestinationError
from alert_relay.forwarding.broker_relay import BrokerTarget, build_broker_payload, skip_reason
from alert_relay.forwarding.discord import build_discord_embed
from alert_relay.forwarding.external_dashboard import build_external_payload
from alert_relay.forwarding.http import post_json
from alert_relay.forwarding.telegram import format_telegram_message, send_telegram_message
from alert_relay.schemas.signal import Signal, SignalKind
from alert_relay.services.lifecycle import LifecycleOutcome
from alert_relay.utils.constants import NOTIFY_KINDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForwardedSignal:
    """Signal plus the trade figures destinations display. Holds no ORM state."""

    kind: SignalKind
    action: str
    ticker: str
    price: float
    direction: str | None = None
    take_profit: float | None = None
    stop_loss: float | None = None
    quantity: float | None = None
    strategy: str | None = None
    trade_id: int | None = None
    entry_price: float | None = None
    pnl: float | None = None
    pnl_percent: float | None = None


def build_forwarded_signal(signal: Signal, outcome: LifecycleOutcome) -> ForwardedSignal | None:
    """Snapshot for forwarding, or None when the outcome must not be forwarded."""
    if not outcome.status.forwards:
        return None
    trade = outcome.trade
    return ForwardedSignal(
        kind=signal.kind,
        action=signal.action.value,
        ticker=signal.ticker,
        price=signal.price,
        direction=signal.direction.value if signal.direction else (trade.direction if trade else None),
        take_profit=signal.take_profit,
        stop_loss=signal.stop_loss,
        quantity=signal.quantity if signal.quantity else (trade.quantity if trade else None),
        strategy=signal.strategy,
        trade_id=trade.id if trade else None,
        entry_price=trade.entry_price if trade else None,
        pnl=trade.pnl if trade else None,
        pnl_percent=trade.pnl_percent if trade else None,
    )


@dataclass
class Delivery:
    destination: str
    target: str
    payload: Any
    send: Callable[[], Awaitable[Any]]


@dataclass
class DeliveryResult:
    destination: str
    target: str
    ok: bool
    error: str | None = None
    transient: bool = False


class ForwardingRouter:
    def __init__(
        self,
        *,
        telegram_chat_ids: list[int] | None = None,
        discord_webhook_url: str = "",
        external_dashboard_url: str = "",
        timeout: float = 10.0,
    ):
        self.telegram_chat_ids = list(telegram_chat_ids or [])
        self.discord_webhook_url = discord_webhook_url
        self.external_dashboard_url = external_dashboard_url
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ForwardingRouter":
        return cls(
            telegram_chat_ids=settings.telegram_chat_ids,
            discord_webhook_url=settings.discord_webhook_url,
            external_dashboard_url=settings.external_dashboard_url,
            timeout=settings.forward_timeout_seconds,
        )

    def plan(
        self,
        fwd: ForwardedSignal,
        broker_targets: list[BrokerTarget],
        now: datetime | None = None,
    ) -> list[Delivery]:
        now = now or datetime.now(timezone.utc)
        deliveries: list[Delivery] = []

        if fwd.kind.value in NOTIFY_KINDS:
            if self.telegram_chat_ids:
                text = format_telegram_message(fwd, now)
                for chat_id in self.telegram_chat_ids:
                    deliveries.append(Delivery(
                        "telegram", str(chat_id), text,
                        partial(send_telegram_message, chat_id, text, self.timeout),
                    ))
            if self.discord_webhook_url:
                body = {"embeds": [build_discord_embed(fwd, now)]}
                deliveries.append(Delivery(
                    "discord", self.discord_webhook_url, body,
                    partial(post_json, "discord", self.discord_webhook_url, body, self.timeout),
                ))
            if self.external_dashboard_url:
                body = build_external_payload(fwd, now)
                deliveries.append(Delivery(
                    "external_dashboard", self.external_dashboard_url, body,
                    partial(post_json, "external_dashboard", self.external_dashboard_url, body, self.timeout),
                ))

        for target in broker_targets:
            reason = skip_reason(fwd, target, now)
            if reason is not None:
                logger.info(f"PickMyTrade [{target.name}]: skipping {fwd.ticker}: {reason}")
                continue
            body = build_broker_payload(fwd, target, now)
            destination = f"pickmytrade:{target.name}"
            for url in target.webhook_urls:
                deliveries.append(Delivery(
                    destination, url, body,
                    partial(post_json, destination, url, body, self.timeout),
                ))

        return deliveries

    async def dispatch(self, deliveries: list[Delivery]) -> list[DeliveryResult]:
        return list(await asyncio.gather(*(self._deliver(d) for d in deliveries)))

    async def _deliver(self, delivery: Delivery) -> DeliveryResult:
        try:
            await delivery.send()
        except DestinationError as e:
            level = logging.WARNING if e.transient else logging.ERROR
            logger.log(
                level,
                f"Failed to forward to {delivery.destination} ({delivery.target}): {e.kind} failure: {e}",
                extra={
                    "category": "forwarding",
                    "details": {"destination": delivery.destination, "target": delivery.target,
                                "failure": e.kind, "error": str(e)},
                },
            )
            return DeliveryResult(delivery.destination, delivery.target, False, str(e), e.transient)
        except Exception as e:
            logger.error(
                f"Unexpected error forwarding to {delivery.destination} ({delivery.target}): {e}",
                exc_info=True,
                extra={
                    "category": "forwarding",
                    "details": {"destination": delivery.destination, "target": delivery.target, "error": str(e)},
                },
            )
            return DeliveryResult(delivery.destination, delivery.target, False, str(e))

        logger.info(
            f"Forwarded to {delivery.destination} ({delivery.target})",
            extra={"category": "forwarding", "details": {"destination": delivery.destination, "target": delivery.target}},
        )
        return DeliveryResult(delivery.destination, delivery.target, True)

    async def forward(self, fwd: ForwardedSignal, broker_targets: list[BrokerTarget]) -> list[DeliveryResult]:
        """Plan and dispatch; the entry point used by the webhook background task."""
        deliveries = self.plan(fwd, broker_targets)
        if not deliveries:
            logger.info(f"No destinations for {fwd.kind.value} {fwd.ticker}")
            return []
        results = await self.dispatch(deliveries)
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            f"Webhook forwarding completed for {fwd.ticker}: {len(results) - failed} ok, {failed} failed",
            extra={
                "category": "forwarding",
                "details": {"ticker": fwd.ticker, "strategy": fwd.strategy, "action": fwd.action,
                            "delivered": len(results) - failed, "failed": failed},
            },
        )
        return results
