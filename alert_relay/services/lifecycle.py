"""Trade lifecycle: turn canonical signals into open/closed trades.

State per (ticker, strategy): no-trade → open → closed.

Signals can be redelivered by the alerting platform or arrive concurrently,
and the database only guarantees single-row atomicity. Two rules keep the
trade table consistent without cross-request locks:

* Entries are created unconditionally and then reconciled
  (``_reconcile_entry``): among open trades for the key opened inside the dedup
  window, the first inserted survives and every other one is deleted. A request whose
  own trade did not survive reports ``duplicate``.
* Exits close through a compare-and-set UPDATE (``status = 'open'``), after an
  event-based duplicate check, so a trade is closed at most once.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from alert_relay.errors import TradeNotFoundError, TradeStateError
from alert_relay.models.trade import Trade
from alert_relay.schemas.signal import Direction, Signal, SignalKind
from alert_relay.services.repository import TradeRepository, window_start

logger = logging.getLogger(__name__)

DEFAULT_DEDUP_WINDOW_SECONDS = 60


class OutcomeStatus(str, Enum):
    OPENED = "opened"
    CLOSED = "closed"
    DUPLICATE = "duplicate"
    UNMATCHED = "unmatched"
    NO_OPEN_TRADE = "no_open_trade"
    IGNORED = "ignored"

    @property
    def forwards(self) -> bool:
        return self in (OutcomeStatus.OPENED, OutcomeStatus.CLOSED)


@dataclass
class LifecycleOutcome:
    status: OutcomeStatus
    trade: Trade | None
    message: str

    @property
    def trade_id(self) -> int | None:
        return self.trade.id if self.trade is not None else None


def calculate_pnl(direction: str, entry_price: float, exit_price: float, quantity: float) -> float:
    """Dollar P&L in price points × contracts."""
    if direction == Direction.SHORT.value:
        return (entry_price - exit_price) * quantity
    return (exit_price - entry_price) * quantity


def calculate_pnl_percent(entry_price: float, exit_price: float) -> float:
    """Price move in percent of entry. Direction-agnostic."""
    return (exit_price - entry_price) / entry_price * 100


class TradeLifecycleManager:
    """Applies signals to the trade repository."""

    def __init__(self, repository: TradeRepository, dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS):
        self.repo = repository
        self.dedup_window_seconds = dedup_window_seconds

    def process(self, signal: Signal) -> LifecycleOutcome:
        if signal.kind == SignalKind.ENTRY:
            return self.open_trade(signal)
        if signal.kind.is_exit:
            return self.close_trade(signal)
        logger.info(
            f"{signal.kind.value} signal for {signal.ticker} acknowledged, no trade change",
            extra={"category": "lifecycle", "details": signal.summary()},
        )
        return LifecycleOutcome(OutcomeStatus.IGNORED, None, f"{signal.kind.value} acknowledged")

    # -- entry --------------------------------------------------------------

    def open_trade(self, signal: Signal) -> LifecycleOutcome:
        direction = (signal.direction or Direction.LONG).value
        quantity = signal.quantity if signal.quantity else 1.0

        created = self.repo.create_open_trade(
            ticker=signal.ticker,
            direction=direction,
            entry_price=signal.price,
            quantity=quantity,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            strategy=signal.strategy,
            raw_payload=signal.raw,
        )
        created_id = created.id

        outcome = self._reconcile_entry(created_id, signal.ticker, signal.strategy)
        if outcome.status == OutcomeStatus.OPENED:
            logger.info(
                f"Trade opened [ID: {created_id}] {signal.ticker} {direction.upper()} @ {signal.price} "
                f"| SL: {signal.stop_loss or 'N/A'} | TP: {signal.take_profit or 'N/A'} | Qty: {quantity}",
                extra={"category": "lifecycle", "details": {"tradeId": created_id, **signal.summary()}},
            )
        return outcome

    def _reconcile_entry(self, created_id: int, ticker: str, strategy: str | None) -> LifecycleOutcome:
        """Restore the one-open-trade-per-key invariant after an optimistic insert.

        Every racing request sees the same insertion ordering, so they all
        agree on the survivor. Deleting a row another request already removed
        is a no-op.
        """
        since = window_start(self.dedup_window_seconds)
        recent = self.repo.open_trades_since(ticker, strategy, since)
        if not recent:
            # Our row is older than the window only if the clock jumped; keep it.
            trade = self.repo.get(created_id)
            return LifecycleOutcome(OutcomeStatus.OPENED, trade, "entry processed successfully")

        # Commits below expire loaded rows, so work from ids
        retained_id = recent[0].id
        extra_ids = [t.id for t in recent[1:]]
        for extra_id in extra_ids:
            if self.repo.delete_trade(extra_id):
                logger.warning(
                    f"Removed duplicate open trade [ID: {extra_id}] for {ticker} "
                    f"(strategy={strategy}), keeping [ID: {retained_id}]",
                    extra={
                        "category": "lifecycle",
                        "details": {"ticker": ticker, "strategy": strategy, "deletedId": extra_id, "keptId": retained_id},
                    },
                )

        retained = self.repo.get(retained_id)
        if retained_id != created_id:
            logger.warning(
                f"Duplicate entry for {ticker} (strategy={strategy}); trade [ID: {retained_id}] already open",
                extra={"category": "lifecycle", "details": {"ticker": ticker, "strategy": strategy, "tradeId": retained_id}},
            )
            return LifecycleOutcome(OutcomeStatus.DUPLICATE, retained, "duplicate entry ignored")

        return LifecycleOutcome(OutcomeStatus.OPENED, retained, "entry processed successfully")

    # -- exit ---------------------------------------------------------------

    def close_trade(self, signal: Signal) -> LifecycleOutcome:
        exit_type = signal.kind.value
        since = window_start(self.dedup_window_seconds)
        details = signal.summary()

        prior = self.repo.recent_exit_event(signal.ticker, signal.strategy, exit_type, since)
        if prior is not None:
            logger.warning(
                f"Duplicate {exit_type} for {signal.ticker} (strategy={signal.strategy}); "
                f"trade [ID: {prior.trade_id}] already closed",
                extra={"category": "lifecycle", "details": {**details, "tradeId": prior.trade_id}},
            )
            return LifecycleOutcome(OutcomeStatus.DUPLICATE, self.repo.get(prior.trade_id), f"duplicate {exit_type} ignored")

        open_trades = self.repo.open_trades_for_ticker(signal.ticker)
        trade = self._resolve_open_trade(signal, open_trades)

        if trade is None:
            closed = self.repo.recently_closed(signal.ticker, signal.strategy, exit_type, since)
            if closed is not None:
                logger.warning(
                    f"Duplicate {exit_type} for {signal.ticker}; trade [ID: {closed.id}] closed moments ago",
                    extra={"category": "lifecycle", "details": {**details, "tradeId": closed.id}},
                )
                return LifecycleOutcome(OutcomeStatus.DUPLICATE, closed, f"duplicate {exit_type} ignored")

            if not open_trades:
                logger.warning(
                    f"No open trade found for ticker {signal.ticker} - cannot process {exit_type}",
                    extra={"category": "lifecycle", "details": details},
                )
                return LifecycleOutcome(OutcomeStatus.NO_OPEN_TRADE, None, f"no open trade for {signal.ticker}")

            logger.warning(
                f"Unmatched {exit_type} for {signal.ticker} (strategy={signal.strategy}): "
                f"{len(open_trades)} open trade(s), none selected",
                extra={
                    "category": "lifecycle",
                    "details": {**details, "openTradeIds": [t.id for t in open_trades]},
                },
            )
            return LifecycleOutcome(OutcomeStatus.UNMATCHED, None, f"unmatched {exit_type} for {signal.ticker}")

        pnl_source = "upstream" if signal.pnl is not None else "calculated"
        pnl = signal.pnl if signal.pnl is not None else calculate_pnl(
            trade.direction, trade.entry_price, signal.price, trade.quantity
        )
        pnl_percent = calculate_pnl_percent(trade.entry_price, signal.price)

        trade_id = trade.id
        if not self.repo.close_trade(
            trade_id,
            exit_price=signal.price,
            exit_reason=exit_type,
            pnl=pnl,
            pnl_percent=pnl_percent,
            event_type=exit_type,
            raw_payload=signal.raw,
        ):
            logger.warning(
                f"Trade [ID: {trade_id}] was closed by a concurrent {exit_type} request",
                extra={"category": "lifecycle", "details": {**details, "tradeId": trade_id}},
            )
            return LifecycleOutcome(OutcomeStatus.DUPLICATE, self.repo.get(trade_id), f"duplicate {exit_type} ignored")

        trade = self.repo.get(trade_id)
        logger.info(
            f"{exit_type} [ID: {trade_id}] {signal.ticker} | Entry: {trade.entry_price} -> Exit: {signal.price} "
            f"| P&L: ${pnl:.2f} ({pnl_percent:.2f}%, {pnl_source})",
            extra={
                "category": "lifecycle",
                "details": {**details, "tradeId": trade_id, "pnl": pnl, "pnlPercent": pnl_percent},
            },
        )
        return LifecycleOutcome(OutcomeStatus.CLOSED, trade, f"{exit_type} processed successfully")

    @staticmethod
    def _resolve_open_trade(signal: Signal, open_trades: list[Trade]) -> Trade | None:
        """Pick the trade an exit applies to, or None.

        No fallback: closing the wrong trade is worse than dropping a signal.
        """
        if signal.strategy is not None:
            for trade in open_trades:
                if trade.strategy == signal.strategy:
                    return trade
            return None
        if len(open_trades) == 1:
            return open_trades[0]
        return None

    # -- operator actions ---------------------------------------------------

    def complete_manually(
        self,
        trade_id: int,
        *,
        exit_price: float,
        pnl: float,
        exit_reason: str = "manual",
    ) -> Trade:
        trade = self.repo.get(trade_id)
        if trade is None:
            raise TradeNotFoundError(f"Trade {trade_id} not found")
        if trade.status != "open":
            raise TradeStateError(f"Trade {trade_id} is already closed")

        pnl_percent = calculate_pnl_percent(trade.entry_price, exit_price)
        if not self.repo.close_trade(
            trade_id,
            exit_price=exit_price,
            exit_reason=exit_reason,
            pnl=pnl,
            pnl_percent=pnl_percent,
            event_type="manual",
            raw_payload={"exitPrice": exit_price, "pnl": pnl, "exitReason": exit_reason},
        ):
            raise TradeStateError(f"Trade {trade_id} is already closed")

        logger.info(
            f"Trade manually completed [ID: {trade_id}] | Exit: {exit_price} | P&L: ${pnl} | Reason: {exit_reason}",
            extra={
                "category": "lifecycle",
                "details": {"tradeId": trade_id, "exitPrice": exit_price, "pnl": pnl, "exitReason": exit_reason},
            },
        )
        return self.repo.get(trade_id)
