"""Trade repository — the only code that issues queries against trade tables.

Every write is a single-row operation committed immediately; the lifecycle
manager builds its consistency guarantees on top of that (see lifecycle.py).
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import Session, select, func

from alert_relay.models.trade import Trade, TradeEvent

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _strategy_clause(strategy: str | None):
    if strategy is None:
        return Trade.strategy.is_(None)  # type: ignore[union-attr]
    return Trade.strategy == strategy


class TradeRepository:
    """CRUD and range queries over Trade / TradeEvent."""

    def __init__(self, session: Session):
        self.session = session

    # -- creation -----------------------------------------------------------

    def create_open_trade(
        self,
        *,
        ticker: str,
        direction: str,
        entry_price: float,
        quantity: float,
        stop_loss: float | None = None,
        take_profit: float | None = None,
        strategy: str | None = None,
        raw_payload: dict[str, Any] | None = None,
    ) -> Trade:
        """Insert an open trade together with its entry event."""
        opened_at = utc_now()
        trade = Trade(
            ticker=ticker,
            direction=direction,
            entry_price=entry_price,
            quantity=quantity,
            stop_loss=stop_loss,
            take_profit=take_profit,
            strategy=strategy,
            status="open",
            opened_at=opened_at,
        )
        trade.events.append(
            TradeEvent(event_type="entry", price=entry_price, raw_payload=raw_payload, created_at=opened_at)
        )
        self.session.add(trade)
        self.session.commit()
        self.session.refresh(trade)
        return trade

    # -- reads --------------------------------------------------------------

    def get(self, trade_id: int) -> Trade | None:
        return self.session.get(Trade, trade_id)

    def open_trades_since(self, ticker: str, strategy: str | None, since: datetime) -> list[Trade]:
        """Open trades for (ticker, strategy) opened at or after ``since``, in insertion order.

        Ordered by id rather than opened_at: the timestamp is taken before the
        insert, so a slower racer can carry an earlier opened_at than a row
        that was already committed and reported as opened.
        """
        stmt = (
            select(Trade)
            .where(Trade.ticker == ticker)
            .where(_strategy_clause(strategy))
            .where(Trade.status == "open")
            .where(Trade.opened_at >= since)
            .order_by(Trade.id)
        )
        return list(self.session.exec(stmt).all())

    def open_trades_for_ticker(self, ticker: str) -> list[Trade]:
        stmt = (
            select(Trade)
            .where(Trade.ticker == ticker)
            .where(Trade.status == "open")
            .order_by(Trade.opened_at, Trade.id)
        )
        return list(self.session.exec(stmt).all())

    def recent_exit_event(
        self,
        ticker: str,
        strategy: str | None,
        event_type: str,
        since: datetime,
    ) -> TradeEvent | None:
        """Most recent exit event of ``event_type`` for the key since ``since``.

        Without a strategy the lookup spans every strategy on the ticker, since
        such a signal may have closed any of them.
        """
        stmt = (
            select(TradeEvent)
            .join(Trade, TradeEvent.trade_id == Trade.id)
            .where(Trade.ticker == ticker)
            .where(TradeEvent.event_type == event_type)
            .where(TradeEvent.created_at >= since)
            .order_by(TradeEvent.created_at.desc())
        )
        if strategy is not None:
            stmt = stmt.where(Trade.strategy == strategy)
        return self.session.exec(stmt).first()

    def recently_closed(
        self,
        ticker: str,
        strategy: str | None,
        exit_reason: str,
        since: datetime,
    ) -> Trade | None:
        stmt = (
            select(Trade)
            .where(Trade.ticker == ticker)
            .where(Trade.status == "closed")
            .where(Trade.exit_reason == exit_reason)
            .where(Trade.closed_at >= since)
            .order_by(Trade.closed_at.desc())
        )
        if strategy is not None:
            stmt = stmt.where(Trade.strategy == strategy)
        return self.session.exec(stmt).first()

    def list_trades(
        self,
        *,
        ticker: str | None = None,
        status: str | None = None,
        strategy: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Trade], int]:
        """Page of trades (newest first) plus the total count for the filter."""
        stmt = select(Trade)
        count_stmt = select(func.count()).select_from(Trade)
        for column, value in ((Trade.ticker, ticker), (Trade.status, status), (Trade.strategy, strategy)):
            if value is not None:
                stmt = stmt.where(column == value)
                count_stmt = count_stmt.where(column == value)
        stmt = stmt.order_by(Trade.opened_at.desc(), Trade.id.desc()).offset(offset).limit(limit)
        return list(self.session.exec(stmt).all()), self.session.exec(count_stmt).one()

    def all_trades(
        self,
        *,
        ticker: str | None = None,
        status: str | None = None,
        strategy: str | None = None,
        opened_from: datetime | None = None,
        opened_until: datetime | None = None,
    ) -> list[Trade]:
        stmt = select(Trade)
        if ticker is not None:
            stmt = stmt.where(Trade.ticker == ticker)
        if status is not None:
            stmt = stmt.where(Trade.status == status)
        if strategy is not None:
            stmt = stmt.where(Trade.strategy == strategy)
        if opened_from is not None:
            stmt = stmt.where(Trade.opened_at >= opened_from)
        if opened_until is not None:
            stmt = stmt.where(Trade.opened_at < opened_until)
        return list(self.session.exec(stmt.order_by(Trade.opened_at)).all())

    def distinct_tickers(self) -> list[str]:
        stmt = select(Trade.ticker).distinct().order_by(Trade.ticker)
        return list(self.session.exec(stmt).all())

    # -- mutations ----------------------------------------------------------

    def close_trade(
        self,
        trade_id: int,
        *,
        exit_price: float,
        exit_reason: str,
        pnl: float,
        pnl_percent: float,
        event_type: str,
        raw_payload: dict[str, Any] | None = None,
    ) -> bool:
        """Close an open trade and append its exit event.

        The status guard in the UPDATE makes this a compare-and-set: returns
        False (and writes nothing) when the trade is no longer open.
        """
        closed_at = utc_now()
        result = self.session.exec(  # type: ignore[call-overload]
            update(Trade)
            .where(Trade.id == trade_id)
            .where(Trade.status == "open")
            .values(
                status="closed",
                exit_price=exit_price,
                exit_reason=exit_reason,
                pnl=pnl,
                pnl_percent=pnl_percent,
                closed_at=closed_at,
            )
        )
        if result.rowcount != 1:
            self.session.rollback()
            return False

        self.session.add(
            TradeEvent(
                trade_id=trade_id,
                event_type=event_type,
                price=exit_price,
                raw_payload=raw_payload,
                created_at=closed_at,
            )
        )
        self.session.commit()
        return True

    def delete_trade(self, trade_id: int) -> bool:
        """Delete a trade and its events. Missing rows are not an error."""
        trade = self.session.get(Trade, trade_id)
        if trade is None:
            return False
        self.session.delete(trade)
        try:
            self.session.commit()
        except StaleDataError:
            # Removed by a concurrent request between our read and delete
            self.session.rollback()
            return False
        return True

    def refresh(self, trade: Trade) -> Trade:
        self.session.refresh(trade)
        return trade


def window_start(seconds: int) -> datetime:
    return utc_now() - timedelta(seconds=seconds)
