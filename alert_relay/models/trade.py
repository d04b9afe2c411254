"""Trade and TradeEvent models — one row per position lifecycle plus its audit trail."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column, ForeignKey, Integer
from sqlmodel import SQLModel, Field, Relationship


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    ticker: str = Field(index=True)
    direction: str = "long"  # "long" or "short"
    entry_price: float
    stop_loss: float | None = None
    take_profit: float | None = None
    quantity: float = 1.0
    strategy: str | None = Field(default=None, index=True)

    status: str = Field(default="open", index=True)  # "open" or "closed"
    exit_price: float | None = None
    exit_reason: str | None = None  # "take_profit", "stop_loss", "manual", "breakeven"
    pnl: float | None = None
    pnl_percent: float | None = None
    opened_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    closed_at: datetime | None = None

    events: list["TradeEvent"] = Relationship(
        back_populates="trade",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "TradeEvent.created_at",
        },
    )


class TradeEvent(SQLModel, table=True):
    __tablename__ = "trade_event"

    id: int | None = Field(default=None, primary_key=True)
    trade_id: int = Field(
        sa_column=Column(Integer, ForeignKey("trade.id", ondelete="CASCADE"), index=True, nullable=False)
    )
    event_type: str  # "entry", "take_profit", "stop_loss", "manual"
    price: float
    raw_payload: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    trade: Optional[Trade] = Relationship(back_populates="events")
