"""Pydantic schemas for the trades API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TradeEventRead(BaseModel):
    id: int
    event_type: str
    price: float
    raw_payload: dict[str, Any] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TradeRead(BaseModel):
    id: int
    ticker: str
    direction: str
    entry_price: float
    stop_loss: float | None
    take_profit: float | None
    quantity: float
    strategy: str | None
    status: str
    exit_price: float | None
    exit_reason: str | None
    pnl: float | None
    pnl_percent: float | None
    opened_at: datetime
    closed_at: datetime | None

    model_config = {"from_attributes": True}


class TradeDetail(TradeRead):
    events: list[TradeEventRead] = []


class TradeComplete(BaseModel):
    exit_price: float = Field(gt=0)
    pnl: float
    exit_reason: str = "manual"
