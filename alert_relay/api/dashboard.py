"""Dashboard API: per-strategy performance and ticker list."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from alert_relay.api.deps import get_current_user
from alert_relay.database import get_session
from alert_relay.services.repository import TradeRepository
from alert_relay.services.stats import strategy_stats
from alert_relay.utils.constants import STRATEGY_PERIODS
from alert_relay.utils.sessions import period_range

router = APIRouter(prefix="/api", tags=["dashboard"], dependencies=[Depends(get_current_user)])


@router.get("/strategies")
def strategies(period: str = "all", session: Session = Depends(get_session)):
    if period not in STRATEGY_PERIODS:
        raise HTTPException(status_code=422, detail=f"period must be one of {', '.join(STRATEGY_PERIODS)}")
    opened_from, opened_until = period_range(period)
    trades = TradeRepository(session).all_trades(opened_from=opened_from, opened_until=opened_until)
    return {"period": period, "strategies": strategy_stats(trades)}


@router.get("/tickers")
def tickers(session: Session = Depends(get_session)):
    return {"tickers": TradeRepository(session).distinct_tickers()}
