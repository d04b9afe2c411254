"""Trade history API."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from alert_relay.api.deps import get_current_user
from alert_relay.database import get_session
from alert_relay.errors import TradeNotFoundError, TradeStateError
from alert_relay.schemas.trade import TradeComplete, TradeDetail, TradeRead
from alert_relay.services.broadcast import broadcaster
from alert_relay.services.lifecycle import TradeLifecycleManager
from alert_relay.services.repository import TradeRepository
from alert_relay.services.stats import summary_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trades", tags=["trades"], dependencies=[Depends(get_current_user)])


@router.get("")
def list_trades(
    ticker: str | None = None,
    status: str | None = None,
    strategy: str | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_session),
):
    repo = TradeRepository(session)
    trades, total = repo.list_trades(ticker=ticker, status=status, strategy=strategy, limit=limit, offset=offset)
    return {
        "trades": [TradeDetail.model_validate(t) for t in trades],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
        "stats": summary_stats(repo.all_trades(ticker=ticker, status=status, strategy=strategy)),
    }


@router.get("/{trade_id}", response_model=TradeDetail)
def get_trade(trade_id: int, session: Session = Depends(get_session)):
    trade = TradeRepository(session).get(trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    return trade


@router.patch("/{trade_id}", response_model=TradeRead)
def complete_trade(trade_id: int, body: TradeComplete, session: Session = Depends(get_session)):
    """Manually close an open trade with operator-supplied exit price and P&L."""
    manager = TradeLifecycleManager(TradeRepository(session))
    try:
        trade = manager.complete_manually(
            trade_id, exit_price=body.exit_price, pnl=body.pnl, exit_reason=body.exit_reason
        )
    except TradeNotFoundError:
        raise HTTPException(status_code=404, detail="Trade not found")
    except TradeStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    result = TradeRead.model_validate(trade)
    broadcaster.broadcast("trade_closed", {"trade": result.model_dump(mode="json")})
    return result


@router.delete("/{trade_id}")
def delete_trade(trade_id: int, session: Session = Depends(get_session)):
    if not TradeRepository(session).delete_trade(trade_id):
        raise HTTPException(status_code=404, detail="Trade not found")
    logger.info(
        f"Trade deleted [ID: {trade_id}]",
        extra={"category": "system", "details": {"tradeId": trade_id}},
    )
    broadcaster.broadcast("trade_deleted", {"tradeId": trade_id})
    return {"ok": True}
