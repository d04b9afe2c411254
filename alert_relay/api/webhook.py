"""Webhook ingestion API: alert payloads in, trade lifecycle and forwarding out."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from alert_relay.config import settings
from alert_relay.database import get_session
from alert_relay.errors import WebhookError
from alert_relay.forwarding.broker_relay import load_broker_targets
from alert_relay.forwarding.router import ForwardingRouter, build_forwarded_signal
from alert_relay.schemas.signal import SignalKind
from alert_relay.schemas.trade import TradeRead
from alert_relay.services.broadcast import broadcaster
from alert_relay.services.lifecycle import OutcomeStatus, TradeLifecycleManager
from alert_relay.services.parser import describe_payload, normalize_payload
from alert_relay.services.repository import TradeRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhook"])


def get_forwarding_router() -> ForwardingRouter:
    return ForwardingRouter.from_settings(settings)


def _process(body: bytes, session: Session):
    """Blocking part of a webhook request: normalise, apply, snapshot for forwarding."""
    signal = normalize_payload(body, settings.webhook_secret)
    logger.info(
        f"Webhook signal: {signal.kind.value} {signal.ticker} @ {signal.price} (strategy={signal.strategy})",
        extra={"category": "webhook", "details": signal.summary()},
    )

    manager = TradeLifecycleManager(TradeRepository(session), settings.dedup_window_seconds)
    outcome = manager.process(signal)

    fwd = build_forwarded_signal(signal, outcome)
    targets = load_broker_targets(session) if fwd is not None and fwd.kind == SignalKind.ENTRY else []
    trade = TradeRead.model_validate(outcome.trade).model_dump(mode="json") if outcome.trade is not None else None
    return outcome, fwd, targets, trade


@router.post("")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    forwarding: ForwardingRouter = Depends(get_forwarding_router),
):
    body = await request.body()
    try:
        outcome, fwd, targets, trade = await run_in_threadpool(_process, body, session)
    except WebhookError as e:
        logger.warning(
            f"Webhook rejected ({e.status_code}): {e}",
            extra={"category": "webhook", "details": {"error": str(e), "bodyLength": len(body)}},
        )
        raise
    except Exception as e:
        logger.error(
            f"Error processing webhook: {e}",
            exc_info=True,
            extra={"category": "webhook", "details": {"error": str(e)}},
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(e)},
        )

    if outcome.status in (OutcomeStatus.OPENED, OutcomeStatus.CLOSED):
        event = "trade_opened" if outcome.status == OutcomeStatus.OPENED else "trade_closed"
        broadcaster.broadcast(event, {"trade": trade})

    if fwd is not None:
        background_tasks.add_task(forwarding.forward, fwd, targets)

    return {
        "success": True,
        "message": outcome.message,
        "tradeId": outcome.trade_id,
        "outcome": outcome.status.value,
    }


@router.post("/test")
async def test_webhook(request: Request):
    """Dry run: report how a body would be parsed without touching trades."""
    body = await request.body()
    return {
        "success": True,
        "debug": describe_payload(body, request.headers.get("content-type", "")),
    }


@router.get("/test")
def webhook_test_info():
    return {
        "message": "POST a webhook body here to see how it would be parsed. Nothing is stored or forwarded.",
        "examples": {
            "json": {
                "secret": "<webhook secret>",
                "action": "entry",
                "ticker": "MNQ1!",
                "price": 21500,
                "direction": "long",
                "takeProfit": 21550,
                "stopLoss": 21450,
                "quantity": 2,
                "strategy": "S1",
            },
            "text": "CL1! BUY Signal | Entry: 68.50 | SL: 68.00 | TP: 69.50 | Contracts: 2 | Strategy: CL-5M",
            "jsonContent": {"content": "MNQ1! LONG Take Profit HIT | Exit: 21550 | P&L: +$100 | Strategy: S1"},
        },
    }
