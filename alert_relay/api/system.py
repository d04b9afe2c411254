"""System API: health check, scheduler status and the live event stream."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy import text
from sqlmodel import Session

from alert_relay.api.deps import get_current_user
from alert_relay.config import settings
from alert_relay.database import get_session
from alert_relay.services.broadcast import Broadcaster, broadcaster, format_sse
from alert_relay.utils.constants import SSE_HEARTBEAT_SECONDS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/api/system/health")
def health_check(session: Session = Depends(get_session)):
    try:
        session.exec(text("SELECT 1"))  # type: ignore[call-overload]
        database = "ok"
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        database = "error"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "destinations": {
            "telegram": bool(settings.telegram_bot_token and settings.telegram_chat_ids),
            "discord": bool(settings.discord_webhook_url),
            "externalDashboard": bool(settings.external_dashboard_url),
        },
        "webhookSecretConfigured": bool(settings.webhook_secret),
        "sseClients": broadcaster.client_count,
    }


@router.get("/api/system/scheduler", dependencies=[Depends(get_current_user)])
def scheduler_status():
    """Current scheduler state with job details."""
    from alert_relay.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


async def event_stream(
    request: Request,
    hub: Broadcaster,
    heartbeat: float = SSE_HEARTBEAT_SECONDS,
):
    queue = hub.register()
    try:
        yield format_sse("connected", {"message": "connected"})
        while True:
            if await request.is_disconnected():
                break
            try:
                message = await asyncio.wait_for(queue.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue
            yield message
    finally:
        hub.unregister(queue)


@router.get("/api/events", dependencies=[Depends(get_current_user)])
async def events(request: Request):
    return StreamingResponse(
        event_stream(request, broadcaster),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
