"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from alert_relay.config import settings
from alert_relay.database import create_db_and_tables
from alert_relay.errors import WebhookError
from alert_relay.utils.logging import setup_logging
from alert_relay.api import auth, dashboard, forwarding, logs, system, trades, webhook

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()
    from alert_relay.engine.scheduler import start_scheduler, stop_scheduler
    start_scheduler()

    # Start Telegram bot if configured
    telegram_started = False
    if settings.telegram_bot_token:
        from alert_relay.forwarding.telegram import init_bot
        try:
            await init_bot()
            telegram_started = True
        except Exception as e:
            logger.error(f"Telegram bot failed to initialize: {e}", exc_info=True)

    logger.info("Alert relay started", extra={"category": "system", "details": {}})

    yield

    if telegram_started:
        from alert_relay.forwarding.telegram import shutdown_bot
        await shutdown_bot()
    stop_scheduler()


app = FastAPI(
    title="Alert Relay",
    description="Trading alert webhook ingestion, trade tracking and signal forwarding",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WebhookError)
async def webhook_error_handler(request: Request, exc: WebhookError):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


# Mount routers
app.include_router(auth.router)
app.include_router(webhook.router)
app.include_router(trades.router)
app.include_router(dashboard.router)
app.include_router(forwarding.router)
app.include_router(logs.router)
app.include_router(system.router)
