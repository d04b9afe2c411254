"""Shared constants for signal handling and forwarding."""

# Futures trading day boundary (America/New_York)
SESSION_TIMEZONE = "America/New_York"
SESSION_START_HOUR = 18

# Live-update stream
SSE_HEARTBEAT_SECONDS = 30
SSE_QUEUE_SIZE = 100

# Logs API
MAX_LOG_PAGE_SIZE = 500

# Chat/dashboard destinations only relay these signal kinds
NOTIFY_KINDS = ("entry", "take_profit", "stop_loss")

STRATEGY_PERIODS = ["all", "daily", "previous_session", "weekly", "monthly"]
