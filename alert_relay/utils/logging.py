"""Logging setup: console output plus the persisted activity log."""

import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session

from alert_relay.config import settings
from alert_relay.models.activity_log import ActivityLog

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


class ActivityLogHandler(logging.Handler):
    """Persists records logged with a ``category`` extra into activity_log.

    Records without a category are console-only.
    """

    def __init__(self, engine: Engine | None = None, level: int = logging.INFO):
        super().__init__(level)
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            from alert_relay.database import engine
            self._engine = engine
        return self._engine

    def emit(self, record: logging.LogRecord) -> None:
        category = getattr(record, "category", None)
        if category is None:
            return
        try:
            entry = ActivityLog(
                level=_LEVEL_NAMES.get(record.levelno, record.levelname.lower()),
                category=category,
                message=record.getMessage(),
                details=getattr(record, "details", None),
            )
            with Session(self.engine) as session:
                session.add(entry)
                session.commit()
        except Exception:
            self.handleError(record)


def setup_logging(engine: Engine | None = None) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    root = logging.getLogger()
    if not any(isinstance(h, ActivityLogHandler) for h in root.handlers):
        root.addHandler(ActivityLogHandler(engine))

    # Third-party request logging is noise at INFO
    for name in ("httpx", "telegram", "apscheduler.executors.default"):
        logging.getLogger(name).setLevel(logging.WARNING)
