"""ActivityLog model — structured operator log of ingestion and forwarding events."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class ActivityLog(SQLModel, table=True):
    __tablename__ = "activity_log"

    id: int | None = Field(default=None, primary_key=True)
    level: str = Field(index=True)  # "debug", "info", "warn", "error"
    category: str = Field(index=True)  # "webhook", "lifecycle", "forwarding", "telegram", "broker", "system"
    message: str
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
