"""ForwardingConfig model — one broker-relay account that receives entry signals."""

from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column


class ForwardingConfig(SQLModel, table=True):
    __tablename__ = "forwarding_config"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    enabled: bool = True
    webhook_urls: list[str] = Field(default_factory=list, sa_column=Column(JSON))

    # {ticker: [strategy, ...]}; empty list = all strategies, missing ticker = not forwarded
    allowed_strategies: dict[str, list[str]] = Field(default_factory=dict, sa_column=Column(JSON))
    # {ticker: broker contract symbol}
    symbol_map: dict[str, str] = Field(default_factory=dict, sa_column=Column(JSON))

    risk_percentage: float = 100.0
    rounding_mode: str = "down"  # "up" or "down"
    paused_until: datetime | None = None

    token_encrypted: str = ""  # Fernet-encrypted relay token
    account_id: str = ""

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
