"""Pydantic schemas for the forwarding config API."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator


def _validate_urls(urls: list[str]) -> list[str]:
    cleaned = []
    for url in urls:
        url = url.strip()
        if not url:
            continue
        if not (url.startswith("http://") or url.startswith("https://")):
            raise ValueError(f"{url!r} must start with http:// or https://")
        cleaned.append(url)
    return cleaned


class ForwardingConfigCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    enabled: bool = True
    webhook_urls: list[str] = Field(default_factory=list)
    allowed_strategies: dict[str, list[str]] = Field(default_factory=dict)
    symbol_map: dict[str, str] = Field(default_factory=dict)
    risk_percentage: float = Field(default=100.0, gt=0, le=1000)
    rounding_mode: Literal["up", "down"] = "down"
    token: str = ""  # Plain relay token; encrypted before storage
    account_id: str = ""

    @field_validator("name")
    @classmethod
    def _trim_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("webhook_urls")
    @classmethod
    def _check_urls(cls, value: list[str]) -> list[str]:
        return _validate_urls(value)


class ForwardingConfigUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    enabled: bool | None = None
    webhook_urls: list[str] | None = None
    allowed_strategies: dict[str, list[str]] | None = None
    symbol_map: dict[str, str] | None = None
    risk_percentage: float | None = Field(default=None, gt=0, le=1000)
    rounding_mode: Literal["up", "down"] | None = None
    token: str | None = None  # If provided, re-encrypts
    account_id: str | None = None

    @field_validator("webhook_urls")
    @classmethod
    def _check_optional_urls(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return _validate_urls(value)


class ForwardingConfigRead(BaseModel):
    id: int
    name: str
    enabled: bool
    webhook_urls: list[str]
    allowed_strategies: dict[str, list[str]]
    symbol_map: dict[str, str]
    risk_percentage: float
    rounding_mode: str
    paused_until: datetime | None
    account_id: str
    has_token: bool
    created_at: datetime
    updated_at: datetime
    # token is NEVER exposed

    model_config = {"from_attributes": True}
