"""Signal schemas: the two inbound shapes and the canonical signal they normalise to."""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SignalAction(str, Enum):
    ENTRY = "entry"
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    CANCEL = "cancel"
    ORDER_FILLED = "order_filled"


class SignalKind(str, Enum):
    """Routing tag, decided once during normalisation."""

    ENTRY = "entry"
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    LIMIT_ENTRY = "limit_entry"
    CANCEL = "cancel"
    ORDER_FILLED = "order_filled"

    @property
    def is_exit(self) -> bool:
        return self in (SignalKind.TAKE_PROFIT, SignalKind.STOP_LOSS)

    @property
    def is_order_management(self) -> bool:
        return self in (SignalKind.LIMIT_ENTRY, SignalKind.CANCEL, SignalKind.ORDER_FILLED)


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"


class JsonSignal(BaseModel):
    """Structured webhook body: top-level fields are the signal."""

    source: Literal["json"] = "json"
    secret: str | None = None
    action: str | None = None
    ticker: str | None = None
    price: float | None = None
    direction: str | None = None
    take_profit: float | None = Field(default=None, alias="takeProfit")
    stop_loss: float | None = Field(default=None, alias="stopLoss")
    quantity: float | None = None
    pnl: float | None = None
    strategy: str | None = None
    order_type: str | None = Field(default=None, alias="orderType")
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("price", "take_profit", "stop_loss", "quantity", "pnl", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        # Alert templates substitute empty strings for unset placeholders
        if isinstance(value, str):
            value = value.strip().replace(",", "")
            return value or None
        return value


class TextSignal(BaseModel):
    """Fields extracted from a free-text alert line."""

    source: Literal["text"] = "text"
    secret: str | None = None
    text: str
    action: SignalAction
    ticker: str
    price: float
    direction: Direction | None = None
    take_profit: float | None = None
    stop_loss: float | None = None
    quantity: float | None = None
    pnl: float | None = None
    strategy: str | None = None


RawSignal = Annotated[Union[JsonSignal, TextSignal], Field(discriminator="source")]


class Signal(BaseModel):
    """Canonical signal consumed by the lifecycle manager and the router."""

    action: SignalAction
    kind: SignalKind
    ticker: str
    price: float
    direction: Direction | None = None
    take_profit: float | None = None
    stop_loss: float | None = None
    quantity: float | None = None
    pnl: float | None = None
    strategy: str | None = None
    source: Literal["json", "text"] = "json"
    raw: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def summary(self) -> dict[str, Any]:
        """Compact view used in log details and dry-run responses."""
        return self.model_dump(mode="json", exclude={"raw"}, exclude_none=True)
