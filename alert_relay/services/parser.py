"""Payload normaliser: raw webhook bodies → canonical signals.

Two wire formats arrive on the same endpoint:

* a JSON object whose top-level fields are the signal, and
* a free-text alert line, either as the raw body or as the ``content`` field
  of a JSON object (chat-style alert templates).

Both are first read into a ``JsonSignal`` / ``TextSignal`` and then turned into
a single ``Signal`` by ``to_signal``; nothing downstream sees the raw body.
"""

import hmac
import json
import logging
import math
import re
from typing import Any

from pydantic import TypeAdapter, ValidationError

from alert_relay.errors import AuthError, ParseError, SignalValidationError
from alert_relay.schemas.signal import (
    Direction,
    JsonSignal,
    RawSignal,
    Signal,
    SignalAction,
    SignalKind,
    TextSignal,
)

logger = logging.getLogger(__name__)

_raw_adapter = TypeAdapter(RawSignal)

# ---------------------------------------------------------------------------
# Free-text patterns
# ---------------------------------------------------------------------------

_TICKER = r"[A-Z0-9!@#$%^&*_+\-=.:]+"
_NUMBER = r"(-?[\d,]*\.?\d+)"

# Optional leading token (emoji, bot name) before the ticker
_ENTRY_RE = re.compile(rf"^\s*(?:\S+\s+)?({_TICKER})\s+(BUY|SELL)\s+Signal\b", re.IGNORECASE)
_EXIT_TICKER_RE = re.compile(rf"^\s*(?:\S+\s+)?({_TICKER})\s+(?:BUY|SELL|LONG|SHORT)\b", re.IGNORECASE)
_SKIPPED_RE = re.compile(r"\bSKIPPED\b", re.IGNORECASE)

_ENTRY_PRICE_RE = re.compile(rf"\bEntry:\s*{_NUMBER}", re.IGNORECASE)
_SL_RE = re.compile(rf"\bSL\d*:\s*{_NUMBER}", re.IGNORECASE)
_TP_RE = re.compile(rf"\bTP\d*:\s*{_NUMBER}", re.IGNORECASE)
_CONTRACTS_RE = re.compile(r"\bContracts:\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_STRATEGY_RE = re.compile(r"\bStrategy:\s*([^|]+)", re.IGNORECASE)
_EXIT_PRICE_RE = re.compile(rf"\bExit:\s*{_NUMBER}", re.IGNORECASE)
_PNL_RE = re.compile(r"P&L:\s*([-+])?\s*\$?\s*(-?[\d,]*\.?\d+)", re.IGNORECASE)

# Spelled-out markers are tried before the terse tokens
_EXIT_MARKERS = (
    (SignalAction.TAKE_PROFIT, re.compile(r"\bTake\s+Profit\s+HIT\b", re.IGNORECASE)),
    (SignalAction.STOP_LOSS, re.compile(r"\bStop\s+Loss\s+HIT\b", re.IGNORECASE)),
    (SignalAction.TAKE_PROFIT, re.compile(r"\bTP\d*\s*HIT\b", re.IGNORECASE)),
    (SignalAction.STOP_LOSS, re.compile(r"\bSL\d*\s*HIT\b", re.IGNORECASE)),
    (SignalAction.TAKE_PROFIT, re.compile(r"\sTP(?:\d+)?\s*$")),
    (SignalAction.STOP_LOSS, re.compile(r"\sSL(?:\d+)?\s*$")),
)

# "Key: value" segment, e.g. "Strategy: TP" or "P&L: +$10"
_FIELD_RE = re.compile(r"^\s*[A-Za-z][\w&]*\s*:\s")


def _to_float(text: str) -> float:
    return float(text.replace(",", ""))


def _search_float(pattern: re.Pattern, text: str) -> float | None:
    match = pattern.search(text)
    return _to_float(match.group(1)) if match else None


def _extract_strategy(text: str) -> str | None:
    match = _STRATEGY_RE.search(text)
    if not match:
        return None
    return match.group(1).strip() or None


def _extract_pnl(text: str) -> float | None:
    match = _PNL_RE.search(text)
    if not match:
        return None
    value = _to_float(match.group(2))
    if match.group(1) == "-" and value > 0:
        value = -value
    return value


def _exit_action(text: str) -> SignalAction | None:
    """Exit type from the alert's marker segments, ignoring ``Key: value`` fields.

    The first segment is the header and is always considered, so tickers
    containing ``:`` (``BINANCE:BTCUSDT``) are not mistaken for fields.
    """
    header, *rest = text.split("|")
    segments = [header] + [s for s in rest if not _FIELD_RE.match(s)]
    for action, marker in _EXIT_MARKERS:
        if any(marker.search(s) for s in segments):
            return action
    return None


def parse_text_alert(text: str, secret: str | None = None) -> TextSignal:
    """Extract a signal from a free-text alert line.

    Raises ParseError when the line is not a recognised entry or exit alert.
    """
    content = text.strip()
    if not content:
        raise ParseError("Empty alert text")

    strategy = _extract_strategy(content)

    entry = _ENTRY_RE.search(content)
    if entry and not _SKIPPED_RE.search(content):
        price = _search_float(_ENTRY_PRICE_RE, content)
        if price is None:
            raise ParseError(f"Entry alert for {entry.group(1)} has no Entry: price")
        contracts = _CONTRACTS_RE.search(content)
        return TextSignal(
            text=content,
            secret=secret,
            action=SignalAction.ENTRY,
            ticker=entry.group(1),
            price=price,
            direction=Direction.LONG if entry.group(2).upper() == "BUY" else Direction.SHORT,
            stop_loss=_search_float(_SL_RE, content),
            take_profit=_search_float(_TP_RE, content),
            quantity=float(contracts.group(1)) if contracts else 1.0,
            strategy=strategy,
        )

    action = _exit_action(content)
    if action is None:
        raise ParseError("Unable to parse webhook content")

    ticker = _EXIT_TICKER_RE.search(content)
    price = _search_float(_EXIT_PRICE_RE, content)
    if not ticker or price is None:
        raise ParseError(f"{action.value} alert is missing its ticker or Exit: price")
    return TextSignal(
        text=content,
        secret=secret,
        action=action,
        ticker=ticker.group(1),
        price=price,
        pnl=_extract_pnl(content),
        strategy=strategy,
    )


def read_payload(body: bytes | str) -> JsonSignal | TextSignal:
    """Decide the wire format of a webhook body and read it.

    Free text applies when the body is not JSON, or is a JSON object with a
    string ``content`` field. Any other JSON object is taken field-by-field.
    """
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body

    try:
        data = json.loads(text)
    except ValueError:
        return parse_text_alert(text)

    if not isinstance(data, dict):
        raise ParseError("JSON payload must be an object")

    content = data.get("content")
    if isinstance(content, str):
        secret = data.get("secret")
        return parse_text_alert(content, secret=secret if isinstance(secret, str) else None)

    fields = {k: v for k, v in data.items() if k not in ("source", "raw")}
    try:
        signal = _raw_adapter.validate_python({**fields, "source": "json"})
    except ValidationError as e:
        raise SignalValidationError(_describe_errors(e)) from e
    signal.raw = _snapshot(data)
    return signal


def check_secret(raw: JsonSignal | TextSignal, expected: str) -> None:
    """Compare the payload secret with the configured one.

    Free-text alerts carry no secret and are trusted with the server's own.
    """
    if not expected:
        return
    provided = raw.secret
    if provided is None and raw.source == "text":
        return
    if provided is None or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise AuthError("Unauthorized: Invalid webhook secret")


def _decide_kind(action: SignalAction, order_type: str | None) -> SignalKind:
    ot = (order_type or "").strip().lower()
    if action == SignalAction.CANCEL or ot == "cancel":
        return SignalKind.CANCEL
    if action == SignalAction.ORDER_FILLED or ot in ("order_filled", "filled"):
        return SignalKind.ORDER_FILLED
    if action == SignalAction.ENTRY and ot in ("lmt", "limit"):
        return SignalKind.LIMIT_ENTRY
    return SignalKind(action.value)


def _parse_direction(value: str | None) -> Direction | None:
    if value is None or not value.strip():
        return None
    normalized = value.strip().lower()
    if normalized in ("long", "buy"):
        return Direction.LONG
    if normalized in ("short", "sell"):
        return Direction.SHORT
    raise SignalValidationError(f"Invalid direction: {value}")


def _check_numbers(raw: JsonSignal | TextSignal) -> None:
    for name in ("price", "take_profit", "stop_loss", "quantity", "pnl"):
        value = getattr(raw, name)
        if value is not None and not math.isfinite(value):
            raise SignalValidationError(f"{name} must be a finite number")
    if raw.quantity is not None and raw.quantity < 0:
        raise SignalValidationError("quantity must not be negative")


def to_signal(raw: JsonSignal | TextSignal) -> Signal:
    """Validate the required fields and build the canonical signal."""
    action_value = raw.action.value if isinstance(raw.action, SignalAction) else raw.action
    ticker = (raw.ticker or "").strip()

    missing = [
        name
        for name, present in (
            ("action", bool(action_value and str(action_value).strip())),
            ("ticker", bool(ticker)),
            ("price", raw.price is not None),
        )
        if not present
    ]
    if missing:
        raise SignalValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        action = SignalAction(str(action_value).strip().lower())
    except ValueError:
        raise SignalValidationError(f"Unknown action: {action_value}") from None

    _check_numbers(raw)
    if raw.price <= 0:
        raise SignalValidationError("price must be a positive number")

    if isinstance(raw, TextSignal):
        direction = raw.direction
        kind = SignalKind(action.value)
        snapshot = {"content": raw.text}
    else:
        direction = _parse_direction(raw.direction)
        kind = _decide_kind(action, raw.order_type)
        snapshot = raw.raw

    if direction is None and kind in (SignalKind.ENTRY, SignalKind.LIMIT_ENTRY):
        direction = Direction.LONG

    strategy = (raw.strategy or "").strip() or None

    return Signal(
        action=action,
        kind=kind,
        ticker=ticker,
        price=raw.price,
        direction=direction,
        take_profit=raw.take_profit,
        stop_loss=raw.stop_loss,
        quantity=raw.quantity or None,
        pnl=raw.pnl,
        strategy=strategy,
        source=raw.source,
        raw=snapshot,
    )


def normalize_payload(body: bytes | str, expected_secret: str = "") -> Signal:
    """Full ingestion boundary: read, authenticate, validate."""
    raw = read_payload(body)
    check_secret(raw, expected_secret)
    return to_signal(raw)


def describe_payload(body: bytes | str, content_type: str = "") -> dict[str, Any]:
    """Dry-run report of how a body would be parsed. No secret check, no side effects."""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    report: dict[str, Any] = {
        "contentType": content_type,
        "rawBody": text,
        "rawBodyLength": len(text),
    }
    try:
        data = json.loads(text)
        report["isJson"] = True
        if isinstance(data, dict) and isinstance(data.get("content"), str):
            report["parsingMethod"] = "JSON with content field"
            report["contentField"] = data["content"]
        else:
            report["parsingMethod"] = "Direct JSON payload"
    except ValueError:
        report["isJson"] = False
        report["parsingMethod"] = "Plain text parsing"

    try:
        signal = to_signal(read_payload(text))
    except (ParseError, SignalValidationError) as e:
        report["parseSuccess"] = False
        report["error"] = str(e)
        return report

    report["parseSuccess"] = True
    report["parsedPayload"] = signal.summary()
    return report


def _snapshot(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k != "secret"}


def _describe_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "json")
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid"))
    return "Invalid payload: " + "; ".join(parts)
