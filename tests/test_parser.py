"""Tests for webhook payload normalisation: JSON bodies, free-text alerts, secrets."""

import json

import pytest

from alert_relay.errors import AuthError, ParseError, SignalValidationError
from alert_relay.schemas.signal import Direction, JsonSignal, SignalAction, SignalKind, TextSignal
from alert_relay.services.parser import (
    check_secret,
    describe_payload,
    normalize_payload,
    parse_text_alert,
    read_payload,
    to_signal,
)

SECRET = "s3cret"


def _body(**fields) -> bytes:
    return json.dumps(fields).encode()


# ---------------------------------------------------------------------------
# 1. Free-text alerts
# ---------------------------------------------------------------------------

class TestTextEntry:
    def test_full_entry_line(self):
        raw = parse_text_alert(
            "CL1! BUY Signal | Entry: 68.50 | SL: 68.00 | TP: 69.50 | Contracts: 2 | Strategy: CL-5M"
        )
        signal = to_signal(raw)
        assert signal.action == SignalAction.ENTRY
        assert signal.kind == SignalKind.ENTRY
        assert signal.ticker == "CL1!"
        assert signal.price == 68.5
        assert signal.direction == Direction.LONG
        assert signal.stop_loss == 68.0
        assert signal.take_profit == 69.5
        assert signal.quantity == 2
        assert signal.strategy == "CL-5M"
        assert signal.source == "text"

    def test_sell_is_short(self):
        raw = parse_text_alert("MNQ1! SELL Signal | Entry: 21,500.25 | SL2: 21550")
        assert raw.direction == Direction.SHORT
        assert raw.price == 21500.25
        assert raw.stop_loss == 21550

    def test_leading_emoji_is_skipped(self):
        raw = parse_text_alert("🚀 ES1! BUY Signal | Entry: 5000")
        assert raw.ticker == "ES1!"

    def test_contracts_default_to_one(self):
        raw = parse_text_alert("ES1! BUY Signal | Entry: 5000")
        assert raw.quantity == 1.0
        assert raw.strategy is None

    def test_entry_without_price_rejected(self):
        with pytest.raises(ParseError):
            parse_text_alert("ES1! BUY Signal | SL: 4990")

    def test_skipped_entry_is_not_an_entry(self):
        with pytest.raises(ParseError):
            parse_text_alert("ES1! BUY Signal SKIPPED | Entry: 5000")


class TestTextExit:
    def test_take_profit_hit(self):
        raw = parse_text_alert("MNQ1! LONG Take Profit HIT | Exit: 21550 | P&L: +$100.00 | Strategy: S1")
        assert raw.action == SignalAction.TAKE_PROFIT
        assert raw.ticker == "MNQ1!"
        assert raw.price == 21550
        assert raw.pnl == 100.0
        assert raw.strategy == "S1"

    def test_stop_loss_with_negative_pnl(self):
        raw = parse_text_alert("MNQ1! SHORT Stop Loss HIT | Exit: 21600 | P&L: -$50")
        assert raw.action == SignalAction.STOP_LOSS
        assert raw.pnl == -50.0

    def test_terse_tp_marker(self):
        raw = parse_text_alert("GC1! LONG TP2 | Exit: 2400.5")
        assert raw.action == SignalAction.TAKE_PROFIT
        assert raw.price == 2400.5

    @pytest.mark.parametrize(
        "line, action",
        [
            ("MNQ1! LONG Stop Loss HIT | Exit: 21450 | Strategy: TP", SignalAction.STOP_LOSS),
            ("MNQ1! LONG Take Profit HIT | Exit: 21550 | Strategy: SL", SignalAction.TAKE_PROFIT),
            ("MNQ1! LONG SL | Exit: 21450 | Strategy: TP", SignalAction.STOP_LOSS),
        ],
    )
    def test_strategy_label_does_not_decide_exit_type(self, line, action):
        raw = parse_text_alert(line)
        assert raw.action == action
        assert raw.strategy in ("TP", "SL")

    def test_spelled_out_marker_wins_over_terse_token(self):
        raw = parse_text_alert("MNQ1! LONG TP Stop Loss HIT | Exit: 21450")
        assert raw.action == SignalAction.STOP_LOSS

    def test_ticker_with_exchange_prefix(self):
        raw = parse_text_alert("BINANCE:BTCUSDT LONG TP | Exit: 65000")
        assert raw.action == SignalAction.TAKE_PROFIT
        assert raw.ticker == "BINANCE:BTCUSDT"

    def test_strategy_label_with_spaces(self):
        raw = parse_text_alert("CL1! SHORT Take Profit HIT | Exit: 67.5 | Strategy: CL 5M  | P&L: +$40")
        assert raw.strategy == "CL 5M"
        assert raw.pnl == 40.0

    def test_exit_without_price_rejected(self):
        with pytest.raises(ParseError):
            parse_text_alert("GC1! LONG Take Profit HIT")

    def test_unrecognised_text_rejected(self):
        with pytest.raises(ParseError, match="Unable to parse"):
            parse_text_alert("hello world")

    def test_empty_text_rejected(self):
        with pytest.raises(ParseError):
            parse_text_alert("   ")


# ---------------------------------------------------------------------------
# 2. Format detection
# ---------------------------------------------------------------------------

class TestReadPayload:
    def test_json_object_is_structured(self):
        raw = read_payload(_body(action="entry", ticker="ES1!", price=5000, secret=SECRET))
        assert isinstance(raw, JsonSignal)
        assert "secret" not in raw.raw
        assert raw.raw["ticker"] == "ES1!"

    def test_content_field_is_free_text(self):
        raw = read_payload(_body(content="ES1! BUY Signal | Entry: 5000", secret=SECRET))
        assert isinstance(raw, TextSignal)
        assert raw.secret == SECRET

    def test_plain_body_is_free_text(self):
        raw = read_payload(b"ES1! SELL Signal | Entry: 5000")
        assert isinstance(raw, TextSignal)

    def test_json_array_rejected(self):
        with pytest.raises(ParseError):
            read_payload(b"[1, 2, 3]")

    def test_camel_case_aliases(self):
        raw = read_payload(_body(action="entry", ticker="ES1!", price="5,000", takeProfit="5010", stopLoss=""))
        assert raw.price == 5000
        assert raw.take_profit == 5010
        assert raw.stop_loss is None

    def test_non_numeric_price_is_validation_error(self):
        with pytest.raises(SignalValidationError):
            read_payload(_body(action="entry", ticker="ES1!", price="abc"))


# ---------------------------------------------------------------------------
# 3. Canonical signal
# ---------------------------------------------------------------------------

class TestToSignal:
    def test_missing_fields_listed(self):
        with pytest.raises(SignalValidationError, match="ticker, price"):
            normalize_payload(_body(action="entry"))

    def test_unknown_action(self):
        with pytest.raises(SignalValidationError, match="Unknown action"):
            normalize_payload(_body(action="flip", ticker="ES1!", price=1))

    def test_non_positive_price(self):
        with pytest.raises(SignalValidationError):
            normalize_payload(_body(action="entry", ticker="ES1!", price=0))

    @pytest.mark.parametrize(
        "body",
        [
            '{"action":"entry","ticker":"ES1!","price":NaN}',
            '{"action":"entry","ticker":"ES1!","price":Infinity}',
            '{"action":"entry","ticker":"ES1!","price":5000,"stopLoss":-Infinity}',
            '{"action":"take_profit","ticker":"ES1!","price":5000,"pnl":NaN}',
            '{"action":"entry","ticker":"ES1!","price":5000,"quantity":NaN}',
        ],
    )
    def test_non_finite_numbers_rejected(self, body):
        with pytest.raises(SignalValidationError, match="finite"):
            normalize_payload(body)

    def test_negative_quantity_rejected(self):
        with pytest.raises(SignalValidationError, match="quantity"):
            normalize_payload(_body(action="entry", ticker="ES1!", price=5000, quantity=-3))

    def test_zero_quantity_falls_back_to_default(self):
        signal = normalize_payload(_body(action="entry", ticker="ES1!", price=5000, quantity=0))
        assert signal.quantity is None

    def test_entry_direction_defaults_long(self):
        signal = normalize_payload(_body(action="entry", ticker="ES1!", price=5000))
        assert signal.direction == Direction.LONG

    def test_buy_sell_aliases(self):
        signal = normalize_payload(_body(action="entry", ticker="ES1!", price=5000, direction="SELL"))
        assert signal.direction == Direction.SHORT

    def test_invalid_direction(self):
        with pytest.raises(SignalValidationError):
            normalize_payload(_body(action="entry", ticker="ES1!", price=5000, direction="sideways"))

    def test_exit_has_no_default_direction(self):
        signal = normalize_payload(_body(action="take_profit", ticker="ES1!", price=5000))
        assert signal.kind == SignalKind.TAKE_PROFIT
        assert signal.direction is None

    def test_blank_strategy_becomes_none(self):
        signal = normalize_payload(_body(action="entry", ticker="ES1!", price=5000, strategy="  "))
        assert signal.strategy is None

    @pytest.mark.parametrize(
        "fields,kind",
        [
            ({"action": "entry", "orderType": "limit"}, SignalKind.LIMIT_ENTRY),
            ({"action": "cancel"}, SignalKind.CANCEL),
            ({"action": "order_filled"}, SignalKind.ORDER_FILLED),
            ({"action": "entry", "orderType": "market"}, SignalKind.ENTRY),
        ],
    )
    def test_kind_decided_from_action_and_order_type(self, fields, kind):
        signal = normalize_payload(_body(ticker="ES1!", price=5000, **fields))
        assert signal.kind == kind

    def test_summary_omits_raw_and_nulls(self):
        signal = normalize_payload(_body(action="entry", ticker="ES1!", price=5000))
        summary = signal.summary()
        assert "raw" not in summary
        assert "pnl" not in summary
        assert summary["kind"] == "entry"


# ---------------------------------------------------------------------------
# 4. Secret check
# ---------------------------------------------------------------------------

class TestSecret:
    def test_matching_secret(self):
        signal = normalize_payload(_body(action="entry", ticker="ES1!", price=1, secret=SECRET), SECRET)
        assert signal.ticker == "ES1!"

    def test_wrong_secret(self):
        with pytest.raises(AuthError) as exc:
            normalize_payload(_body(action="entry", ticker="ES1!", price=1, secret="nope"), SECRET)
        assert exc.value.status_code == 401

    def test_json_without_secret_rejected(self):
        with pytest.raises(AuthError):
            normalize_payload(_body(action="entry", ticker="ES1!", price=1), SECRET)

    def test_plain_text_is_trusted(self):
        signal = normalize_payload(b"ES1! BUY Signal | Entry: 5000", SECRET)
        assert signal.ticker == "ES1!"

    def test_content_with_wrong_secret_rejected(self):
        with pytest.raises(AuthError):
            normalize_payload(_body(content="ES1! BUY Signal | Entry: 5000", secret="nope"), SECRET)

    def test_no_configured_secret_accepts_anything(self):
        raw = read_payload(_body(action="entry", ticker="ES1!", price=1, secret="whatever"))
        check_secret(raw, "")


# ---------------------------------------------------------------------------
# 5. Dry run
# ---------------------------------------------------------------------------

def test_describe_payload_reports_success():
    report = describe_payload(b'{"content": "ES1! BUY Signal | Entry: 5000"}', "application/json")
    assert report["isJson"] is True
    assert report["parsingMethod"] == "JSON with content field"
    assert report["parseSuccess"] is True
    assert report["parsedPayload"]["ticker"] == "ES1!"


def test_describe_payload_reports_failure():
    report = describe_payload(b"not an alert", "text/plain")
    assert report["isJson"] is False
    assert report["parseSuccess"] is False
    assert "error" in report
