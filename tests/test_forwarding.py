"""Tests for signal forwarding: routing decisions, broker relay payloads, delivery isolation."""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import requests
from telegram.error import TimedOut

from alert_relay.errors import DestinationError
from alert_relay.forwarding.broker_relay import (
    BrokerTarget,
    build_broker_payload,
    load_broker_targets,
    scale_quantity,
    skip_reason,
)
from alert_relay.forwarding.discord import build_discord_embed
from alert_relay.forwarding.external_dashboard import build_external_payload
from alert_relay.forwarding.http import post_json
from alert_relay.forwarding.router import ForwardedSignal, ForwardingRouter, build_forwarded_signal
from alert_relay.forwarding.telegram import format_telegram_message, send_telegram_message
from alert_relay.models.forwarding_config import ForwardingConfig
from alert_relay.schemas.signal import Signal, SignalAction, SignalKind
from alert_relay.services.encryption import encrypt
from alert_relay.services.lifecycle import LifecycleOutcome, OutcomeStatus

NOW = datetime(2025, 3, 12, 15, 30, tzinfo=timezone.utc)


def fwd_entry(**kw) -> ForwardedSignal:
    fields = dict(
        kind=SignalKind.ENTRY, action="entry", ticker="MNQ1!", price=21500.0, direction="long",
        take_profit=21550.0, stop_loss=21450.0, quantity=3.0, strategy="S1", trade_id=1,
    )
    fields.update(kw)
    return ForwardedSignal(**fields)


def fwd_exit(**kw) -> ForwardedSignal:
    fields = dict(
        kind=SignalKind.TAKE_PROFIT, action="take_profit", ticker="MNQ1!", price=21550.0,
        direction="long", quantity=2.0, strategy="S1", trade_id=1, entry_price=21500.0,
        pnl=100.0, pnl_percent=0.2326,
    )
    fields.update(kw)
    return ForwardedSignal(**fields)


def target(**kw) -> BrokerTarget:
    fields = dict(
        config_id=1, name="acct", enabled=True, webhook_urls=("https://relay.example/hook",),
        token="tok", account_id="A1", allowed_strategies={"MNQ1!": ["S1"]},
        symbol_map={"MNQ1!": "MNQM5"}, risk_percentage=100.0, rounding_mode="down",
    )
    fields.update(kw)
    return BrokerTarget(**fields)


def _ok_response():
    response = MagicMock()
    response.ok = True
    response.status_code = 200
    return response


# ---------------------------------------------------------------------------
# 1. Quantity scaling and relay filters
# ---------------------------------------------------------------------------

class TestScaleQuantity:
    def test_half_rounded_down(self):
        assert scale_quantity(3, 50, "down") == 1

    def test_half_rounded_up(self):
        assert scale_quantity(3, 50, "up") == 2

    def test_minimum_one_after_rounding(self):
        assert scale_quantity(1, 10, "down") == 1

    def test_exact_result_not_rounded_up(self):
        assert scale_quantity(4, 75, "up") == 3

    def test_missing_quantity_is_one(self):
        assert scale_quantity(None, 200, "down") == 2


class TestSkipReason:
    def test_eligible(self):
        assert skip_reason(fwd_entry(), target(), NOW) is None

    def test_disabled(self):
        assert skip_reason(fwd_entry(), target(enabled=False), NOW) == "disabled"

    def test_paused_until_future(self):
        reason = skip_reason(fwd_entry(), target(paused_until=NOW + timedelta(hours=1)), NOW)
        assert reason.startswith("paused")

    def test_pause_expired(self):
        assert skip_reason(fwd_entry(), target(paused_until=NOW - timedelta(minutes=1)), NOW) is None

    def test_naive_pause_treated_as_utc(self):
        naive = (NOW + timedelta(hours=1)).replace(tzinfo=None)
        assert skip_reason(fwd_entry(), target(paused_until=naive), NOW) is not None

    def test_exits_not_relayed(self):
        assert "not relayed" in skip_reason(fwd_exit(), target(), NOW)

    def test_ticker_not_in_allow_list(self):
        assert "allow-list" in skip_reason(fwd_entry(ticker="ES1!"), target(), NOW)

    def test_strategy_not_allowed(self):
        assert "not allowed" in skip_reason(fwd_entry(strategy="S2"), target(), NOW)

    def test_empty_strategy_list_allows_all(self):
        assert skip_reason(fwd_entry(strategy="S2"), target(allowed_strategies={"MNQ1!": []}), NOW) is None

    def test_missing_credentials(self):
        assert skip_reason(fwd_entry(), target(token=""), NOW) == "token or account ID not configured"


def test_broker_payload():
    payload = build_broker_payload(fwd_entry(direction="short"), target(risk_percentage=50), NOW)
    assert payload["symbol"] == "MNQM5"
    assert payload["data"] == "sell"
    assert payload["quantity"] == 1
    assert payload["tp"] == 21550.0
    assert payload["sl"] == 21450.0
    assert payload["order_type"] == "MKT"
    assert payload["reverse_order_close"] is True
    assert payload["multiple_accounts"] == [
        {"token": "tok", "account_id": "A1", "risk_percentage": 0, "quantity_multiplier": 1}
    ]


def test_load_broker_targets_decrypts_and_skips_bad_tokens(session, caplog):
    session.add(ForwardingConfig(name="good", token_encrypted=encrypt("secret-token"), account_id="A1"))
    session.add(ForwardingConfig(name="broken", token_encrypted="not-a-fernet-token", account_id="A2"))
    session.add(ForwardingConfig(name="off", enabled=False, token_encrypted=encrypt("x"), account_id="A3"))
    session.commit()

    with caplog.at_level(logging.ERROR):
        targets = load_broker_targets(session)

    assert [t.name for t in targets] == ["good"]
    assert targets[0].token == "secret-token"
    assert any("broken" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# 2. Chat and dashboard payloads
# ---------------------------------------------------------------------------

def test_telegram_entry_headline_and_targets():
    text = format_telegram_message(fwd_entry(direction="short"), NOW)
    assert "*SELL* Signal" in text
    assert "*Take Profit:* $21550.0" in text
    assert "*Position Size:* 3 contracts" in text
    assert "EDT" in text


def test_telegram_exit_shows_pnl():
    text = format_telegram_message(fwd_exit(), NOW)
    assert "*TAKE PROFIT* Signal" in text
    assert "*Entry Price:* $21500.0" in text
    assert "+$100.00" in text


def test_telegram_escapes_markdown_in_labels():
    text = format_telegram_message(fwd_entry(strategy="CL_5M*", ticker="ES_F"), NOW)
    assert "*Strategy:* CL\\_5M\\*" in text
    assert "*Ticker:* ES\\_F" in text


def test_discord_embed_shape():
    embed = build_discord_embed(fwd_exit(pnl=-25.0), NOW)
    assert embed["color"] == 0x0099FF
    assert embed["footer"] == {"text": "TradingView Webhook"}
    names = [f["name"] for f in embed["fields"]]
    assert "P&L" in names


def test_external_dashboard_payload():
    payload = build_external_payload(fwd_entry(), NOW)
    assert payload["timestamp"] == int(NOW.timestamp() * 1000)
    assert payload["positionSize"] == 3.0
    assert payload["stopLoss"] == 21450.0


# ---------------------------------------------------------------------------
# 3. Routing
# ---------------------------------------------------------------------------

def test_only_opened_and_closed_outcomes_forward():
    signal = Signal(action=SignalAction.ENTRY, kind=SignalKind.ENTRY, ticker="ES1!", price=1.0)
    assert build_forwarded_signal(signal, LifecycleOutcome(OutcomeStatus.DUPLICATE, None, "")) is None
    assert build_forwarded_signal(signal, LifecycleOutcome(OutcomeStatus.UNMATCHED, None, "")) is None
    fwd = build_forwarded_signal(signal, LifecycleOutcome(OutcomeStatus.OPENED, None, ""))
    assert fwd.ticker == "ES1!"


class TestPlan:
    def setup_method(self):
        self.router = ForwardingRouter(
            telegram_chat_ids=[11, 22],
            discord_webhook_url="https://discord.example/hook",
            external_dashboard_url="https://dash.example/api",
        )

    def test_entry_goes_everywhere(self):
        deliveries = self.router.plan(fwd_entry(), [target()], NOW)
        destinations = [d.destination for d in deliveries]
        assert destinations.count("telegram") == 2
        assert "discord" in destinations
        assert "external_dashboard" in destinations
        assert "pickmytrade:acct" in destinations

    def test_exit_skips_broker(self):
        deliveries = self.router.plan(fwd_exit(), [target()], NOW)
        assert all(not d.destination.startswith("pickmytrade") for d in deliveries)
        assert len(deliveries) == 4

    def test_one_delivery_per_relay_url(self):
        t = target(webhook_urls=("https://a.example", "https://b.example"))
        deliveries = [d for d in self.router.plan(fwd_entry(), [t], NOW) if d.destination.startswith("pickmytrade")]
        assert [d.target for d in deliveries] == ["https://a.example", "https://b.example"]

    def test_unconfigured_router_plans_nothing(self):
        assert ForwardingRouter().plan(fwd_exit(), [], NOW) == []


# ---------------------------------------------------------------------------
# 4. Dispatch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_post_json_classifies_timeout_as_transient():
    with patch("alert_relay.forwarding.http.requests.post", side_effect=requests.Timeout("slow")):
        with pytest.raises(DestinationError) as exc:
            await post_json("discord", "https://discord.example/hook", {}, 1.0)
    assert exc.value.transient is True


@pytest.mark.asyncio
async def test_post_json_classifies_http_error_as_permanent():
    response = MagicMock(ok=False, status_code=400, text="bad payload")
    with patch("alert_relay.forwarding.http.requests.post", return_value=response):
        with pytest.raises(DestinationError) as exc:
            await post_json("discord", "https://discord.example/hook", {}, 1.0)
    assert exc.value.kind == "permanent"
    assert "HTTP 400" in str(exc.value)


@pytest.mark.asyncio
async def test_telegram_timeout_is_transient():
    bot = MagicMock()
    bot.send_message = AsyncMock(side_effect=TimedOut())
    with patch("alert_relay.forwarding.telegram.get_bot", return_value=bot):
        with pytest.raises(DestinationError) as exc:
            await send_telegram_message(11, "hi", 1.0)
    assert exc.value.transient is True


@pytest.mark.asyncio
async def test_failing_destination_does_not_block_others(caplog):
    router = ForwardingRouter(
        telegram_chat_ids=[11],
        discord_webhook_url="https://discord.example/hook",
        external_dashboard_url="https://dash.example/api",
    )
    bot = MagicMock()
    bot.send_message = AsyncMock(return_value=None)

    def fake_post(url, json=None, timeout=None):
        if "discord" in url:
            raise requests.ConnectionError("refused")
        return _ok_response()

    with patch("alert_relay.forwarding.http.requests.post", side_effect=fake_post) as post, \
            patch("alert_relay.forwarding.telegram.get_bot", return_value=bot), \
            caplog.at_level(logging.INFO):
        results = await router.forward(fwd_entry(), [target()])

    by_destination = {r.destination: r for r in results}
    assert by_destination["discord"].ok is False
    assert by_destination["discord"].transient is True
    assert by_destination["external_dashboard"].ok is True
    assert by_destination["pickmytrade:acct"].ok is True
    assert by_destination["telegram"].ok is True
    bot.send_message.assert_awaited_once()
    assert post.call_count == 3

    failure = next(r for r in caplog.records if "Failed to forward to discord" in r.getMessage())
    assert failure.levelno == logging.WARNING
    assert failure.category == "forwarding"


@pytest.mark.asyncio
async def test_unexpected_error_is_contained(caplog):
    router = ForwardingRouter(discord_webhook_url="https://discord.example/hook")
    with patch("alert_relay.forwarding.http.requests.post", side_effect=RuntimeError("boom")), \
            caplog.at_level(logging.ERROR):
        results = await router.forward(fwd_exit(), [])
    assert results[0].ok is False
    assert any("Unexpected error" in r.getMessage() for r in caplog.records)
