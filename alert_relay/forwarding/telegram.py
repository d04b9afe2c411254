"""Telegram destination: Markdown signal messages sent through the Bot API."""

import logging
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from zoneinfo import ZoneInfo

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden, NetworkError, TelegramError, TimedOut
from telegram.helpers import escape_markdown

from alert_relay.config import settings
from alert_relay.errors import DestinationError
from alert_relay.utils.constants import SESSION_TIMEZONE

if TYPE_CHECKING:
    from alert_relay.forwarding.router import ForwardedSignal

logger = logging.getLogger(__name__)

_bot_instance: Optional[Bot] = None

_EMOJI = {"entry": "🟢", "take_profit": "🎯", "stop_loss": "🛑"}


def format_telegram_message(fwd: "ForwardedSignal", now: datetime) -> str:
    action = fwd.action
    emoji = _EMOJI.get(action, "📈")

    # Entries read as BUY/SELL rather than ENTRY
    signal_type = action.upper().replace("_", " ")
    if action == "entry" and fwd.direction:
        signal_type = "BUY" if fwd.direction == "long" else "SELL"

    lines = [f"{emoji} *{signal_type}* Signal", "", f"*Ticker:* {escape_markdown(fwd.ticker)}"]
    if fwd.strategy:
        lines.append(f"*Strategy:* {escape_markdown(fwd.strategy)}")
    lines.append(f"*Price:* ${fwd.price}")
    if fwd.direction:
        lines.append(f"*Direction:* {fwd.direction.upper()}")
    if fwd.quantity:
        qty = int(fwd.quantity) if float(fwd.quantity).is_integer() else fwd.quantity
        lines.append(f"*Position Size:* {qty} contract{'s' if fwd.quantity > 1 else ''}")

    if action == "entry":
        if fwd.take_profit:
            lines.append(f"*Take Profit:* ${fwd.take_profit}")
        if fwd.stop_loss:
            lines.append(f"*Stop Loss:* ${fwd.stop_loss}")
    else:
        if fwd.entry_price:
            lines.append(f"*Entry Price:* ${fwd.entry_price}")
        if fwd.pnl is not None:
            pnl_text = f"+${fwd.pnl:.2f}" if fwd.pnl >= 0 else f"-${abs(fwd.pnl):.2f}"
            pnl_emoji = "💰" if fwd.pnl >= 0 else "📉"
            line = f"{pnl_emoji} *P&L:* {pnl_text}"
            if fwd.pnl_percent is not None:
                line += f" ({'+' if fwd.pnl_percent >= 0 else ''}{fwd.pnl_percent:.2f}%)"
            lines.append(line)

    local = now.astimezone(ZoneInfo(SESSION_TIMEZONE))
    lines.append("")
    lines.append(f"_Time:_ {local.strftime('%Y-%m-%d %H:%M:%S %Z')}")
    return "\n".join(lines)


async def init_bot(token: str | None = None) -> Bot:
    """Initialize and return the bot singleton."""
    global _bot_instance
    bot = Bot(token=token or settings.telegram_bot_token)
    await bot.initialize()
    _bot_instance = bot
    logger.info("Telegram bot initialized")
    return bot


def get_bot() -> Optional[Bot]:
    """Get the bot singleton, or None if not initialized."""
    return _bot_instance


async def shutdown_bot():
    global _bot_instance
    if _bot_instance is not None:
        await _bot_instance.shutdown()
        _bot_instance = None


async def send_telegram_message(chat_id: int, text: str, timeout: float) -> None:
    """Send one message to one chat. Raises DestinationError on failure."""
    target = str(chat_id)
    bot = get_bot()
    try:
        if bot is None:
            bot = await init_bot()
        await bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN,
            connect_timeout=timeout,
            read_timeout=timeout,
            write_timeout=timeout,
        )
    except (BadRequest, Forbidden) as e:
        # BadRequest subclasses NetworkError but is a rejection, not a transport fault
        raise DestinationError("telegram", target, f"rejected: {e}") from e
    except TimedOut as e:
        raise DestinationError("telegram", target, f"timed out after {timeout}s", transient=True) from e
    except NetworkError as e:
        raise DestinationError("telegram", target, f"network error: {e}", transient=True) from e
    except TelegramError as e:
        raise DestinationError("telegram", target, str(e)) from e
