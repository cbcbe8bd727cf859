"""Trade cards: the chat message that displays a trade and its live ROE.

The lifecycle hands a ``TradeSnapshot`` to a render surface, which creates or
edits the Telegram message. While the trade is open the card carries a single
"Close Position" button.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError
from telegram.helpers import mention_html

from tradebot.models.trade import Trade
from tradebot.services.errors import RenderFailure, RenderTargetMissing
from tradebot.services.roe import compute_roe
from tradebot.utils.constants import CB_CLOSE, MAX_CALLBACK_DATA_LENGTH

logger = logging.getLogger(__name__)

# Fragments of Telegram BadRequest messages meaning the card is gone for good
_MISSING_TARGET_ERRORS = ("message to edit not found", "chat not found", "message not found")


@dataclass
class TradeSnapshot:
    """Everything a trade card shows at one point in time."""

    trade: Trade
    price: float
    closed: bool
    roe: float
    as_of: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def of(cls, trade: Trade, price: float, closed: bool = False) -> "TradeSnapshot":
        roe = compute_roe(trade.entry_price, price, trade.leverage, trade.direction)
        return cls(trade=trade, price=price, closed=closed, roe=roe)

    @property
    def has_close_action(self) -> bool:
        return not self.closed


def format_number(value: float) -> str:
    text = f"{value:.10f}".rstrip("0").rstrip(".")
    return text or "0"


def _status_marker(snapshot: TradeSnapshot) -> str:
    if snapshot.closed:
        return "🔴"
    return "🟢" if snapshot.roe >= 0 else "🟡"


def format_trade_card(snapshot: TradeSnapshot, display_timezone: str = "UTC") -> str:
    """HTML body of a trade card."""
    trade = snapshot.trade
    state = "Closed" if snapshot.closed else "Active"
    price_label = "Close Price" if snapshot.closed else "Current Price"
    roe_label = "Final ROE" if snapshot.closed else "Current ROE"
    tz = ZoneInfo(display_timezone)
    updated = snapshot.as_of.astimezone(tz).strftime("%m/%d/%Y, %I:%M:%S %p %Z")

    lines = [
        f"{_status_marker(snapshot)} <b>{trade.direction.value.capitalize()} Trade {state}</b>",
        f"Trade details for {mention_html(trade.user_id, f'user {trade.user_id}')}",
        "",
        f"<b>Ticker:</b> {trade.ticker}",
        f"<b>Exchange:</b> {trade.exchange.value}",
        f"<b>Leverage:</b> {format_number(trade.leverage)}",
        f"<b>Entry Price:</b> {format_number(trade.entry_price)}",
        f"<b>{price_label}:</b> {format_number(snapshot.price)}",
        f"<b>Stop Loss:</b> {format_number(trade.stop_loss)}",
        f"<b>Take Profit:</b> {format_number(trade.take_profit)}",
        f"<b>{roe_label}:</b> {snapshot.roe:.2f}%",
        f"<b>Last Updated:</b> {updated}",
    ]
    return "\n".join(lines)


def callback_data(prefix: str, payload: str) -> str:
    """Button data "<prefix>:<payload>". Raises ValueError past Telegram's byte limit."""
    data = f"{prefix}:{payload}"
    if len(data.encode()) > MAX_CALLBACK_DATA_LENGTH:
        raise ValueError(f"Callback data {data!r} exceeds {MAX_CALLBACK_DATA_LENGTH} bytes")
    return data


def build_card_keyboard(snapshot: TradeSnapshot) -> InlineKeyboardMarkup | None:
    """Close button for open trades, nothing once closed."""
    if not snapshot.has_close_action:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("Close Position", callback_data=callback_data(CB_CLOSE, snapshot.trade.trade_id))]
    ])


def _is_missing_target(error: TelegramError) -> bool:
    return isinstance(error, BadRequest) and any(
        fragment in error.message.lower() for fragment in _MISSING_TARGET_ERRORS
    )


class TelegramRenderSurface:
    """Creates and edits trade cards through the Telegram Bot API."""

    def __init__(self, bot: Bot, display_timezone: str = "UTC"):
        self._bot = bot
        self._display_timezone = display_timezone

    async def create_render(self, channel_id: str, snapshot: TradeSnapshot) -> str:
        """Post a new card and return its message id."""
        try:
            message = await self._bot.send_message(
                chat_id=channel_id,
                text=format_trade_card(snapshot, self._display_timezone),
                parse_mode=ParseMode.HTML,
                reply_markup=build_card_keyboard(snapshot),
            )
        except TelegramError as e:
            if _is_missing_target(e):
                raise RenderTargetMissing() from e
            raise RenderFailure() from e
        return str(message.message_id)

    async def update_render(self, channel_id: str, message_id: str, snapshot: TradeSnapshot) -> None:
        """Edit an existing card in place."""
        try:
            await self._bot.edit_message_text(
                chat_id=channel_id,
                message_id=int(message_id),
                text=format_trade_card(snapshot, self._display_timezone),
                parse_mode=ParseMode.HTML,
                reply_markup=build_card_keyboard(snapshot),
            )
        except BadRequest as e:
            if "message is not modified" in e.message.lower():
                return
            if _is_missing_target(e):
                raise RenderTargetMissing() from e
            raise RenderFailure() from e
        except TelegramError as e:
            raise RenderFailure() from e
