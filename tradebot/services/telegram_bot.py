"""Telegram bot: the chat front end for creating, editing and closing trades."""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ChatMemberStatus, ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from tradebot.config import settings
from tradebot.engine.lifecycle import Requester, TradeLifecycle
from tradebot.models.trade import Direction, Exchange
from tradebot.schemas.trade import TRADE_FIELDS, parse_trade_request
from tradebot.services.errors import TradeNotFound, TradeValidationError
from tradebot.services.market_data import ExchangeQuotes
from tradebot.services.render import TelegramRenderSurface, callback_data, format_number
from tradebot.services.trade_store import TradeStore
from tradebot.utils.constants import (
    BUTTONS_PER_ROW,
    CB_ACTION,
    CB_CLOSE,
    CB_DIRECTION,
    CB_EDIT,
    CB_EXCHANGE,
)

logger = logging.getLogger(__name__)

_bot_instance: Optional["TradeBot"] = None

# Conversation states
SELECT_ACTION, SELECT_EXCHANGE, SELECT_DIRECTION, SELECT_TRADE, ENTER_DETAILS = range(5)

DRAFT_KEY = "trade_draft"

EXCHANGE_LABELS = {
    Exchange.BINANCE: "Binance",
    Exchange.BITGET: "Bitget",
    Exchange.BYBIT: "Bybit",
    Exchange.MEXC: "MEXC",
}

FIELDS_HINT = "TICKER LEVERAGE ENTRY STOP_LOSS TAKE_PROFIT"


def parse_trade_fields(text: str) -> dict[str, str]:
    """Split a details reply into the five named trade fields."""
    parts = (text or "").replace(",", " ").split()
    if len(parts) != len(TRADE_FIELDS):
        raise TradeValidationError(
            f"Send exactly five values: {FIELDS_HINT}\n"
            f"For example: BTCUSDT 10 50000 48000 55000"
        )
    return dict(zip(TRADE_FIELDS, parts))


def _rows(buttons: list[InlineKeyboardButton], per_row: int = BUTTONS_PER_ROW) -> list[list[InlineKeyboardButton]]:
    return [buttons[i:i + per_row] for i in range(0, len(buttons), per_row)]


def _payload(data: str) -> str:
    return data.split(":", 1)[1] if ":" in data else ""


class TradeBot:
    """Telegram bot running in a background thread with its own event loop.

    Chat handlers and the refresh scheduler share that loop.
    """

    def __init__(
        self,
        token: str,
        moderator_ids: list[int],
        store: TradeStore,
        quotes: ExchangeQuotes | None = None,
    ):
        self.token = token
        self.moderator_ids = set(moderator_ids)
        self.store = store
        self._quotes = quotes
        self.lifecycle: Optional[TradeLifecycle] = None
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # ── Permissions ──────────────────────────────────────────────────────

    async def _is_moderator(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
        """Configured moderators, chat owners, and admins allowed to promote members."""
        user = update.effective_user
        chat = update.effective_chat
        if not user:
            return False
        if user.id in self.moderator_ids:
            return True
        if not chat or chat.type == ChatType.PRIVATE:
            return False
        try:
            member = await context.bot.get_chat_member(chat.id, user.id)
        except TelegramError as e:
            logger.warning(f"Could not check permissions of {user.id} in chat {chat.id}: {e}")
            return False
        if member.status == ChatMemberStatus.OWNER:
            return True
        return member.status == ChatMemberStatus.ADMINISTRATOR and bool(
            getattr(member, "can_promote_members", False)
        )

    # ── Replies ──────────────────────────────────────────────────────────

    async def _respond(self, update: Update, text: str, markup: InlineKeyboardMarkup | None = None):
        """Edit the prompt behind a button press, or reply to a typed message."""
        if update.callback_query:
            await update.callback_query.edit_message_text(text, reply_markup=markup, parse_mode=ParseMode.HTML)
        else:
            await update.effective_message.reply_text(text, reply_markup=markup, parse_mode=ParseMode.HTML)

    # ── /trade conversation ──────────────────────────────────────────────

    async def _cmd_trade(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data.pop(DRAFT_KEY, None)
        action = context.args[0].lower() if context.args else None

        if action == "create":
            return await self._prompt_exchange(update)
        if action == "edit":
            return await self._prompt_edit(update)

        keyboard = InlineKeyboardMarkup([
            [
                InlineKeyboardButton("Create", callback_data=f"{CB_ACTION}:create"),
                InlineKeyboardButton("Edit", callback_data=f"{CB_ACTION}:edit"),
            ]
        ])
        await update.effective_message.reply_text("Create or edit a trade?", reply_markup=keyboard)
        return SELECT_ACTION

    async def _on_action(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        if _payload(query.data) == "edit":
            return await self._prompt_edit(update)
        return await self._prompt_exchange(update)

    async def _prompt_exchange(self, update: Update):
        buttons = [
            InlineKeyboardButton(EXCHANGE_LABELS[e], callback_data=f"{CB_EXCHANGE}:{e.value}")
            for e in self.lifecycle.quotes.exchanges
        ]
        await self._respond(update, "Select the exchange for your new trade:", InlineKeyboardMarkup(_rows(buttons)))
        return SELECT_EXCHANGE

    async def _on_exchange(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        try:
            exchange = Exchange(_payload(query.data))
        except ValueError:
            await query.edit_message_text("Unsupported exchange.")
            return ConversationHandler.END

        context.user_data[DRAFT_KEY] = {"exchange": exchange}
        keyboard = InlineKeyboardMarkup([
            [
                InlineKeyboardButton("Long", callback_data=f"{CB_DIRECTION}:{Direction.LONG.value}"),
                InlineKeyboardButton("Short", callback_data=f"{CB_DIRECTION}:{Direction.SHORT.value}"),
            ]
        ])
        await query.edit_message_text(f"Select trade direction for {exchange.value}:", reply_markup=keyboard)
        return SELECT_DIRECTION

    async def _on_direction(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        draft = context.user_data.get(DRAFT_KEY)
        if not draft:
            await query.edit_message_text("This trade flow has expired. Use /trade to start again.")
            return ConversationHandler.END

        draft["direction"] = Direction(_payload(query.data))
        await query.edit_message_text(
            f"Enter trade details for {draft['exchange'].value} {draft['direction'].value} "
            f"as one message:\n<code>{FIELDS_HINT}</code>\n"
            f"For example: <code>BTCUSDT 10 50000 48000 55000</code>",
            parse_mode=ParseMode.HTML,
        )
        return ENTER_DETAILS

    async def _prompt_edit(self, update: Update):
        trades = self.lifecycle.open_trades_for(update.effective_user.id, update.effective_chat.id)
        if not trades:
            await self._respond(update, "No active trades found to edit.")
            return ConversationHandler.END

        buttons = [
            InlineKeyboardButton(
                f"{t.ticker} {t.direction.value.upper()} on {t.exchange.value}",
                callback_data=callback_data(CB_EDIT, t.trade_id),
            )
            for t in trades
        ]
        await self._respond(update, "Select the trade you want to edit:", InlineKeyboardMarkup(_rows(buttons)))
        return SELECT_TRADE

    async def _on_edit_choice(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()
        result = self.lifecycle.trade_for_edit(_payload(query.data), update.effective_user.id)
        if not result.success:
            await query.edit_message_text(result.message)
            return ConversationHandler.END

        trade = result.trade
        context.user_data[DRAFT_KEY] = {
            "exchange": trade.exchange,
            "direction": trade.direction,
            "editing_trade_id": trade.trade_id,
        }
        current = " ".join([
            trade.ticker,
            format_number(trade.leverage),
            format_number(trade.entry_price),
            format_number(trade.stop_loss),
            format_number(trade.take_profit),
        ])
        await query.edit_message_text(
            f"Edit Trade {trade.ticker} {trade.direction.value.upper()}\n"
            f"Current values (<code>{FIELDS_HINT}</code>):\n<code>{current}</code>\n"
            f"Send the updated values in the same order.",
            parse_mode=ParseMode.HTML,
        )
        return ENTER_DETAILS

    async def _on_details(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        draft = context.user_data.pop(DRAFT_KEY, None)
        if not draft or "direction" not in draft:
            await message.reply_text("No trade in progress. Use /trade to start.")
            return ConversationHandler.END

        try:
            fields = parse_trade_fields(message.text)
            request = parse_trade_request(fields, draft["exchange"], draft["direction"])
        except TradeValidationError as e:
            await message.reply_text(e.user_message)
            return ConversationHandler.END

        result = await self.lifecycle.submit_trade(
            request,
            user_id=update.effective_user.id,
            channel_id=update.effective_chat.id,
            editing_trade_id=draft.get("editing_trade_id"),
        )
        await message.reply_text(result.message)
        return ConversationHandler.END

    async def _cmd_cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data.pop(DRAFT_KEY, None)
        await update.effective_message.reply_text("Trade flow cancelled.")
        return ConversationHandler.END

    # ── Close button ─────────────────────────────────────────────────────

    async def _on_close(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Close the trade behind a card's button; the answer is shown only to the presser."""
        query = update.callback_query
        if not query or not update.effective_user:
            return

        trade_id = _payload(query.data)
        if self.lifecycle.open_trade(trade_id) is None:
            await query.answer(TradeNotFound.default_message, show_alert=True)
            return

        is_moderator = await self._is_moderator(update, context)
        result = await self.lifecycle.close_trade(
            trade_id,
            Requester(user_id=str(update.effective_user.id), is_moderator=is_moderator),
        )
        await query.answer(result.message, show_alert=not result.success)

    # ── Errors ───────────────────────────────────────────────────────────

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.error("Unhandled error while processing an update", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            try:
                await update.effective_message.reply_text("Something went wrong. Please try again.")
            except TelegramError as e:
                logger.warning(f"Failed to report error to chat: {e}")

    # ── Wiring ───────────────────────────────────────────────────────────

    def build_handlers(self) -> list:
        conversation = ConversationHandler(
            entry_points=[CommandHandler("trade", self._cmd_trade)],
            states={
                SELECT_ACTION: [CallbackQueryHandler(self._on_action, pattern=f"^{CB_ACTION}:")],
                SELECT_EXCHANGE: [CallbackQueryHandler(self._on_exchange, pattern=f"^{CB_EXCHANGE}:")],
                SELECT_DIRECTION: [CallbackQueryHandler(self._on_direction, pattern=f"^{CB_DIRECTION}:")],
                SELECT_TRADE: [CallbackQueryHandler(self._on_edit_choice, pattern=f"^{CB_EDIT}:")],
                ENTER_DETAILS: [MessageHandler(filters.TEXT & ~filters.COMMAND, self._on_details)],
            },
            fallbacks=[CommandHandler("cancel", self._cmd_cancel)],
            allow_reentry=True,
            name="trade_flow",
        )
        return [
            CallbackQueryHandler(self._on_close, pattern=f"^{CB_CLOSE}:"),
            conversation,
        ]

    def _run_bot(self):
        """Run the bot and the refresh scheduler in a background thread with its own event loop."""
        from tradebot.engine.scheduler import start_scheduler

        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        self._app = (
            Application.builder()
            .token(self.token)
            .build()
        )

        quotes = self._quotes or ExchangeQuotes.from_settings(settings)
        self.lifecycle = TradeLifecycle(
            store=self.store,
            quotes=quotes,
            render=TelegramRenderSurface(self._app.bot, settings.display_timezone),
            quote_timeout=settings.quote_timeout_seconds,
        )

        for handler in self.build_handlers():
            self._app.add_handler(handler)
        self._app.add_error_handler(self._on_error)

        logger.info("Telegram bot starting...")
        self._loop.run_until_complete(self._app.initialize())
        self._loop.run_until_complete(self._app.start())
        self._loop.run_until_complete(self._app.updater.start_polling())
        start_scheduler(self.lifecycle, settings.refresh_interval_seconds, self._loop)
        self._loop.run_forever()

    def start(self):
        self._thread = threading.Thread(target=self._run_bot, daemon=True)
        self._thread.start()

    def stop(self):
        if self._loop and self._app:
            from tradebot.engine.scheduler import stop_scheduler

            async def _shutdown():
                stop_scheduler()
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()
                await self.lifecycle.quotes.close()

            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(timeout=10)
            self._loop.call_soon_threadsafe(self._loop.stop)

    def submit_refresh(self) -> concurrent.futures.Future:
        """Schedule one refresh cycle on the bot loop from another thread."""
        from tradebot.engine.refresh_job import run_refresh_cycle

        if not self._loop or not self.lifecycle:
            raise RuntimeError("Telegram bot is not running")
        return asyncio.run_coroutine_threadsafe(run_refresh_cycle(self.lifecycle), self._loop)


def init_bot(store: TradeStore) -> TradeBot:
    """Initialize and return the bot singleton."""
    global _bot_instance
    _bot_instance = TradeBot(
        token=settings.telegram_bot_token,
        moderator_ids=settings.moderator_ids,
        store=store,
    )
    return _bot_instance


def get_bot() -> Optional[TradeBot]:
    """Get the bot singleton, or None if not initialized."""
    return _bot_instance
