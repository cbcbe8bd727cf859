"""Trade lifecycle: create, edit, refresh and close tracked trades.

Coordinates the trade store, the exchange quote source and the render surface.
Every public operation recovers trade errors and returns a ``LifecycleResult``
whose message is ready to show to the chat user.

Ordering rules:
- A trade is always persisted before its card is rendered, so a render failure
  leaves a recoverable record.
- State only moves OPEN -> CLOSED. Refreshes re-render open trades and never
  change their fields, except for closing trades whose card can no longer be
  shown.

No lock is held per trade. Edits, closes and refreshes re-read the record after
awaiting a quote, so a trade closed in the meantime is left alone; two edits
of the same trade racing each other are not serialized.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError

from tradebot.models.trade import Trade, make_trade_id
from tradebot.schemas.trade import TradeRequest
from tradebot.services.errors import (
    PermissionDenied,
    QuoteUnavailable,
    RenderFailure,
    RenderTargetMissing,
    StoreFailure,
    TradeError,
    TradeNotFound,
    TradeValidationError,
)
from tradebot.services.render import TradeSnapshot, callback_data
from tradebot.utils.constants import CB_CLOSE

logger = logging.getLogger(__name__)

DEFAULT_QUOTE_TIMEOUT = 5.0


@dataclass
class LifecycleResult:
    success: bool
    message: str
    trade: Trade | None = None
    error: TradeError | None = None


@dataclass
class Requester:
    user_id: str
    is_moderator: bool = False


class RefreshOutcome(str, Enum):
    REFRESHED = "refreshed"
    SKIPPED = "skipped"      # no price this cycle, or the trade changed underneath us
    ABANDONED = "abandoned"  # card cannot be shown any more; trade closed
    FAILED = "failed"        # render error, retried next cycle


class TradeLifecycle:
    """Orchestrates trade operations over injected collaborators.

    Args:
        store: ``TradeStore`` holding the persisted records.
        quotes: Price quote source with ``fetch_last_price(exchange, ticker, timeout)``.
        render: Render surface with ``create_render`` / ``update_render``.
        quote_timeout: Seconds allowed for user-facing quotes.
    """

    def __init__(self, store, quotes, render, quote_timeout: float = DEFAULT_QUOTE_TIMEOUT):
        self.store = store
        self.quotes = quotes
        self.render = render
        self.quote_timeout = quote_timeout

    # ── Create / edit ────────────────────────────────────────────────────

    async def submit_trade(
        self,
        request: TradeRequest,
        user_id: str,
        channel_id: str,
        editing_trade_id: str | None = None,
    ) -> LifecycleResult:
        """Create a trade, or overwrite the one being edited, and render its card."""
        try:
            return await self._submit_trade(request, str(user_id), str(channel_id), editing_trade_id)
        except TradeError as e:
            logger.info(f"Trade submission by {user_id} rejected: {e.user_message}")
            return LifecycleResult(False, e.user_message, error=e)

    async def _submit_trade(
        self,
        request: TradeRequest,
        user_id: str,
        channel_id: str,
        editing_trade_id: str | None,
    ) -> LifecycleResult:
        trade_id = make_trade_id(user_id, channel_id, request.ticker, request.direction)
        try:
            callback_data(CB_CLOSE, trade_id)
        except ValueError as e:
            raise TradeValidationError("That ticker is too long to track in this chat. Use a shorter one.") from e

        if editing_trade_id is not None:
            previous = self._load(editing_trade_id)
            if previous is None or previous.closed:
                raise TradeNotFound("Trade not found or already closed.")
            if trade_id != editing_trade_id:
                raise TradeValidationError(
                    "The ticker of an existing trade cannot be changed. "
                    "Close it and create a new trade instead."
                )
        else:
            previous = self._load(trade_id)
            if previous is not None and previous.closed:
                # A closed trade is final; a new one under the same key starts fresh
                previous = None

        price = await self._quote(request.exchange, request.ticker)

        if previous is not None:
            current = self._load(trade_id)
            if current is None or current.closed:
                raise TradeNotFound("Trade not found or already closed.")
            previous = current

        trade = Trade(
            trade_id=trade_id,
            ticker=request.ticker,
            leverage=request.leverage,
            exchange=request.exchange,
            direction=request.direction,
            entry_price=request.entry_price,
            stop_loss=request.stop_loss,
            take_profit=request.take_profit,
            user_id=user_id,
            channel_id=channel_id,
            message_id=previous.message_id if previous else None,
            closed=False,
            close_price=None,
            created_at=previous.created_at if previous else datetime.now(timezone.utc),
        )
        self._persist(self.store.save, trade)

        snapshot = TradeSnapshot.of(trade, price)
        try:
            if trade.message_id:
                await self.render.update_render(trade.channel_id, trade.message_id, snapshot)
            else:
                trade.message_id = await self.render.create_render(trade.channel_id, snapshot)
                try:
                    self._persist(self.store.update, trade)
                except StoreFailure as e:
                    logger.error(f"Trade {trade_id} card {trade.message_id} posted but not linked to the record")
                    return LifecycleResult(
                        False,
                        "Trade saved and posted, but its message could not be linked, "
                        "so it will not be updated. Please create the trade again.",
                        trade=trade,
                        error=e,
                    )
        except RenderFailure as e:
            logger.error(f"Trade {trade_id} saved but its card could not be rendered: {e.__cause__ or e}")
            return LifecycleResult(
                False,
                "Trade saved, but failed to send or update the trade message. Check bot permissions.",
                trade=trade,
                error=e,
            )

        logger.info(
            f"{'Updated' if previous else 'Created'} trade {trade_id}: "
            f"{trade.direction.value} {trade.ticker} x{trade.leverage:g} @ {trade.entry_price:g} "
            f"(mark {price:g}, ROE {snapshot.roe:.2f}%)"
        )
        if previous:
            return LifecycleResult(True, "Trade updated successfully!", trade=trade)
        return LifecycleResult(
            True,
            "Trade created successfully with your specified entry price! "
            "I will update the status periodically.",
            trade=trade,
        )

    def open_trades_for(self, user_id: str, channel_id: str) -> list[Trade]:
        """Open trades a user can edit in one chat."""
        return self.store.list_open_for(str(user_id), str(channel_id))

    def open_trade(self, trade_id: str) -> Trade | None:
        """The trade if it exists and is still open."""
        trade = self.store.get(trade_id)
        if trade is None or trade.closed:
            return None
        return trade

    def trade_for_edit(self, trade_id: str, user_id: str) -> LifecycleResult:
        """Load an open trade owned by ``user_id`` for the edit prompt."""
        trade = self.open_trade(trade_id)
        if trade is None or trade.user_id != str(user_id):
            error = TradeNotFound("Trade not found.")
            return LifecycleResult(False, error.user_message, error=error)
        return LifecycleResult(True, "", trade=trade)

    # ── Refresh ──────────────────────────────────────────────────────────

    async def refresh_trade(self, trade: Trade) -> RefreshOutcome:
        """Re-render one open trade with a fresh price.

        Quotes on this path are not time-bounded. Nothing is surfaced to users;
        problems are logged and the trade is retried next cycle, unless its card
        is gone, in which case the trade is closed as abandoned.
        """
        if not trade.message_id:
            logger.error(
                f"Trade {trade.trade_id} does not have a message ID. "
                f"Cannot update message. Setting to closed in DB."
            )
            self._mark_abandoned(trade.trade_id)
            return RefreshOutcome.ABANDONED

        price = await self.quotes.fetch_last_price(trade.exchange, trade.ticker)
        if price is None:
            logger.warning(
                f"Could not fetch price for {trade.ticker} on {trade.exchange.value} "
                f"(Trade ID: {trade.trade_id})"
            )
            return RefreshOutcome.SKIPPED

        # Narrows, but does not close, the window for racing a close or edit
        current = self.store.get(trade.trade_id)
        if current is None or current.closed or not current.message_id:
            logger.info(f"Trade {trade.trade_id} changed during refresh; skipping")
            return RefreshOutcome.SKIPPED

        try:
            await self.render.update_render(current.channel_id, current.message_id, TradeSnapshot.of(current, price))
        except RenderTargetMissing:
            logger.error(
                f"Message {current.message_id} for trade {current.trade_id} no longer exists "
                f"in chat {current.channel_id}. Setting to closed in DB."
            )
            self._mark_abandoned(current.trade_id)
            return RefreshOutcome.ABANDONED
        except RenderFailure as e:
            logger.error(f"Error updating trade {current.trade_id}: {e.__cause__ or e}")
            return RefreshOutcome.FAILED

        logger.debug(f"Updated trade {current.trade_id}")
        return RefreshOutcome.REFRESHED

    def _mark_abandoned(self, trade_id: str):
        trade = self.store.get(trade_id)
        if trade is None or trade.closed:
            return
        trade.closed = True
        self.store.update(trade)

    # ── Close ────────────────────────────────────────────────────────────

    async def close_trade(self, trade_id: str, requester: Requester) -> LifecycleResult:
        """Close an open trade at the current market price. Moderators only."""
        try:
            return await self._close_trade(trade_id, requester)
        except TradeError as e:
            logger.info(f"Close of {trade_id} by {requester.user_id} rejected: {e.user_message}")
            return LifecycleResult(False, e.user_message, error=e)

    async def _close_trade(self, trade_id: str, requester: Requester) -> LifecycleResult:
        trade = self._load(trade_id)
        if trade is None or trade.closed:
            raise TradeNotFound()
        if not requester.is_moderator:
            raise PermissionDenied()

        close_price = await self._quote(
            trade.exchange,
            trade.ticker,
            failure_message="Failed to fetch current price to close the trade. The exchange API may be slow.",
        )

        # Another close may have committed while we were quoting
        trade = self._load(trade_id)
        if trade is None or trade.closed:
            raise TradeNotFound()

        trade.closed = True
        trade.close_price = close_price
        self._persist(self.store.update, trade)

        snapshot = TradeSnapshot.of(trade, close_price, closed=True)
        logger.info(
            f"Closed trade {trade_id} at {close_price:g} (final ROE {snapshot.roe:.2f}%) "
            f"by {requester.user_id}"
        )

        try:
            if not trade.message_id:
                raise RenderTargetMissing()
            await self.render.update_render(trade.channel_id, trade.message_id, snapshot)
        except RenderFailure as e:
            logger.error(f"Trade {trade_id} closed but its card could not be updated: {e.__cause__ or e}")
            return LifecycleResult(
                False,
                "Trade closed, but failed to update the message. Check bot permissions.",
                trade=trade,
                error=e,
            )

        return LifecycleResult(True, "Trade closed successfully!", trade=trade)

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _quote(self, exchange, ticker: str, failure_message: str | None = None) -> float:
        price = await self.quotes.fetch_last_price(exchange, ticker, timeout=self.quote_timeout)
        if price is None:
            raise QuoteUnavailable(failure_message)
        return price

    def _load(self, trade_id: str) -> Trade | None:
        try:
            return self.store.get(trade_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load trade {trade_id}: {e}")
            raise StoreFailure("Could not load the trade. Please try again later.") from e

    def _persist(self, operation, trade: Trade):
        try:
            operation(trade)
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist trade {trade.trade_id}: {e}")
            raise StoreFailure() from e
