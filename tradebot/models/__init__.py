"""Database models."""

from tradebot.models.trade import Direction, Exchange, Trade, make_trade_id

__all__ = [
    "Direction",
    "Exchange",
    "Trade",
    "make_trade_id",
]
