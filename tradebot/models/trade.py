"""Trade model: one simulated leveraged position tracked in a chat."""

from datetime import datetime, timezone
from enum import Enum

from sqlmodel import SQLModel, Field


class Exchange(str, Enum):
    BINANCE = "binance"
    BITGET = "bitget"
    BYBIT = "bybit"
    MEXC = "mexc"


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"


def make_trade_id(user_id: str, channel_id: str, ticker: str, direction: Direction) -> str:
    """Key a trade by owner, chat, symbol and side.

    A user can hold several open trades in one chat, one per ticker and direction.
    """
    return f"{user_id}-{channel_id}-{ticker}-{Direction(direction).value}"


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    trade_id: str = Field(primary_key=True)
    ticker: str
    leverage: float
    exchange: Exchange
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: float
    user_id: str = Field(index=True)
    channel_id: str = Field(index=True)
    message_id: str | None = None  # set after the first successful render
    closed: bool = Field(default=False, index=True)
    close_price: float | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
