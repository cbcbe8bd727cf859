"""Pydantic schemas for trade submissions."""

from pydantic import BaseModel, Field, ValidationError, field_validator

from tradebot.models.trade import Direction, Exchange
from tradebot.services.errors import TradeValidationError
from tradebot.utils.constants import TICKER_PATTERN

TRADE_FIELDS = ("ticker", "leverage", "entry_price", "stop_loss", "take_profit")

_POSITIVE_MESSAGE = "Leverage and Entry Price must be positive numbers."
_TICKER_MESSAGE = (
    "Invalid ticker. Use up to 20 letters, digits or the characters / . _ -, "
    "starting with a letter or digit, e.g. BTCUSDT or BTC/USDT."
)


class TradeRequest(BaseModel):
    """User-supplied fields for creating or editing a trade."""

    ticker: str
    leverage: float = Field(gt=0, allow_inf_nan=False)
    entry_price: float = Field(gt=0, allow_inf_nan=False)
    stop_loss: float = Field(allow_inf_nan=False)
    take_profit: float = Field(allow_inf_nan=False)
    exchange: Exchange
    direction: Direction

    @field_validator("ticker")
    @classmethod
    def _normalize_ticker(cls, value: str) -> str:
        ticker = value.strip().upper()
        if not TICKER_PATTERN.fullmatch(ticker):
            raise ValueError("must be 1-20 characters of A-Z, 0-9, '/', '.', '_' or '-'")
        return ticker


def parse_trade_request(fields: dict[str, str], exchange: Exchange, direction: Direction) -> TradeRequest:
    """Validate raw text fields, raising ``TradeValidationError`` with a reply for the user."""
    try:
        return TradeRequest(**fields, exchange=exchange, direction=direction)
    except ValidationError as e:
        errors = e.errors()
        if any(err["loc"] and err["loc"][0] == "ticker" for err in errors):
            raise TradeValidationError(_TICKER_MESSAGE) from e
        if all(err["type"] == "greater_than" for err in errors):
            raise TradeValidationError(_POSITIVE_MESSAGE) from e
        raise TradeValidationError() from e
