"""Tests for trade submission validation."""

import pytest
from pydantic import ValidationError

from tradebot.models.trade import Direction, Exchange
from tradebot.schemas.trade import TradeRequest, parse_trade_request
from tradebot.services.errors import TradeValidationError

VALID = dict(ticker="btcusdt", leverage="10", entry_price="50000", stop_loss="48000", take_profit="55000")


class TestTradeRequest:
    def test_numeric_strings_are_coerced(self):
        request = parse_trade_request(VALID, Exchange.BYBIT, Direction.LONG)
        assert request.leverage == 10.0
        assert request.entry_price == 50000.0
        assert request.exchange == Exchange.BYBIT
        assert request.direction == Direction.LONG

    def test_ticker_is_normalized(self):
        request = parse_trade_request({**VALID, "ticker": "  eth/usdt "}, Exchange.BINANCE, Direction.SHORT)
        assert request.ticker == "ETH/USDT"

    def test_negative_stop_loss_is_allowed(self):
        request = TradeRequest(**{**VALID, "stop_loss": "-1"}, exchange="mexc", direction="short")
        assert request.stop_loss == -1.0
        assert request.exchange == Exchange.MEXC

    def test_unknown_exchange_rejected(self):
        with pytest.raises(ValidationError):
            TradeRequest(**VALID, exchange="kraken", direction="long")


class TestParseTradeRequestErrors:
    @pytest.mark.parametrize("field", ["leverage", "entry_price", "stop_loss", "take_profit"])
    def test_non_numeric_field(self, field):
        with pytest.raises(TradeValidationError) as excinfo:
            parse_trade_request({**VALID, field: "abc"}, Exchange.BYBIT, Direction.LONG)
        assert "numeric values" in excinfo.value.user_message

    @pytest.mark.parametrize("value", ["nan", "inf"])
    def test_non_finite_numbers_rejected(self, value):
        with pytest.raises(TradeValidationError):
            parse_trade_request({**VALID, "entry_price": value}, Exchange.BYBIT, Direction.LONG)

    @pytest.mark.parametrize("field", ["leverage", "entry_price"])
    @pytest.mark.parametrize("value", ["0", "-5"])
    def test_non_positive_values(self, field, value):
        with pytest.raises(TradeValidationError) as excinfo:
            parse_trade_request({**VALID, field: value}, Exchange.BYBIT, Direction.LONG)
        assert excinfo.value.user_message == "Leverage and Entry Price must be positive numbers."

    @pytest.mark.parametrize("ticker", ["", "BTC USDT", "BTC:USDT", "X" * 21, "₿TC"])
    def test_bad_ticker(self, ticker):
        with pytest.raises(TradeValidationError) as excinfo:
            parse_trade_request({**VALID, "ticker": ticker}, Exchange.BYBIT, Direction.LONG)
        assert excinfo.value.user_message.startswith("Invalid ticker")

    @pytest.mark.parametrize("ticker", ["BTC_PERP", "BTC-USD", "1000PEPE.P"])
    def test_separators_accepted(self, ticker):
        request = parse_trade_request({**VALID, "ticker": ticker}, Exchange.BYBIT, Direction.LONG)
        assert request.ticker == ticker

    def test_bad_ticker_message_lists_allowed_characters(self):
        with pytest.raises(TradeValidationError) as excinfo:
            parse_trade_request({**VALID, "ticker": "-BTC"}, Exchange.BYBIT, Direction.LONG)
        message = excinfo.value.user_message
        assert "/ . _ -" in message
        assert "starting with a letter or digit" in message
