"""Tests for exchange quotes via ccxt clients."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tradebot.config import Settings
from tradebot.models.trade import Exchange
from tradebot.services.market_data import ExchangeQuotes, _credentials, _to_ccxt_symbol


def _client(last=50500.0) -> MagicMock:
    client = MagicMock()
    client.fetch_ticker = AsyncMock(return_value={"symbol": "BTC/USDT", "last": last})
    client.close = AsyncMock()
    return client


class TestSymbols:
    @pytest.mark.parametrize(
        "ticker, symbol",
        [
            ("BTCUSDT", "BTC/USDT"),
            ("ethusdc", "ETH/USDC"),
            ("SOLBTC", "SOL/BTC"),
            ("BTC/USDT", "BTC/USDT"),
            ("USDT", "USDT"),
            ("FOOBAR", "FOOBAR"),
        ],
    )
    def test_to_ccxt_symbol(self, ticker, symbol):
        assert _to_ccxt_symbol(ticker) == symbol


class TestCredentials:
    def test_empty_keys_are_omitted(self):
        config = _credentials(Settings(bybit_api_key="", bybit_api_secret=""), Exchange.BYBIT)
        assert config == {"enableRateLimit": True}

    def test_configured_keys_are_passed(self):
        settings = Settings(bitget_api_key="k", bitget_api_secret="s", bitget_api_password="p")
        config = _credentials(settings, Exchange.BITGET)
        assert config["apiKey"] == "k"
        assert config["secret"] == "s"
        assert config["password"] == "p"


class TestFetchLastPrice:
    @pytest.mark.asyncio
    async def test_returns_last_price(self):
        client = _client()
        quotes = ExchangeQuotes({Exchange.BINANCE: client})

        price = await quotes.fetch_last_price(Exchange.BINANCE, "BTCUSDT", timeout=5.0)

        assert price == 50500.0
        client.fetch_ticker.assert_awaited_once_with("BTC/USDT")

    @pytest.mark.asyncio
    async def test_accepts_exchange_name(self):
        quotes = ExchangeQuotes({Exchange.MEXC: _client(last=2)})
        assert await quotes.fetch_last_price("mexc", "ETHUSDT") == 2.0

    @pytest.mark.asyncio
    async def test_unknown_exchange(self):
        quotes = ExchangeQuotes({Exchange.BINANCE: _client()})
        assert await quotes.fetch_last_price("kraken", "BTCUSDT") is None
        assert await quotes.fetch_last_price(Exchange.BYBIT, "BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_exchange_error_is_absent_price(self):
        client = _client()
        client.fetch_ticker.side_effect = Exception("binance does not have market symbol NOPE/USDT")
        quotes = ExchangeQuotes({Exchange.BINANCE: client})

        assert await quotes.fetch_last_price(Exchange.BINANCE, "NOPEUSDT") is None

    @pytest.mark.asyncio
    async def test_missing_last_is_absent_price(self):
        quotes = ExchangeQuotes({Exchange.BINANCE: _client(last=None)})
        assert await quotes.fetch_last_price(Exchange.BINANCE, "BTCUSDT") is None

    @pytest.mark.asyncio
    async def test_timeout_is_absent_price(self):
        async def slow_ticker(symbol):
            await asyncio.sleep(1)
            return {"last": 1.0}

        client = _client()
        client.fetch_ticker = slow_ticker
        quotes = ExchangeQuotes({Exchange.BYBIT: client})

        assert await quotes.fetch_last_price(Exchange.BYBIT, "BTCUSDT", timeout=0.01) is None


class TestRegistry:
    def test_exchanges_in_declaration_order(self):
        quotes = ExchangeQuotes({Exchange.MEXC: _client(), Exchange.BINANCE: _client()})
        assert quotes.exchanges == [Exchange.BINANCE, Exchange.MEXC]

    @pytest.mark.asyncio
    async def test_close_closes_every_client(self):
        first, second = _client(), _client()
        second.close.side_effect = Exception("already closed")
        quotes = ExchangeQuotes({Exchange.BINANCE: first, Exchange.BYBIT: second})

        await quotes.close()

        first.close.assert_awaited_once()
        second.close.assert_awaited_once()
