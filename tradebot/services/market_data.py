"""Last-price quotes from centralized exchanges via ccxt.

One ccxt async client per supported exchange, built once when the bot starts
and handed to the trade lifecycle. Quote failures never raise: they are logged
and reported as a missing price.
"""

import asyncio
import logging

import ccxt.async_support as ccxt

from tradebot.config import Settings
from tradebot.models.trade import Exchange
from tradebot.utils.constants import QUOTE_ASSETS

logger = logging.getLogger(__name__)


def _to_ccxt_symbol(ticker: str) -> str:
    """Convert a compact ticker to ccxt's unified symbol format.

    "BTCUSDT" becomes "BTC/USDT". Tickers that already contain a slash, or whose
    quote asset is not recognised, are passed through unchanged.
    """
    ticker = ticker.upper()
    if "/" in ticker:
        return ticker
    for quote in QUOTE_ASSETS:
        if ticker.endswith(quote) and len(ticker) > len(quote):
            return f"{ticker[:-len(quote)]}/{quote}"
    return ticker


def _credentials(settings: Settings, exchange: Exchange) -> dict:
    """ccxt constructor options for an exchange; empty keys are left out."""
    prefix = exchange.value
    options = {
        "apiKey": getattr(settings, f"{prefix}_api_key", ""),
        "secret": getattr(settings, f"{prefix}_api_secret", ""),
        "password": getattr(settings, f"{prefix}_api_password", ""),
    }
    config = {key: value for key, value in options.items() if value}
    config["enableRateLimit"] = True
    return config


def build_exchange_clients(settings: Settings) -> dict[Exchange, ccxt.Exchange]:
    """Instantiate one ccxt async client per supported exchange."""
    clients = {}
    for exchange in Exchange:
        exchange_class = getattr(ccxt, exchange.value)
        clients[exchange] = exchange_class(_credentials(settings, exchange))
    return clients


class ExchangeQuotes:
    """Registry of exchange clients answering last-price queries."""

    def __init__(self, clients: dict[Exchange, object]):
        self._clients = dict(clients)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExchangeQuotes":
        return cls(build_exchange_clients(settings))

    @property
    def exchanges(self) -> list[Exchange]:
        """Exchanges with a configured client, in declaration order."""
        return [e for e in Exchange if e in self._clients]

    async def fetch_last_price(
        self,
        exchange: Exchange,
        ticker: str,
        timeout: float | None = None,
    ) -> float | None:
        """Latest traded price of ``ticker`` on ``exchange``.

        Args:
            exchange: Venue to query.
            ticker: Symbol, compact ("BTCUSDT") or unified ("BTC/USDT").
            timeout: Seconds to wait before giving up; None waits for the
                client's own HTTP timeout.

        Returns:
            The last price, or None on timeout, error, unknown venue or a
            ticker without a last price.
        """
        try:
            exchange = Exchange(exchange)
        except ValueError:
            logger.error(f"Unsupported exchange {exchange!r}")
            return None

        client = self._clients.get(exchange)
        if client is None:
            logger.error(f"No client configured for exchange {exchange}")
            return None

        symbol = _to_ccxt_symbol(ticker)
        try:
            if timeout is None:
                ticker_data = await client.fetch_ticker(symbol)
            else:
                ticker_data = await asyncio.wait_for(client.fetch_ticker(symbol), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Quote for {symbol} on {exchange.value} timed out after {timeout}s")
            return None
        except Exception as e:
            logger.error(f"Error fetching quote for {symbol} on {exchange.value}: {e}")
            return None

        last = (ticker_data or {}).get("last")
        if not last:
            logger.warning(f"No last price for {symbol} on {exchange.value}")
            return None
        return float(last)

    async def close(self):
        """Release the HTTP sessions held by the exchange clients."""
        for exchange, client in self._clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"Failed to close {exchange.value} client: {e}")
