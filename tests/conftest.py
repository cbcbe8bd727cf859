"""Shared fixtures: an in-memory trade store and mocked quote/render collaborators."""

import os

# Set test environment variables BEFORE any application code is imported.
os.environ["TB_DATABASE_URL"] = "sqlite://"
os.environ["TB_TELEGRAM_BOT_TOKEN"] = ""
os.environ["TB_API_KEY"] = ""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from tradebot.engine.lifecycle import TradeLifecycle
from tradebot.models.trade import Direction, Exchange, Trade
from tradebot.schemas.trade import TradeRequest
from tradebot.services.trade_store import TradeStore

USER_ID = "42"
CHANNEL_ID = "-100123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> TradeStore:
    return TradeStore(engine)


@pytest.fixture
def quotes() -> MagicMock:
    """Quote source answering 50500 for every symbol."""
    source = MagicMock()
    source.fetch_last_price = AsyncMock(return_value=50500.0)
    source.exchanges = list(Exchange)
    return source


@pytest.fixture
def render() -> MagicMock:
    """Render surface that posts every new card as message 101."""
    surface = MagicMock()
    surface.create_render = AsyncMock(return_value="101")
    surface.update_render = AsyncMock(return_value=None)
    return surface


@pytest.fixture
def lifecycle(store, quotes, render) -> TradeLifecycle:
    return TradeLifecycle(store=store, quotes=quotes, render=render, quote_timeout=5.0)


def make_request(**overrides) -> TradeRequest:
    fields = dict(
        ticker="BTCUSDT",
        leverage=10,
        entry_price=50000,
        stop_loss=48000,
        take_profit=55000,
        exchange=Exchange.BYBIT,
        direction=Direction.LONG,
    )
    fields.update(overrides)
    return TradeRequest(**fields)


def make_trade(**overrides) -> Trade:
    fields = dict(
        trade_id=f"{USER_ID}-{CHANNEL_ID}-BTCUSDT-long",
        ticker="BTCUSDT",
        leverage=10.0,
        exchange=Exchange.BYBIT,
        direction=Direction.LONG,
        entry_price=50000.0,
        stop_loss=48000.0,
        take_profit=55000.0,
        user_id=USER_ID,
        channel_id=CHANNEL_ID,
        message_id="101",
        closed=False,
        close_price=None,
    )
    fields.update(overrides)
    return Trade(**fields)
