"""FastAPI application entry point.

Hosts the Telegram bot (which runs the trade refresh scheduler on its own
event loop) and a small read-only operations API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tradebot.config import settings
from tradebot.database import create_db_and_tables, engine
from tradebot.services.trade_store import TradeStore
from tradebot.utils.logging import setup_logging
from tradebot.api import system, trades

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    telegram_bot = None
    if settings.telegram_bot_token:
        from tradebot.services.telegram_bot import init_bot
        telegram_bot = init_bot(TradeStore(engine))
        telegram_bot.start()
    else:
        logger.warning("TB_TELEGRAM_BOT_TOKEN not set; bot and trade refresh are disabled")

    yield

    if telegram_bot:
        telegram_bot.stop()


app = FastAPI(
    title="Trade Tracker",
    description="Telegram bot tracking simulated leveraged crypto trades",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(system.router)
app.include_router(trades.router)
