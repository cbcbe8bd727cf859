"""Trade store: durable keyed storage for trade records.

Every call opens its own session and commits before returning, so reads always
see the latest write. Returned objects are detached; changing them has no
effect until they are handed back to ``save`` or ``update``.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from tradebot.models.trade import Trade

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = (
    "ticker",
    "leverage",
    "exchange",
    "direction",
    "entry_price",
    "stop_loss",
    "take_profit",
    "user_id",
    "channel_id",
    "message_id",
    "closed",
    "close_price",
)


class TradeStore:
    """SQLModel-backed trade persistence."""

    def __init__(self, engine: Engine):
        self._engine = engine

    def save(self, trade: Trade) -> None:
        """Insert or replace the full record keyed by ``trade.trade_id``."""
        record = Trade.model_validate(trade.model_dump())
        record.updated_at = datetime.now(timezone.utc)
        with Session(self._engine) as session:
            session.merge(record)
            session.commit()
        logger.debug(f"Saved trade {trade.trade_id}")

    def get(self, trade_id: str) -> Trade | None:
        with Session(self._engine) as session:
            return session.get(Trade, trade_id)

    def list_open(self) -> list[Trade]:
        """All trades not marked closed, in no particular order."""
        with Session(self._engine) as session:
            return list(session.exec(select(Trade).where(Trade.closed == False)).all())  # noqa: E712

    def list_open_for(self, user_id: str, channel_id: str) -> list[Trade]:
        with Session(self._engine) as session:
            stmt = select(Trade).where(
                Trade.closed == False,  # noqa: E712
                Trade.user_id == user_id,
                Trade.channel_id == channel_id,
            )
            return list(session.exec(stmt).all())

    def update(self, trade: Trade) -> None:
        """Overwrite an existing record. Unknown ids are ignored."""
        with Session(self._engine) as session:
            record = session.get(Trade, trade.trade_id)
            if record is None:
                logger.warning(f"Update skipped: trade {trade.trade_id} does not exist")
                return
            for name in _MUTABLE_FIELDS:
                setattr(record, name, getattr(trade, name))
            record.updated_at = datetime.now(timezone.utc)
            session.add(record)
            session.commit()
        logger.debug(f"Updated trade {trade.trade_id}")
