"""Trade listing API (read-only)."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from tradebot.database import get_session
from tradebot.models.trade import Trade
from tradebot.api.deps import require_api_key

router = APIRouter(prefix="/api/trades", tags=["trades"], dependencies=[Depends(require_api_key)])


@router.get("")
def list_trades(
    open_only: bool = False,
    user_id: str | None = None,
    channel_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    stmt = select(Trade).order_by(Trade.updated_at.desc())
    if open_only:
        stmt = stmt.where(Trade.closed == False)  # noqa: E712
    if user_id is not None:
        stmt = stmt.where(Trade.user_id == user_id)
    if channel_id is not None:
        stmt = stmt.where(Trade.channel_id == channel_id)
    stmt = stmt.offset(offset).limit(limit)
    return session.exec(stmt).all()


@router.get("/{trade_id}")
def get_trade(trade_id: str, session: Session = Depends(get_session)):
    trade = session.get(Trade, trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    return trade
