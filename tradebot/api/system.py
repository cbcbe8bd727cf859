"""System API: health check, scheduler status, manual refresh."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException

from tradebot.api.deps import require_api_key

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(require_api_key)])
def scheduler_status():
    """Current scheduler state with job details."""
    from tradebot.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.post("/refresh", dependencies=[Depends(require_api_key)])
async def trigger_refresh():
    """Run one refresh cycle over all open trades on the bot's loop."""
    from tradebot.services.telegram_bot import get_bot

    bot = get_bot()
    if bot is None or bot.lifecycle is None:
        raise HTTPException(status_code=503, detail="Telegram bot is not running")
    summary = await asyncio.wrap_future(bot.submit_refresh())
    return {"status": "ok", "summary": summary}
