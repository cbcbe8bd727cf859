"""Periodic refresh cycle over all open trades.

This is the function APScheduler calls on each interval. It only sequences the
open trades through ``TradeLifecycle.refresh_trade`` and keeps one trade's
failure from aborting the rest of the cycle.
"""

import logging
import time

from tradebot.engine.lifecycle import RefreshOutcome, TradeLifecycle

logger = logging.getLogger(__name__)


async def run_refresh_cycle(lifecycle: TradeLifecycle) -> dict:
    """Refresh every open trade once.

    Returns a summary dict with the number of trades seen, a count per
    ``RefreshOutcome`` value, "errors" for unexpected exceptions, and the
    cycle duration in seconds.
    """
    started = time.monotonic()
    summary = {"trades": 0, "errors": 0}
    summary.update({outcome.value: 0 for outcome in RefreshOutcome})

    logger.info("Running active trade update...")
    try:
        trades = lifecycle.store.list_open()
    except Exception as e:
        logger.error(f"Failed to load open trades: {e}", exc_info=True)
        summary["errors"] += 1
        summary["duration_s"] = round(time.monotonic() - started, 3)
        return summary

    for trade in trades:
        summary["trades"] += 1
        try:
            outcome = await lifecycle.refresh_trade(trade)
            summary[outcome.value] += 1
        except Exception as e:
            logger.error(f"Error updating trade {trade.trade_id}: {e}", exc_info=True)
            summary["errors"] += 1

    summary["duration_s"] = round(time.monotonic() - started, 3)
    logger.info(
        f"Active trade update finished: {summary['trades']} trades, "
        f"{summary['refreshed']} refreshed, {summary['skipped']} skipped, "
        f"{summary['abandoned']} abandoned, {summary['failed']} failed, "
        f"{summary['errors']} errors in {summary['duration_s']}s"
    )
    return summary
