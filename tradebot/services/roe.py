"""Return-on-equity for a leveraged position."""

from tradebot.models.trade import Direction


def compute_roe(
    entry_price: float,
    current_price: float,
    leverage: float,
    direction: Direction,
) -> float:
    """Percent ROE of a position opened at ``entry_price`` and marked at ``current_price``.

    NaN inputs propagate. ``entry_price`` must be non-zero.
    """
    if Direction(direction) == Direction.LONG:
        price_change = (current_price - entry_price) / entry_price
    else:
        price_change = (entry_price - current_price) / entry_price
    return price_change * leverage * 100
