"""
Bid pricing rules for the auction.

Maps the current price of an item to the smallest accepted raise and the
next minimum bid. All functions are pure so the same rules can be applied by
the engine and re-checked by tests or clients.
"""

from typing import Optional, Sequence, Tuple

from . import config


# Rejection reason codes shared with the auction controller
REASON_BELOW_MINIMUM = 'below_minimum'
REASON_INSUFFICIENT_POINTS = 'insufficient_points'


def min_increment(
    price: int,
    rules: Sequence[Tuple[int, int]] = None,
    step_increment: int = None,
    step_span: int = None
) -> int:
    """
    Calculate the minimum bid increment for a price.

    Args:
        price: Current price of the item
        rules: Tier table as (max_price, unit) pairs, ascending (default from config)
        step_increment: Unit growth per span above the last tier
        step_span: Width of each span above the last tier

    Returns:
        Minimum amount a new bid must exceed the price by

    Examples:
        min_increment(50)   # 5
        min_increment(150)  # 10
        min_increment(450)  # 25
    """
    rules = rules if rules is not None else config.BID_UNIT_RULES
    step_increment = step_increment if step_increment is not None else config.BID_UNIT_INCREMENT
    step_span = step_span if step_span is not None else config.BID_UNIT_PRICE_THRESHOLD

    for max_price, unit in rules:
        if price <= max_price:
            return unit

    # Past the table: one extra step for every started span above the last tier
    last_max_price, last_unit = rules[-1]
    spans_above = (price - (last_max_price + 1)) // step_span + 1

    return last_unit + spans_above * step_increment


def next_min_bid(price: int, **tier_kwargs) -> int:
    """Return the lowest amount that may be bid against the current price."""
    return price + min_increment(price, **tier_kwargs)


def bid_rejection_reason(
    price: int,
    amount: int,
    available_points: int,
    **tier_kwargs
) -> Optional[str]:
    """
    Explain why a bid would be rejected.

    Args:
        price: Current price of the item
        amount: Proposed bid amount
        available_points: Bidding team's current balance

    Returns:
        Reason code, or None if the bid is acceptable
    """
    if amount > available_points:
        return REASON_INSUFFICIENT_POINTS

    if amount < next_min_bid(price, **tier_kwargs):
        return REASON_BELOW_MINIMUM

    return None


def can_bid(price: int, amount: int, available_points: int, **tier_kwargs) -> bool:
    """
    Check whether a bid is allowed.

    Both conditions are hard requirements: the amount must not exceed the
    team's balance and must reach next_min_bid(price). Nothing is clamped.
    """
    return bid_rejection_reason(price, amount, available_points, **tier_kwargs) is None


def format_time(tenths: int) -> str:
    """
    Render a timer value in tenths of a second as M:SS.

    Args:
        tenths: Timer value (300 = 30.0 seconds)

    Returns:
        String such as "0:30"
    """
    seconds = max(tenths, 0) // 10
    return f"{seconds // 60}:{seconds % 60:02d}"
