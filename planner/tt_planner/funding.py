"""
TT Planner - Funding Clamp
===========================
Scales buy orders so the net market spend stays above the funding floor.
Sell orders are never reduced here.
"""

import logging
import math
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from tt_planner.config import GlobalBudget
from tt_planner.models import Side, TradeOrder, finite

logger = logging.getLogger(__name__)

# (resource_id, side) -> unit price, or None when the market cannot quote it
PriceResolver = Callable[[str, Side], Optional[float]]


def no_prices(resource_id: str, side: Side) -> Optional[float]:
    return None


def price_table_resolver(prices: Mapping[str, Mapping[str, float]]) -> PriceResolver:
    """Resolver over a {resource_id: {"buy": p, "sell": p}} table."""
    table: Dict[Tuple[str, str], float] = {}
    for resource_id, sides in (prices or {}).items():
        for side, price in (sides or {}).items():
            table[(resource_id, str(side).lower())] = price

    def resolve(resource_id: str, side: Side) -> Optional[float]:
        return table.get((resource_id, side.value))

    return resolve


def _resolve(resolver: PriceResolver, order: TradeOrder) -> Optional[float]:
    try:
        price = resolver(order.resource_id, order.side)
    except Exception as e:
        logger.warning("Price lookup failed for %s/%s: %s",
                       order.resource_id, order.side.value, e)
        return None
    if price is None:
        return None
    price = finite(price, -1.0)
    return price if price >= 0 else None


def _without_buys(orders: List[TradeOrder]) -> List[TradeOrder]:
    return [o for o in orders if o.side != Side.BUY]


def clamp_to_funding(
    orders: List[TradeOrder],
    funding: float,
    budget: GlobalBudget,
    price_resolver: Optional[PriceResolver] = None,
) -> List[TradeOrder]:
    """Return a funded copy of the trade plan.

    Args:
        orders: Raw trade plan.
        funding: Funding currently available.
        budget: Normalized global budget (floor and low-funding threshold).
        price_resolver: Unit price lookup; None means no prices at all.

    Returns:
        New list of TradeOrder. Buy quantities may shrink or vanish.
    """
    resolver = price_resolver or no_prices
    funding = finite(funding)
    floor = budget.funding_floor

    if funding <= floor + 1:
        logger.info("Funding %.0f at floor %.0f, dropping buys", funding, floor)
        return _without_buys(orders)

    priced = [(o, _resolve(resolver, o)) for o in orders]
    if orders and all(price is None for _, price in priced):
        if funding < budget.low_funding_threshold:
            logger.info("No market prices and funding %.0f below %.0f, dropping buys",
                        funding, budget.low_funding_threshold)
            return _without_buys(orders)
        return [TradeOrder(o.resource_id, o.side, o.quantity) for o in orders]

    buy_cost = sum(o.quantity * p for o, p in priced if p is not None and o.side == Side.BUY)
    sell_revenue = sum(o.quantity * p for o, p in priced if p is not None and o.side == Side.SELL)
    max_spend = funding - floor

    if buy_cost - sell_revenue <= max_spend or buy_cost <= 0:
        return [TradeOrder(o.resource_id, o.side, o.quantity) for o in orders]

    allowed = max(0.0, max_spend + sell_revenue)
    factor = max(0.0, min(1.0, allowed / buy_cost))
    logger.info("Net market cost %.0f over budget %.0f, scaling buys by %.3f",
                buy_cost - sell_revenue, max_spend, factor)

    funded: List[TradeOrder] = []
    for o in orders:
        qty = o.quantity
        if o.side == Side.BUY:
            qty = int(math.floor(qty * factor))
        if qty > 0:
            funded.append(TradeOrder(o.resource_id, o.side, qty))
    return funded
