"""
TT Planner - Market Trade Planner
==================================
Buy/sell quantities per resource from fill and flow, with per-tick limits.
"""

import logging
import math
from typing import List, Mapping, Optional

from tt_planner.config import GlobalBudget
from tt_planner.models import ResourcePolicy, ResourceState, Side, TradeOrder, finite

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Buy thresholds
# ---------------------------------------------------------------------------

BUY_TARGET_FILL_DRAINING = 0.14
BUY_TARGET_FILL_STABLE = 0.08
BUY_COMFORT_MULTIPLIER = 1.25      # above target * 1.25 = comfortable, no buy
BUY_CRITICAL_FILL = 0.05
BUY_LOW_FILL = 0.10
BUY_FRACTION_CRITICAL = 0.12       # draining and below BUY_CRITICAL_FILL
BUY_FRACTION_LOW = 0.08            # draining and below BUY_LOW_FILL

# ---------------------------------------------------------------------------
# Sell thresholds
# ---------------------------------------------------------------------------

SELL_NEAR_FULL = 0.95
SELL_BRIMMING = 0.985
SELL_KEEP_NEAR_FULL = 0.25
SELL_KEEP_BRIMMING = 0.15
SELL_TICK_CAP_BRIMMING = 0.50
SELL_TICK_CAP_NEAR_FULL = 0.35
SELL_TICK_CAP_DEFAULT = 0.20
SELL_SHORTAGE_GUARD_FILL = 0.98
SELL_UNCAPPED_VALUE_FRACTION = 0.20


def _known_cap(state: ResourceState) -> Optional[float]:
    return finite(state.cap) if state.fill_ratio is not None else None


def buy_quantity(state: ResourceState, budget: GlobalBudget) -> int:
    value = finite(state.value)
    net = state.net_rate
    horizon = budget.market_horizon_seconds
    cap = _known_cap(state)

    if cap is None:
        return int(math.floor(max(0.0, -net) * horizon))

    fill = state.fill_ratio
    target_fill = BUY_TARGET_FILL_DRAINING if net < 0 else BUY_TARGET_FILL_STABLE
    want = max(0.0, cap * target_fill - value) + max(0.0, -net) * horizon

    max_fraction = budget.max_buy_fraction_per_tick
    if net < 0 and fill < BUY_CRITICAL_FILL:
        max_fraction = max(max_fraction, BUY_FRACTION_CRITICAL)
    elif net < 0 and fill < BUY_LOW_FILL:
        max_fraction = max(max_fraction, BUY_FRACTION_LOW)
    want = min(want, cap * max_fraction)

    if fill > target_fill * BUY_COMFORT_MULTIPLIER:
        want = 0.0
    return int(math.floor(want))


def sell_quantity(state: ResourceState, budget: GlobalBudget, any_buy: bool) -> int:
    value = finite(state.value)
    net = state.net_rate
    cap = _known_cap(state)

    if cap is None:
        if net <= 0:
            return 0
        want = min(value * SELL_UNCAPPED_VALUE_FRACTION, net * budget.market_horizon_seconds)
        return int(math.floor(max(0.0, want)))

    fill = state.fill_ratio
    keep = budget.sell_keep_fraction_when_any_buy if any_buy else budget.sell_keep_fraction_base
    if net > 0 and fill >= SELL_NEAR_FULL:
        keep = min(keep, SELL_KEEP_NEAR_FULL)
        if fill >= SELL_BRIMMING:
            keep = min(keep, SELL_KEEP_BRIMMING)
    want = max(0.0, value - cap * keep)

    if fill >= SELL_BRIMMING:
        per_tick = cap * SELL_TICK_CAP_BRIMMING
    elif fill >= SELL_NEAR_FULL:
        per_tick = cap * SELL_TICK_CAP_NEAR_FULL
    else:
        per_tick = cap * SELL_TICK_CAP_DEFAULT
    want = min(want, per_tick)

    # Never sell into an active shortage
    if net < 0 and fill < SELL_SHORTAGE_GUARD_FILL:
        want = 0.0
    return int(math.floor(want))


def plan_trades(
    resources: Mapping[str, ResourceState],
    policies: Mapping[str, ResourcePolicy],
    budget: GlobalBudget,
) -> List[TradeOrder]:
    """Build the raw (unfunded) trade plan, sorted by resource then side."""
    any_buy = any(p.market_buy for p in policies.values())
    orders: List[TradeOrder] = []

    for resource_id in sorted(policies):
        policy = policies[resource_id]
        if not (policy.market_buy or policy.market_sell):
            continue
        state = resources.get(resource_id)
        if state is None or not state.unlocked:
            continue

        if policy.market_buy:
            qty = buy_quantity(state, budget)
            if qty > 0:
                orders.append(TradeOrder(resource_id, Side.BUY, qty))
        if policy.market_sell:
            qty = sell_quantity(state, budget, any_buy)
            if qty > 0:
                orders.append(TradeOrder(resource_id, Side.SELL, qty))

    logger.debug("Trade plan: %d buy, %d sell",
                 sum(1 for o in orders if o.side == Side.BUY),
                 sum(1 for o in orders if o.side == Side.SELL))
    return orders
