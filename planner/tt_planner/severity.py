"""
TT Planner - Severity Scorer
=============================
Turns a resource's fill/flow state into a multiplicative urgency factor
applied on top of the configured policy weight.
"""

from tt_planner.models import ResourceState, finite


# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

MAX_DEFICIT_BOOST = 1.5
LOW_FILL_THRESHOLD = 0.15     # < 15% of cap = running low
CRITICAL_FILL_THRESHOLD = 0.05  # < 5% of cap = about to stall
LOW_FILL_BOOST = 0.5
CRITICAL_FILL_BOOST = 0.5


def severity_boost(state: ResourceState) -> float:
    """Return the urgency factor (>= 1) for one resource.

    A draining resource gains up to +1.5 in proportion to how fast it drains
    relative to its consumption; a nearly empty one gains +0.5, and +0.5 more
    when it is almost out.
    """
    boost = 1.0

    net = state.net_rate
    if net < 0:
        consumption = finite(state.consumption_rate)
        boost += min(MAX_DEFICIT_BOOST, -net / max(1.0, consumption))

    fill = state.fill_ratio
    if fill is not None and fill < LOW_FILL_THRESHOLD:
        boost += LOW_FILL_BOOST
        if fill < CRITICAL_FILL_THRESHOLD:
            boost += CRITICAL_FILL_BOOST

    return boost
