"""
TT Planner - Plan Dispatcher
=============================
Hands plans to the Order Applier, skipping plans identical to the last one
dispatched. The signature is a canonical tuple (sorted keys, floored numbers),
so field order and float noise do not count as changes.
"""

import logging
import math
import threading
from typing import Dict, List, Optional, Protocol, Tuple

from tt_planner.models import AllocationTarget, TradeOrder

logger = logging.getLogger(__name__)

ALLOCATION = "allocation"
TRADE = "trade"

Signature = Tuple[tuple, ...]


class OrderApplier(Protocol):
    """Whatever actually writes plans into the game."""

    def apply_allocation(self, targets: List[AllocationTarget]) -> None: ...

    def apply_trades(self, orders: List[TradeOrder]) -> None: ...


class RecordingApplier:
    """In-memory applier: keeps every plan it receives."""

    def __init__(self):
        self.allocations: List[List[AllocationTarget]] = []
        self.trades: List[List[TradeOrder]] = []

    def apply_allocation(self, targets: List[AllocationTarget]) -> None:
        self.allocations.append(list(targets))

    def apply_trades(self, orders: List[TradeOrder]) -> None:
        self.trades.append(list(orders))

    @property
    def last_allocation(self) -> Optional[List[AllocationTarget]]:
        return self.allocations[-1] if self.allocations else None

    @property
    def last_trades(self) -> Optional[List[TradeOrder]]:
        return self.trades[-1] if self.trades else None


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def allocation_signature(targets: List[AllocationTarget]) -> Signature:
    return tuple(sorted(
        (t.producer_id, t.resolved_mode.value, int(t.target_unit_count),
         math.floor(t.target_percent * 100))
        for t in targets
    ))


def trade_signature(orders: List[TradeOrder]) -> Signature:
    return tuple(sorted(
        (o.resource_id, o.side.value, math.floor(o.quantity))
        for o in orders
    ))


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class PlanDispatcher:
    def __init__(self, applier: OrderApplier):
        self.applier = applier
        self._last: Dict[str, Signature] = {}
        # Compare, apply and record happen under one lock
        self._lock = threading.Lock()

    def reset(self):
        with self._lock:
            self._last.clear()

    def _dispatch(self, kind: str, signature: Signature, apply, plan) -> bool:
        with self._lock:
            if self._last.get(kind) == signature:
                logger.debug("Suppressed duplicate %s plan", kind)
                return False
            try:
                apply(plan)
            except Exception as e:
                # Leave the signature unrecorded so the next tick writes again
                logger.warning("Order applier failed on %s plan: %s", kind, e)
                return False
            self._last[kind] = signature
            return True

    def dispatch_allocation(self, targets: List[AllocationTarget]) -> bool:
        """Forward an allocation plan. Returns False when it was suppressed."""
        return self._dispatch(ALLOCATION, allocation_signature(targets),
                              self.applier.apply_allocation, targets)

    def dispatch_trades(self, orders: List[TradeOrder]) -> bool:
        """Forward a trade plan. Returns False when it was suppressed."""
        return self._dispatch(TRADE, trade_signature(orders),
                              self.applier.apply_trades, orders)
