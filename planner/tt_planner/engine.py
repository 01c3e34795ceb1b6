"""
TT Planner - Planning Engine
=============================
One tick = snapshot + policies -> allocation plan + funded trade plan -> dispatch.

PlanningEngine runs a single tick synchronously. ControlLoop repeats ticks on
a fixed period, strictly one after another.
"""

import logging
import threading
import time
from copy import deepcopy
from typing import Callable, Dict, List, Mapping, Optional

from tt_planner.allocation import plan_allocation
from tt_planner.config import GlobalBudget, LoopConfig
from tt_planner.dispatch import PlanDispatcher
from tt_planner.funding import PriceResolver, clamp_to_funding, price_table_resolver
from tt_planner.market import plan_trades
from tt_planner.models import ResourcePolicy, Snapshot, TickResult, TradeOrder
from tt_planner.policy import PolicyStore

logger = logging.getLogger(__name__)


class PlanningEngine:
    def __init__(
        self,
        budget: Optional[GlobalBudget] = None,
        dispatcher: Optional[PlanDispatcher] = None,
        price_resolver: Optional[PriceResolver] = None,
    ):
        self.budget = budget or GlobalBudget()
        self.dispatcher = dispatcher
        self.price_resolver = price_resolver

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def tick(self, snapshot: Snapshot, policies: Mapping[str, ResourcePolicy]) -> TickResult:
        budget = self.budget.normalized()
        policies = self._read_policies(policies)

        result = TickResult(tick=snapshot.tick)
        result.unseen_resource_ids = sorted(
            rid for rid in snapshot.resources if rid not in policies
        )
        for rid in result.unseen_resource_ids:
            policies[rid] = ResourcePolicy(resource_id=rid)

        self._plan_allocation(snapshot, policies, budget, result)
        if snapshot.market_available:
            self._plan_trades(snapshot, policies, budget, result)
        self._dispatch(snapshot, result)
        return result

    # ------------------------------------------------------------------
    # Phase 0: Policy copy
    # ------------------------------------------------------------------

    @staticmethod
    def _read_policies(policies: Mapping[str, ResourcePolicy]) -> Dict[str, ResourcePolicy]:
        if isinstance(policies, PolicyStore):
            return policies.snapshot()
        return deepcopy(dict(policies))

    # ------------------------------------------------------------------
    # Phase 1: Worker allocation
    # ------------------------------------------------------------------

    def _plan_allocation(self, snapshot, policies, budget, result):
        result.allocation = plan_allocation(
            snapshot.resources, snapshot.producers, policies, budget, snapshot.total_workers,
        )

    # ------------------------------------------------------------------
    # Phase 2: Market + funding
    # ------------------------------------------------------------------

    def _resolver(self, snapshot: Snapshot) -> Optional[PriceResolver]:
        if self.price_resolver is not None:
            return self.price_resolver
        if snapshot.prices:
            return price_table_resolver(snapshot.prices)
        return None

    def _plan_trades(self, snapshot, policies, budget, result):
        raw: List[TradeOrder] = plan_trades(snapshot.resources, policies, budget)
        result.trades_before_clamp = raw
        result.trades = clamp_to_funding(raw, snapshot.funding, budget, self._resolver(snapshot))

    # ------------------------------------------------------------------
    # Phase 3: Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, snapshot, result):
        if self.dispatcher is None:
            return
        result.allocation_dispatched = self.dispatcher.dispatch_allocation(result.allocation.targets)
        if snapshot.market_available:
            result.trades_dispatched = self.dispatcher.dispatch_trades(result.trades)


# ---------------------------------------------------------------------------
# Control loop
# ---------------------------------------------------------------------------

class ControlLoop:
    def __init__(
        self,
        engine: PlanningEngine,
        snapshot_source: Callable[[], Snapshot],
        policy_store: PolicyStore,
        config: Optional[LoopConfig] = None,
    ):
        self.engine = engine
        self.snapshot_source = snapshot_source
        self.policy_store = policy_store
        self.config = (config or LoopConfig()).normalized()
        self.attempts = 0
        self.ticks = 0
        self.last_result: Optional[TickResult] = None
        self._stop = threading.Event()

    def run_once(self) -> Optional[TickResult]:
        """Run one tick. Returns None when no snapshot could be read or planning failed."""
        self.attempts += 1
        try:
            snapshot = self.snapshot_source()
        except Exception as e:
            logger.warning("Snapshot unavailable, skipping tick %d: %s", self.attempts, e)
            return None

        snapshot.tick = self.attempts
        try:
            result = self.engine.tick(snapshot, self.policy_store.snapshot())
        except Exception as e:
            logger.warning("Planning failed on tick %d: %s", self.attempts, e)
            return None
        if result.unseen_resource_ids:
            self.policy_store.ensure_defaults(result.unseen_resource_ids)

        self.ticks += 1
        self.last_result = result
        return result

    def run(self, max_ticks: Optional[int] = None,
            on_tick: Optional[Callable[[TickResult], None]] = None):
        """Tick every period until stop() is called or max_ticks attempts ran."""
        self._stop.clear()
        period = self.config.period_seconds
        while not self._stop.is_set():
            started = time.monotonic()
            result = self.run_once()
            if result is not None and on_tick is not None:
                on_tick(result)
            if max_ticks is not None and self.attempts >= max_ticks:
                break
            self._stop.wait(max(0.0, period - (time.monotonic() - started)))

    def stop(self):
        self._stop.set()
