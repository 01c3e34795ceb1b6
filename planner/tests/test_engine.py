"""Tests for the planning engine and the control loop."""

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from tt_planner.config import GlobalBudget, LoopConfig
from tt_planner.dispatch import PlanDispatcher, RecordingApplier
from tt_planner.engine import ControlLoop, PlanningEngine
from tt_planner.models import Mode, ResourcePolicy, ResourceState, Side
from tt_planner.policy import PolicyStore


def _engine(applier=None, **budget):
    budget.setdefault("reserve_fraction", 0.0)
    dispatcher = PlanDispatcher(applier) if applier is not None else None
    return PlanningEngine(GlobalBudget(**budget), dispatcher=dispatcher)


# ---------------------------------------------------------------------------
# Single tick
# ---------------------------------------------------------------------------

def test_tick_plans_allocation(snapshot, policies):
    result = _engine().tick(snapshot, policies)
    units = {t.producer_id: t.target_unit_count for t in result.allocation.targets}
    assert units == {"oreMine": 25, "waterPump": 75}


def test_tick_reports_unseen_resources(snapshot):
    snapshot.resources["ice"] = ResourceState("ice", value=0, cap=100)
    policies = {"metal": ResourcePolicy("metal", mode=Mode.ON)}

    result = _engine().tick(snapshot, policies)

    assert result.unseen_resource_ids == ["ice", "water"]
    assert [t.producer_id for t in result.allocation.targets] == ["oreMine"]
    assert "ice" not in policies


def test_tick_does_not_mutate_policies(snapshot, policies):
    before = {rid: (p.mode, p.weight) for rid, p in policies.items()}
    _engine().tick(snapshot, policies)
    assert {rid: (p.mode, p.weight) for rid, p in policies.items()} == before


def test_tick_accepts_policy_store(snapshot, policies):
    result = _engine().tick(snapshot, PolicyStore(policies))
    assert len(result.allocation.targets) == 2


def test_tick_plans_and_funds_trades(snapshot):
    snapshot.resources["metal"] = ResourceState("metal", value=20, cap=1000, consumption_rate=5)
    snapshot.funding = 600
    policies = {"metal": ResourcePolicy("metal", market_buy=True)}

    result = _engine().tick(snapshot, policies)

    assert [(o.resource_id, o.side, o.quantity) for o in result.trades_before_clamp] == [
        ("metal", Side.BUY, 120)]
    # 600 funding at 10 per unit
    assert result.trades[0].quantity == 60


def test_price_resolver_overrides_snapshot_prices(snapshot):
    snapshot.resources["metal"] = ResourceState("metal", value=20, cap=1000, consumption_rate=5)
    snapshot.funding = 600
    engine = _engine()
    engine.price_resolver = lambda rid, side: 100.0

    result = engine.tick(snapshot, {"metal": ResourcePolicy("metal", market_buy=True)})

    assert result.trades[0].quantity == 6


def test_market_unavailable_skips_trades(snapshot):
    snapshot.market_available = False
    snapshot.resources["metal"] = ResourceState("metal", value=20, cap=1000, consumption_rate=5)
    applier = RecordingApplier()

    result = _engine(applier).tick(snapshot, {"metal": ResourcePolicy("metal", market_buy=True)})

    assert result.trades == []
    assert result.trades_dispatched is False
    assert applier.trades == []
    assert result.allocation_dispatched is True


def test_identical_ticks_dispatch_once(snapshot, policies):
    applier = RecordingApplier()
    engine = _engine(applier)

    first = engine.tick(snapshot, policies)
    second = engine.tick(snapshot, policies)

    assert first.allocation_dispatched and not second.allocation_dispatched
    assert len(applier.allocations) == 1


def test_budget_is_normalized_per_tick(snapshot, policies):
    engine = _engine(reserve_fraction=0.9)
    result = engine.tick(snapshot, policies)
    assert result.allocation.workers_budget == pytest.approx(70)


# ---------------------------------------------------------------------------
# Control loop
# ---------------------------------------------------------------------------

def test_loop_skips_tick_without_snapshot(snapshot, policies, caplog):
    snapshots = [None, snapshot]

    def source():
        s = snapshots.pop(0)
        if s is None:
            raise OSError("state file missing")
        return s

    loop = ControlLoop(_engine(), source, PolicyStore(policies))
    with caplog.at_level(logging.WARNING):
        assert loop.run_once() is None
    result = loop.run_once()

    assert "state file missing" in caplog.text
    assert result.tick == 2
    assert (loop.attempts, loop.ticks) == (2, 1)


class FailingEngine(PlanningEngine):
    def tick(self, snapshot, policies):
        raise OverflowError("cannot plan")


def test_loop_survives_planning_errors(snapshot, policies, caplog):
    loop = ControlLoop(FailingEngine(), lambda: snapshot, PolicyStore(policies),
                       LoopConfig(period_ms=500))
    with caplog.at_level(logging.WARNING):
        loop.run(max_ticks=2)

    assert (loop.attempts, loop.ticks) == (2, 0)
    assert loop.last_result is None
    assert "cannot plan" in caplog.text


def test_loop_adds_default_policies(snapshot):
    store = PolicyStore()
    loop = ControlLoop(_engine(), lambda: snapshot, store)

    loop.run_once()

    assert sorted(store.snapshot()) == ["metal", "water"]
    assert store.get("metal").mode == Mode.OFF


def test_loop_sees_policy_changes_next_tick(snapshot):
    store = PolicyStore()
    loop = ControlLoop(_engine(), lambda: snapshot, store)

    assert loop.run_once().allocation.targets == []
    store.update("water", mode="on")
    assert [t.producer_id for t in loop.run_once().allocation.targets] == ["waterPump"]


def test_loop_run_stops_at_max_ticks(snapshot, policies):
    seen = []
    loop = ControlLoop(_engine(), lambda: snapshot, PolicyStore(policies),
                       LoopConfig(period_ms=500))
    loop.run(max_ticks=2, on_tick=seen.append)
    assert [r.tick for r in seen] == [1, 2]


def test_loop_stop_from_callback(snapshot, policies):
    loop = ControlLoop(_engine(), lambda: snapshot, PolicyStore(policies))
    loop.run(on_tick=lambda r: loop.stop())
    assert loop.ticks == 1


def test_loop_period_is_clamped():
    assert LoopConfig(period_ms=10).normalized().period_ms == 500
    assert LoopConfig(period_ms=60000).normalized().period_ms == 5000
    assert LoopConfig(period_ms=2000).period_seconds == 2.0
