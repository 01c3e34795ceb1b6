"""Shared test fixtures for the TT planner test suite."""

import sys
from pathlib import Path

import pytest

# Ensure planner/ is on the path so `tt_planner` imports work
PLANNER_ROOT = Path(__file__).parent.parent
if str(PLANNER_ROOT) not in sys.path:
    sys.path.insert(0, str(PLANNER_ROOT))

from tt_planner.config import GlobalBudget
from tt_planner.models import (
    Mode, ProducerCapacity, ResourcePolicy, ResourceState, Snapshot,
)


def steady(resource_id, value=500.0, cap=1000.0, **kw):
    """Half-full resource with balanced flow (severity boost of exactly 1)."""
    return ResourceState(resource_id=resource_id, value=value, cap=cap,
                         production_rate=kw.pop("production_rate", 1.0),
                         consumption_rate=kw.pop("consumption_rate", 1.0), **kw)


@pytest.fixture
def no_reserve():
    return GlobalBudget(reserve_fraction=0.0)


@pytest.fixture
def producers():
    """Ore mine and water pump, one worker per unit each."""
    return [
        ProducerCapacity("oreMine", "Ore Mine", worker_need_per_unit=1, unit_count=10,
                         produced_resource_ids=frozenset({"metal"})),
        ProducerCapacity("waterPump", "Water Pump", worker_need_per_unit=1, unit_count=10,
                         produced_resource_ids=frozenset({"water"})),
    ]


@pytest.fixture
def resources():
    return {"metal": steady("metal"), "water": steady("water")}


@pytest.fixture
def policies():
    return {
        "metal": ResourcePolicy("metal", mode=Mode.ON, weight=1),
        "water": ResourcePolicy("water", mode=Mode.ON, weight=3),
    }


@pytest.fixture
def snapshot(resources, producers):
    return Snapshot(
        resources=resources,
        producers=producers,
        total_workers=100,
        funding=10000,
        prices={"metal": {"buy": 10, "sell": 8}, "water": {"buy": 2, "sell": 1}},
    )


@pytest.fixture
def data_dir():
    return PLANNER_ROOT / "data"
