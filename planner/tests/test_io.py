"""Tests for YAML/JSON loading and plan export."""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
import yaml

from tt_planner.config import GlobalBudget
from tt_planner.engine import PlanningEngine
from tt_planner.io import (
    export_result_json, load_budget, load_policies, load_snapshot,
    result_to_dict, save_budget, save_policies,
)
from tt_planner.models import Mode, ResourcePolicy
from tt_planner.snapshot import SnapshotError


def test_load_sample_snapshot(data_dir):
    s = load_snapshot(str(data_dir / "snapshots" / "colony.yaml"))
    assert s.total_workers == 1000
    assert sorted(s.resources) == ["energy", "metal", "research", "water"]
    assert s.resources["energy"].cap is None
    # the hidden lab is dropped, the ore mine produces metal
    by_id = {p.producer_id: p for p in s.producers}
    assert "lab" not in by_id
    assert by_id["oreMine"].produced_resource_ids == frozenset({"metal"})


def test_load_sample_policies(data_dir):
    policies = load_policies(str(data_dir / "policies" / "default.yaml"))
    assert policies["metal"].mode == Mode.ON
    assert policies["water"].mode == Mode.BALANCE
    assert policies["energy"].preferred_producer_id == "powerPlant"


def test_load_json_snapshot(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"totalWorkers": 10, "resources": {"metal": {"value": 1}}}))
    assert load_snapshot(str(path)).resources["metal"].value == 1


def test_empty_snapshot_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(SnapshotError):
        load_snapshot(str(path))


def test_bare_policy_mapping(tmp_path):
    path = tmp_path / "p.yaml"
    path.write_text("metal:\n  mode: balance\n  weight: 2\n")
    assert load_policies(str(path))["metal"].weight == 2


def test_saved_modes_stay_strings(tmp_path):
    """'on'/'off' must not turn into YAML booleans on reload."""
    path = tmp_path / "p.yaml"
    save_policies({"metal": ResourcePolicy("metal", Mode.ON),
                   "water": ResourcePolicy("water", Mode.OFF)}, str(path))

    raw = yaml.safe_load(path.read_text())
    assert raw["policies"]["metal"]["mode"] == "on"
    assert load_policies(str(path))["water"].mode == Mode.OFF


def test_budget_file(tmp_path):
    path = tmp_path / "budget.yaml"
    path.write_text("budget:\n  reserve: 0.5\n  funding_floor: 1000\n")
    b = load_budget(str(path))
    assert b.reserve_fraction == 0.3
    assert b.funding_floor == 1000


def test_budget_save_and_load(tmp_path):
    path = str(tmp_path / "budget.yaml")
    save_budget(GlobalBudget(market_horizon_seconds=45), path)
    assert load_budget(path).market_horizon_seconds == 45


def test_export_result_json(tmp_path, snapshot, policies):
    result = PlanningEngine(GlobalBudget(reserve_fraction=0)).tick(snapshot, policies)
    path = tmp_path / "plan.json"

    export_result_json(result, str(path))

    data = json.loads(path.read_text())
    assert data == result_to_dict(result)
    assert data["allocation"][0] == {
        "producer_id": "oreMine", "resolved_mode": "on",
        "target_unit_count": 25, "target_percent": 25.0,
    }


def test_unquoted_yaml_modes(tmp_path):
    path = tmp_path / "p.yaml"
    path.write_text("policies:\n  metal:\n    mode: on\n  water:\n    mode: off\n")
    policies = load_policies(str(path))
    assert policies["metal"].mode == Mode.ON
    assert policies["water"].mode == Mode.OFF
