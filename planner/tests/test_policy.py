"""Tests for resource policies and the policy store."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from tt_planner.models import Mode, ResourcePolicy
from tt_planner.policy import (
    PolicyStore, parse_policy_string, policy_from_dict, policy_to_dict,
)


def test_policy_defaults_are_off():
    p = ResourcePolicy("metal")
    assert (p.mode, p.weight, p.market_buy, p.market_sell) == (Mode.OFF, 1.0, False, False)


def test_weight_is_clamped():
    assert ResourcePolicy("metal", weight=50).weight == 10
    assert ResourcePolicy("metal", weight=-1).weight == 0


def test_mode_from_string():
    assert ResourcePolicy("metal", mode="Balance").mode == Mode.BALANCE


def test_bad_mode_rejected():
    with pytest.raises(ValueError):
        policy_from_dict("metal", {"mode": "turbo"})


def test_policy_from_dict_aliases():
    p = policy_from_dict("metal", {"mode": "on", "buy": "yes", "sell": 0, "producer": "auto"})
    assert p.mode == Mode.ON
    assert p.market_buy is True
    assert p.market_sell is False
    assert p.preferred_producer_id is None


def test_policy_to_dict_reloads():
    p = ResourcePolicy("metal", Mode.ON, 2.5, "oreMine", True, False)
    assert policy_from_dict("metal", policy_to_dict(p)) == p


def test_parse_policy_string():
    fields = parse_policy_string("mode=balance, weight=3, producer=pump")
    assert fields == {"mode": Mode.BALANCE, "weight": "3", "preferred_producer_id": "pump"}


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

def test_snapshot_is_a_copy():
    store = PolicyStore({"metal": ResourcePolicy("metal", Mode.ON)})
    copy = store.snapshot()
    copy["metal"].mode = Mode.OFF
    copy["water"] = ResourcePolicy("water")

    assert store.get("metal").mode == Mode.ON
    assert len(store) == 1


def test_get_missing_returns_default():
    assert PolicyStore().get("ice") == ResourcePolicy("ice")


def test_update_creates_and_merges():
    store = PolicyStore()
    store.update("metal", mode="on", weight=4)
    updated = store.update("metal", buy="yes")

    assert (updated.mode, updated.weight, updated.market_buy) == (Mode.ON, 4, True)


def test_update_clamps_weight():
    assert PolicyStore().update("metal", weight=99).weight == 10


def test_ensure_defaults_only_creates_new():
    store = PolicyStore({"metal": ResourcePolicy("metal", Mode.ON)})
    created = store.ensure_defaults(["metal", "water", "ice"])

    assert created == ["water", "ice"]
    assert store.get("metal").mode == Mode.ON
    assert store.get("ice").mode == Mode.OFF


def test_save_without_path_fails():
    with pytest.raises(ValueError):
        PolicyStore().save()


def test_load_missing_file_is_empty(tmp_path):
    store = PolicyStore.load(str(tmp_path / "policies.yaml"))
    assert len(store) == 0


def test_save_and_load(tmp_path):
    path = str(tmp_path / "nested" / "policies.yaml")
    store = PolicyStore(path=path)
    store.update("metal", mode="on", weight=2, buy=True)
    store.update("water", mode="off", producer="pump")
    store.save()

    loaded = PolicyStore.load(path)

    assert loaded.snapshot() == store.snapshot()
