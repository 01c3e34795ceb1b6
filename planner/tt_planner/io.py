"""
TT Planner - I/O
=================
Load snapshots, policies and budgets from YAML (or JSON, which YAML reads too),
save policies back, and export plans as JSON for the order applier side.
"""

import json
from pathlib import Path
from typing import Any, Dict

import yaml

from tt_planner.config import GlobalBudget, budget_from_dict, budget_to_dict
from tt_planner.models import ResourcePolicy, Snapshot, TickResult
from tt_planner.policy import policy_from_dict, policy_to_dict
from tt_planner.snapshot import SnapshotError, snapshot_from_dict


def _read(filepath: str) -> Any:
    with open(filepath, "r") as f:
        return yaml.safe_load(f)


def load_snapshot(filepath: str) -> Snapshot:
    data = _read(filepath)
    if data is None:
        raise SnapshotError(f"{filepath} is empty")
    return snapshot_from_dict(data)


def load_policies(filepath: str) -> Dict[str, ResourcePolicy]:
    """Read a `policies:` block (or a bare id -> fields mapping)."""
    data = _read(filepath) or {}
    block = data.get("policies", data) if isinstance(data, dict) else {}
    policies = {}
    for rid, fields in (block or {}).items():
        policies[str(rid)] = policy_from_dict(str(rid), fields or {})
    return policies


def save_policies(policies: Dict[str, ResourcePolicy], filepath: str):
    data = {"policies": {rid: policy_to_dict(p) for rid, p in sorted(policies.items())}}
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def load_budget(filepath: str) -> GlobalBudget:
    """Read a `budget:` block (or a bare mapping). Out-of-range values are clamped."""
    data = _read(filepath) or {}
    block = data.get("budget", data) if isinstance(data, dict) else {}
    return budget_from_dict(block or {})


def save_budget(budget: GlobalBudget, filepath: str):
    with open(filepath, "w") as f:
        yaml.dump({"budget": budget_to_dict(budget)}, f, default_flow_style=False, sort_keys=False)


# ---------------------------------------------------------------------------
# Plan export
# ---------------------------------------------------------------------------

def result_to_dict(result: TickResult) -> Dict[str, Any]:
    """JSON-serializable view of one tick's plans."""
    alloc = result.allocation
    return {
        "tick": result.tick,
        "allocation": [
            {"producer_id": t.producer_id, "resolved_mode": t.resolved_mode.value,
             "target_unit_count": t.target_unit_count,
             "target_percent": round(t.target_percent, 4)}
            for t in alloc.targets
        ],
        "unserved_resource_ids": list(alloc.unserved_resource_ids),
        "workers_budget": alloc.workers_budget,
        "workers_requested": alloc.workers_requested,
        "trades": [
            {"resource_id": o.resource_id, "side": o.side.value, "quantity": o.quantity}
            for o in result.trades
        ],
        "trades_before_clamp": [
            {"resource_id": o.resource_id, "side": o.side.value, "quantity": o.quantity}
            for o in result.trades_before_clamp
        ],
        "unseen_resource_ids": list(result.unseen_resource_ids),
    }


def export_result_json(result: TickResult, filepath: str):
    """Export the plans as JSON for the order applier."""
    with open(filepath, "w") as f:
        json.dump(result_to_dict(result), f, indent=2)
