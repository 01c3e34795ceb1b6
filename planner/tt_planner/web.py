"""
TT Planner - Web Frontend
==========================
FastAPI server: plan a posted snapshot, stream a short control loop, and
read/edit the policy store and budget the UI layer owns.

Usage:
    python -m tt_planner.web
    python cli.py web [--port 8080]
"""

import json
import queue
import threading
from copy import deepcopy
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
import uvicorn

from tt_planner.config import LoopConfig, budget_from_dict, budget_to_dict
from tt_planner.dispatch import PlanDispatcher, RecordingApplier
from tt_planner.engine import ControlLoop, PlanningEngine
from tt_planner.io import result_to_dict
from tt_planner.policy import PolicyStore, policy_from_dict, policy_to_dict
from tt_planner.snapshot import SnapshotError, snapshot_from_dict

app = FastAPI(title="TT Allocation & Trade Planner")

# Server-side state: the policy store stands in for the user-facing layer
policy_store = PolicyStore()
applier = RecordingApplier()
engine = PlanningEngine(dispatcher=PlanDispatcher(applier))
# Requests run in a threadpool; ticks on the shared engine go one at a time
_tick_lock = threading.Lock()


# ---------------------------------------------------------------------------
# Pydantic models for request/response
# ---------------------------------------------------------------------------

class PolicyIn(BaseModel):
    mode: str = "off"
    weight: float = 1.0
    preferred_producer_id: Optional[str] = None
    market_buy: bool = False
    market_sell: bool = False


class BudgetIn(BaseModel):
    reserve_fraction: Optional[float] = None
    funding_floor: Optional[float] = None
    market_horizon_seconds: Optional[float] = None
    max_buy_fraction_per_tick: Optional[float] = None
    sell_keep_fraction_base: Optional[float] = None
    sell_keep_fraction_when_any_buy: Optional[float] = None
    low_funding_threshold: Optional[float] = None
    pack_leftover_workers: Optional[bool] = None


class PlanRequest(BaseModel):
    snapshot: Dict[str, Any]
    policies: Optional[Dict[str, PolicyIn]] = None  # None = use the server store
    budget: Optional[BudgetIn] = None               # None = use the server budget


class RunRequest(BaseModel):
    snapshot: Dict[str, Any]
    ticks: int = Field(default=5, ge=1, le=100)
    period_ms: int = 1000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_snapshot(raw: Dict[str, Any]):
    try:
        return snapshot_from_dict(raw)
    except SnapshotError as e:
        raise HTTPException(400, f"Bad snapshot: {e}")


def _policies_from_input(policies: Dict[str, PolicyIn]):
    try:
        return {rid: policy_from_dict(rid, p.model_dump()) for rid, p in policies.items()}
    except ValueError as e:
        raise HTTPException(400, f"Bad policy: {e}")


def _merged_budget(budget_in: Optional[BudgetIn]):
    if budget_in is None:
        return engine.budget
    data = budget_to_dict(engine.budget)
    data.update(budget_in.model_dump(exclude_none=True))
    return budget_from_dict(data)


# ---------------------------------------------------------------------------
# API Endpoints
# ---------------------------------------------------------------------------

@app.post("/api/plan")
def api_plan(req: PlanRequest):
    """Run one planning tick and dispatch the result."""
    snapshot = _parse_snapshot(req.snapshot)
    if req.policies is not None:
        policies = _policies_from_input(req.policies)
    else:
        policies = policy_store.snapshot()

    tick_engine = engine
    if req.budget is not None:
        tick_engine = PlanningEngine(_merged_budget(req.budget), dispatcher=engine.dispatcher)

    with _tick_lock:
        result = tick_engine.tick(snapshot, policies)
    if req.policies is None and result.unseen_resource_ids:
        policy_store.ensure_defaults(result.unseen_resource_ids)

    out = result_to_dict(result)
    out["allocation_dispatched"] = result.allocation_dispatched
    out["trades_dispatched"] = result.trades_dispatched
    return out


@app.post("/api/run")
def api_run(req: RunRequest):
    """Run a short control loop over a fixed snapshot, streaming each tick (SSE)."""
    base = _parse_snapshot(req.snapshot)
    progress_queue = queue.Queue()

    def run_loop():
        loop_engine = PlanningEngine(engine.budget, dispatcher=PlanDispatcher(RecordingApplier()))
        loop = ControlLoop(loop_engine, lambda: deepcopy(base), policy_store,
                           LoopConfig(period_ms=req.period_ms))
        loop.run(max_ticks=req.ticks,
                 on_tick=lambda r: progress_queue.put(("tick", result_to_dict(r))))
        progress_queue.put(("complete", {"ticks": loop.ticks}))

    thread = threading.Thread(target=run_loop, daemon=True)
    thread.start()

    def event_stream():
        while True:
            try:
                event_type, data = progress_queue.get(timeout=60)
                yield f"event: {event_type}\ndata: {json.dumps(data)}\n\n"
                if event_type == "complete":
                    break
            except queue.Empty:
                yield f"event: ping\ndata: {{}}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/api/policies")
def api_policies():
    """List every stored policy."""
    return {
        "policies": {rid: policy_to_dict(p) for rid, p in sorted(policy_store.snapshot().items())}
    }


@app.put("/api/policies/{resource_id}")
def api_set_policy(resource_id: str, req: PolicyIn):
    """Replace one policy."""
    try:
        policy = policy_from_dict(resource_id, req.model_dump())
    except ValueError as e:
        raise HTTPException(400, f"Bad policy: {e}")
    policy_store.set_policy(policy)
    return {"resource_id": resource_id, **policy_to_dict(policy)}


@app.get("/api/budget")
def api_budget():
    return budget_to_dict(engine.budget)


@app.put("/api/budget")
def api_set_budget(req: BudgetIn):
    """Update some budget fields. Out-of-range values are clamped."""
    engine.budget = _merged_budget(req)
    return budget_to_dict(engine.budget)


@app.post("/api/dispatcher/reset")
def api_reset_dispatcher():
    """Forget the last dispatched plans so the next tick is always written."""
    engine.dispatcher.reset()
    return {"status": "ok"}


def start_server(port: int = 8080):
    """Start the uvicorn server."""
    print(f"Starting TT Planner at http://localhost:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


if __name__ == "__main__":
    start_server()
