"""
TT Planner - Worker Allocation Planner
=======================================
Proportional-share split of the worker budget across producers.

Each enabled resource picks one producer, contributes its severity-boosted
weight to that producer, and the worker budget is divided by weight share.
Unit counts are rounded up, then scaled back down if the rounding overshoots
the budget. Balance-mode producers are capped at the units they already have.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from tt_planner.config import GlobalBudget
from tt_planner.models import (
    AllocationPlan, AllocationTarget, Mode, ProducerCapacity,
    ResourcePolicy, ResourceState, finite,
)
from tt_planner.severity import severity_boost

logger = logging.getLogger(__name__)

_EPS = 1e-9
MAX_PACK_ITERATIONS = 5000


@dataclass
class _Line:
    """Aggregated demand on one producer for this tick."""
    producer: ProducerCapacity
    mode: Mode
    weight: float = 0.0
    desired_workers: float = 0.0
    count: int = 0

    @property
    def need(self) -> float:
        return self.producer.effective_worker_need

    @property
    def built(self) -> int:
        return max(0, int(finite(self.producer.unit_count)))

    def capped(self, count: int) -> int:
        count = max(0, count)
        if self.mode == Mode.BALANCE:
            return min(count, self.built)
        return count


# ---------------------------------------------------------------------------
# Producer selection
# ---------------------------------------------------------------------------

def candidate_producers(resource_id: str,
                        producers: Iterable[ProducerCapacity]) -> List[ProducerCapacity]:
    return [p for p in producers if resource_id in p.produced_resource_ids]


def choose_producer(candidates: List[ProducerCapacity],
                    preferred_id: Optional[str] = None) -> Optional[ProducerCapacity]:
    """Preferred producer if it is a candidate, else the alphabetically first by name."""
    if not candidates:
        return None
    if preferred_id:
        for p in candidates:
            if p.producer_id == preferred_id:
                return p
    return min(candidates, key=lambda p: (p.display_name, p.producer_id))


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

def _aggregate(resources: Mapping[str, ResourceState],
               producers: List[ProducerCapacity],
               policies: Mapping[str, ResourcePolicy],
               unserved: List[str]) -> Dict[str, _Line]:
    lines: Dict[str, _Line] = {}
    for resource_id in sorted(policies):
        policy = policies[resource_id]
        if policy.mode == Mode.OFF:
            continue
        state = resources.get(resource_id)
        if state is None or not state.unlocked:
            continue

        producer = choose_producer(
            candidate_producers(resource_id, producers),
            policy.preferred_producer_id,
        )
        if producer is None:
            unserved.append(resource_id)
            continue

        weight = finite(policy.weight) * severity_boost(state)
        if weight <= 0:
            continue

        line = lines.get(producer.producer_id)
        if line is None:
            lines[producer.producer_id] = _Line(producer=producer, mode=policy.mode, weight=weight)
        else:
            line.weight += weight
            if policy.mode == Mode.ON:
                line.mode = Mode.ON
    return lines


def _requested(lines: List[_Line]) -> float:
    return sum(line.count * line.need for line in lines)


def _trim_to_budget(lines: List[_Line], workers_budget: float):
    """Drop single units, heaviest producer first, until the plan fits."""
    tolerance = _EPS * max(1.0, workers_budget)
    while _requested(lines) > workers_budget + tolerance:
        active = [line for line in lines if line.count > 0]
        if not active:
            break
        heaviest = max(active, key=lambda l: (l.count * l.need, l.producer.producer_id))
        heaviest.count -= 1


def _pack_leftover(lines: List[_Line], workers_budget: float):
    """Hand out whole units with the workers left after rounding down."""
    remaining = workers_budget - _requested(lines)

    def can_add(line: _Line) -> bool:
        if line.need > remaining:
            return False
        return line.capped(line.count + 1) > line.count

    iterations = 0
    while remaining > _EPS and iterations < MAX_PACK_ITERATIONS:
        iterations += 1

        # Biggest deficit against the proportional target first
        best, best_score = None, -math.inf
        for line in lines:
            if not can_add(line):
                continue
            score = (line.desired_workers - line.count * line.need) / line.need
            if score > best_score:
                best, best_score = line, score

        # Everyone at or above target: best weight per worker
        if best is None or best_score <= 0:
            best, best_score = None, -math.inf
            for line in lines:
                if not can_add(line):
                    continue
                score = line.weight / line.need
                if score > best_score:
                    best, best_score = line, score
            if best is None:
                break

        best.count += 1
        remaining -= best.need


def plan_allocation(
    resources: Mapping[str, ResourceState],
    producers: List[ProducerCapacity],
    policies: Mapping[str, ResourcePolicy],
    budget: GlobalBudget,
    total_workers: float,
) -> AllocationPlan:
    """Compute per-producer unit targets for one tick.

    Args:
        resources: Resource states by id.
        producers: Producers visible this tick.
        policies: Resource policies by resource id (missing = Off).
        budget: Normalized global budget.
        total_workers: Workforce size reported by the snapshot.

    Returns:
        AllocationPlan. Empty (but valid) when nothing is demanded.
    """
    total_workers = max(0.0, finite(total_workers))
    workers_budget = total_workers * (1.0 - budget.reserve_fraction)
    plan = AllocationPlan(workers_budget=workers_budget)

    by_producer = _aggregate(resources, producers, policies, plan.unserved_resource_ids)
    if plan.unserved_resource_ids:
        logger.info("No producer for demanded resources: %s",
                    ", ".join(plan.unserved_resource_ids))

    lines = [by_producer[pid] for pid in sorted(by_producer)]
    total_weight = sum(line.weight for line in lines)
    if total_workers <= 0 or total_weight <= 0:
        return plan

    for line in lines:
        line.desired_workers = workers_budget * (line.weight / total_weight)
        line.count = line.capped(math.ceil(line.desired_workers / line.need - _EPS))

    requested = _requested(lines)
    if requested > workers_budget:
        factor = workers_budget / requested
        logger.debug("Worker request %.2f over budget %.2f, scaling by %.4f",
                     requested, workers_budget, factor)
        for line in lines:
            line.count = line.capped(math.floor(line.count * factor))
        _trim_to_budget(lines, workers_budget)

    if budget.pack_leftover_workers:
        _pack_leftover(lines, workers_budget)

    for line in lines:
        used = line.count * line.need
        plan.targets.append(AllocationTarget(
            producer_id=line.producer.producer_id,
            resolved_mode=line.mode,
            target_unit_count=line.count,
            target_percent=max(0.0, min(100.0, used / total_workers * 100.0)),
        ))
    plan.workers_requested = _requested(lines)
    return plan
