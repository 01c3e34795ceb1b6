"""
TT Planner - Data Models
=========================
Dataclasses shared by the planners, the engine and the collaborators.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


# Smallest worker need per unit; lower or missing values are raised to it
WORKER_NEED_FLOOR = 0.001


def finite(value, default: float = 0.0) -> float:
    """Coerce a possibly missing / non-numeric / non-finite value to a float."""
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if math.isfinite(out) else default


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Mode(Enum):
    OFF = "off"
    ON = "on"
    BALANCE = "balance"


class Side(Enum):
    BUY = "buy"
    SELL = "sell"


# ---------------------------------------------------------------------------
# Per-tick inputs
# ---------------------------------------------------------------------------

@dataclass
class ResourceState:
    resource_id: str
    value: float = 0.0
    cap: Optional[float] = None          # None = unknown / unbounded
    production_rate: float = 0.0
    consumption_rate: float = 0.0
    unlocked: bool = True

    @property
    def net_rate(self) -> float:
        return finite(self.production_rate) - finite(self.consumption_rate)

    @property
    def fill_ratio(self) -> Optional[float]:
        cap = finite(self.cap) if self.cap is not None else 0.0
        if cap <= 0:
            return None
        return finite(self.value) / cap


@dataclass
class ProducerCapacity:
    producer_id: str
    name: str = ""
    worker_need_per_unit: float = 1.0
    unit_count: int = 0
    produced_resource_ids: FrozenSet[str] = frozenset()

    @property
    def effective_worker_need(self) -> float:
        return max(finite(self.worker_need_per_unit), WORKER_NEED_FLOOR)

    @property
    def display_name(self) -> str:
        return self.name or self.producer_id


@dataclass
class ResourcePolicy:
    resource_id: str
    mode: Mode = Mode.OFF
    weight: float = 1.0                  # 0-10
    preferred_producer_id: Optional[str] = None
    market_buy: bool = False
    market_sell: bool = False

    def __post_init__(self):
        if not isinstance(self.mode, Mode):
            self.mode = Mode(str(self.mode).lower())
        self.weight = min(10.0, max(0.0, finite(self.weight, 1.0)))


@dataclass
class Snapshot:
    resources: Dict[str, ResourceState] = field(default_factory=dict)
    producers: List[ProducerCapacity] = field(default_factory=list)
    total_workers: float = 0.0
    funding: float = 0.0
    prices: Dict[str, Dict[str, float]] = field(default_factory=dict)
    market_available: bool = True
    tick: int = 0


# ---------------------------------------------------------------------------
# Per-tick outputs
# ---------------------------------------------------------------------------

@dataclass
class AllocationTarget:
    producer_id: str
    resolved_mode: Mode
    target_unit_count: int
    target_percent: float


@dataclass
class TradeOrder:
    resource_id: str
    side: Side
    quantity: int


@dataclass
class AllocationPlan:
    targets: List[AllocationTarget] = field(default_factory=list)
    unserved_resource_ids: List[str] = field(default_factory=list)
    workers_budget: float = 0.0
    workers_requested: float = 0.0


@dataclass
class TickResult:
    tick: int = 0
    allocation: AllocationPlan = field(default_factory=AllocationPlan)
    trades: List[TradeOrder] = field(default_factory=list)
    trades_before_clamp: List[TradeOrder] = field(default_factory=list)
    unseen_resource_ids: List[str] = field(default_factory=list)
    allocation_dispatched: bool = False
    trades_dispatched: bool = False
