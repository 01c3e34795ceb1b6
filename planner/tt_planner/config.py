"""
TT Planner - Configuration
===========================
GlobalBudget (planner knobs) and LoopConfig (tick timing).

Values coming from outside (YAML, CLI strings, HTTP) are clamped into their
documented ranges instead of being rejected.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping

from tt_planner.models import finite


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


# ---------------------------------------------------------------------------
# Global budget
# ---------------------------------------------------------------------------

@dataclass
class GlobalBudget:
    reserve_fraction: float = 0.05                 # 0-0.3, workers held back
    funding_floor: float = 0.0                     # never spend below this
    market_horizon_seconds: float = 30.0           # 5-120
    max_buy_fraction_per_tick: float = 0.05        # 0.001-0.2 of cap
    sell_keep_fraction_base: float = 0.50          # 0.1-0.95
    sell_keep_fraction_when_any_buy: float = 0.70  # 0.1-0.95
    low_funding_threshold: float = 5000.0          # buy cutoff when prices are unknown
    pack_leftover_workers: bool = False

    def normalized(self) -> "GlobalBudget":
        """Return a copy with every field clamped into range."""
        return replace(
            self,
            reserve_fraction=_clamp(finite(self.reserve_fraction), 0.0, 0.3),
            funding_floor=max(0.0, finite(self.funding_floor)),
            market_horizon_seconds=_clamp(finite(self.market_horizon_seconds, 30.0), 5.0, 120.0),
            max_buy_fraction_per_tick=_clamp(finite(self.max_buy_fraction_per_tick, 0.05), 0.001, 0.2),
            sell_keep_fraction_base=_clamp(finite(self.sell_keep_fraction_base, 0.5), 0.1, 0.95),
            sell_keep_fraction_when_any_buy=_clamp(
                finite(self.sell_keep_fraction_when_any_buy, 0.7), 0.1, 0.95),
            low_funding_threshold=max(0.0, finite(self.low_funding_threshold, 5000.0)),
            pack_leftover_workers=bool(self.pack_leftover_workers),
        )

    def summary(self) -> str:
        parts = [
            f"reserve={self.reserve_fraction:.2f}",
            f"floor={self.funding_floor:g}",
            f"horizon={self.market_horizon_seconds:g}s",
            f"max_buy={self.max_buy_fraction_per_tick:g}",
        ]
        if self.pack_leftover_workers:
            parts.append("pack")
        return ", ".join(parts)


# ---------------------------------------------------------------------------
# Loop timing
# ---------------------------------------------------------------------------

MIN_PERIOD_MS = 500
MAX_PERIOD_MS = 5000


@dataclass
class LoopConfig:
    period_ms: int = 1000

    def normalized(self) -> "LoopConfig":
        period = int(finite(self.period_ms, 1000))
        return LoopConfig(period_ms=int(_clamp(period, MIN_PERIOD_MS, MAX_PERIOD_MS)))

    @property
    def period_seconds(self) -> float:
        return self.normalized().period_ms / 1000.0


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

_BOOL_TRUE = {"1", "true", "yes", "on", "y"}

# Short aliases accepted on the command line
_ALIASES = {
    "reserve": "reserve_fraction",
    "floor": "funding_floor",
    "horizon": "market_horizon_seconds",
    "max_buy": "max_buy_fraction_per_tick",
    "keep": "sell_keep_fraction_base",
    "keep_any_buy": "sell_keep_fraction_when_any_buy",
    "low_funding": "low_funding_threshold",
    "pack": "pack_leftover_workers",
}


def _coerce(name: str, value: Any) -> Any:
    if name == "pack_leftover_workers":
        if isinstance(value, str):
            return value.strip().lower() in _BOOL_TRUE
        return bool(value)
    return finite(value, getattr(GlobalBudget, name))


def budget_from_dict(data: Mapping[str, Any]) -> GlobalBudget:
    """Build a clamped GlobalBudget from a YAML/JSON mapping. Unknown keys are ignored."""
    known = {f.name for f in fields(GlobalBudget)}
    kwargs: Dict[str, Any] = {}
    for key, val in (data or {}).items():
        key = _ALIASES.get(key, key)
        if key in known:
            kwargs[key] = _coerce(key, val)
    return GlobalBudget(**kwargs).normalized()


def budget_to_dict(budget: GlobalBudget) -> Dict[str, Any]:
    return {f.name: getattr(budget, f.name) for f in fields(GlobalBudget)}


def apply_budget_string(budget: GlobalBudget, s: str) -> GlobalBudget:
    """Override some fields of budget from a 'reserve=0.1,floor=500' string."""
    data = budget_to_dict(budget)
    for part in (s or "").split(","):
        part = part.strip()
        if "=" not in part:
            continue
        key, val = part.split("=", 1)
        data[key.strip()] = val.strip()
    return budget_from_dict(data)


def parse_budget_string(s: str) -> GlobalBudget:
    """Parse 'reserve=0.1,floor=500,pack=yes' into a GlobalBudget."""
    return apply_budget_string(GlobalBudget(), s)
