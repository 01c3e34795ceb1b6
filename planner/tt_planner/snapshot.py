"""
TT Planner - Snapshot Adapter
==============================
Turns a raw game-state mapping (YAML, JSON or HTTP body) into a Snapshot.

Garbage numbers become 0, unknown caps become None, locked or hidden producers
are dropped, and produced-resource keys are normalized so 'Ore', 'colony:metal'
and 'metal' all name the same resource.
"""

import math
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional

from tt_planner.models import ProducerCapacity, ResourceState, Snapshot, finite


class SnapshotError(ValueError):
    """Raised when a raw snapshot is not even shaped like one."""


# Alternative names used by some game data for the resources we plan
RESOURCE_ALIASES: Dict[str, str] = {
    "ore": "metal",
    "iron": "metal",
    "metalore": "metal",
    "watervapor": "water",
    "vapor": "water",
    "ice": "water",
    "component": "components",
    "electronic": "electronics",
    "android": "androids",
    "spaceship": "spaceships",
}


def normalize_key(key: Any) -> str:
    """'colony:Water Vapor' -> 'watervapor'."""
    k = str(key)
    if ":" in k:
        k = k.split(":")[-1]
    return "".join(k.split()).replace("_", "").lower()


def canonical_resource_id(key: Any, known: Optional[Iterable[str]] = None) -> str:
    """Map a produced-resource key onto a known resource id where possible."""
    nk = normalize_key(key)
    if known is None:
        return RESOURCE_ALIASES.get(nk, nk)

    by_norm = {normalize_key(r): r for r in known}
    if nk in by_norm:
        return by_norm[nk]
    alias = RESOURCE_ALIASES.get(nk)
    if alias and alias in by_norm:
        return by_norm[alias]
    if nk.endswith("s") and nk[:-1] in by_norm:
        return by_norm[nk[:-1]]
    return alias or nk


# ---------------------------------------------------------------------------
# Field access (camelCase or snake_case)
# ---------------------------------------------------------------------------

def _get(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return default


def _cap(raw: Any) -> Optional[float]:
    if raw is None:
        return None
    try:
        cap = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(cap) or cap <= 0:
        return None
    return cap


def _flag(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return bool(raw)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def resource_from_dict(resource_id: str, data: Mapping[str, Any]) -> ResourceState:
    data = data or {}
    return ResourceState(
        resource_id=resource_id,
        value=finite(_get(data, "value")),
        cap=_cap(_get(data, "cap")),
        production_rate=finite(_get(data, "productionRate", "production_rate")),
        consumption_rate=finite(_get(data, "consumptionRate", "consumption_rate")),
        unlocked=_flag(_get(data, "unlocked"), True),
    )


def producer_from_dict(data: Mapping[str, Any],
                       known_resources: Optional[Iterable[str]] = None) -> ProducerCapacity:
    pid = str(_get(data, "id", "producer_id", default=""))
    produced_raw = _get(data, "producedResourceIds", "produced_resource_ids", "produces", default=[])
    if isinstance(produced_raw, (str, bytes)):
        produced_raw = [produced_raw]
    elif isinstance(produced_raw, Mapping):
        produced_raw = list(produced_raw)
    known = list(known_resources) if known_resources is not None else None
    produced: FrozenSet[str] = frozenset(
        canonical_resource_id(k, known) for k in (produced_raw or [])
    )
    return ProducerCapacity(
        producer_id=pid,
        name=str(_get(data, "name", "displayName", default="") or ""),
        worker_need_per_unit=finite(_get(data, "workerNeedPerUnit", "worker_need_per_unit")),
        unit_count=max(0, int(finite(_get(data, "unitCount", "unit_count", "count")))),
        produced_resource_ids=produced,
    )


def _producer_available(data: Mapping[str, Any]) -> bool:
    return _flag(_get(data, "unlocked"), True) and not _flag(_get(data, "hidden", "isHidden"), False)


def snapshot_from_dict(raw: Any) -> Snapshot:
    """Build a Snapshot from a raw mapping. Never fails on bad numbers."""
    if not isinstance(raw, Mapping):
        raise SnapshotError(f"snapshot must be a mapping, got {type(raw).__name__}")

    raw_resources = _get(raw, "resources", default={}) or {}
    if not isinstance(raw_resources, Mapping):
        raise SnapshotError("'resources' must be a mapping of id -> state")
    resources = {
        str(rid): resource_from_dict(str(rid), data if isinstance(data, Mapping) else {})
        for rid, data in raw_resources.items()
    }

    raw_producers = _get(raw, "producers", default=[]) or []
    if isinstance(raw_producers, Mapping):
        raw_producers = [dict(v, id=v.get("id", k)) for k, v in raw_producers.items()
                         if isinstance(v, Mapping)]
    producers: List[ProducerCapacity] = []
    for data in raw_producers:
        if not isinstance(data, Mapping) or not _producer_available(data):
            continue
        p = producer_from_dict(data, resources.keys())
        if p.producer_id:
            producers.append(p)

    raw_prices = _get(raw, "prices", default={}) or {}
    if not isinstance(raw_prices, Mapping):
        raw_prices = {}
    prices: Dict[str, Dict[str, float]] = {}
    for rid, sides in raw_prices.items():
        if isinstance(sides, Mapping):
            prices[str(rid)] = {str(side).lower(): price for side, price in sides.items()}

    return Snapshot(
        resources=resources,
        producers=producers,
        total_workers=max(0.0, finite(_get(raw, "totalWorkers", "total_workers"))),
        funding=finite(_get(raw, "funding")),
        prices=prices,
        market_available=_flag(_get(raw, "marketAvailable", "market_available"), True),
        tick=int(finite(_get(raw, "tick"))),
    )


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    return {
        "tick": snapshot.tick,
        "totalWorkers": snapshot.total_workers,
        "funding": snapshot.funding,
        "marketAvailable": snapshot.market_available,
        "resources": {
            rid: {
                "value": r.value,
                "cap": r.cap,
                "productionRate": r.production_rate,
                "consumptionRate": r.consumption_rate,
                "unlocked": r.unlocked,
            }
            for rid, r in sorted(snapshot.resources.items())
        },
        "producers": [
            {
                "id": p.producer_id,
                "name": p.name,
                "workerNeedPerUnit": p.worker_need_per_unit,
                "unitCount": p.unit_count,
                "producedResourceIds": sorted(p.produced_resource_ids),
            }
            for p in snapshot.producers
        ],
        "prices": snapshot.prices,
    }
