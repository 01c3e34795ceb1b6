"""
TT Planner - Policy Store
==========================
User-owned ResourcePolicy map. The UI side mutates it at any time; the engine
only ever sees a deep copy taken at the start of a tick.
"""

import logging
import threading
from copy import deepcopy
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional

from tt_planner.models import Mode, ResourcePolicy

logger = logging.getLogger(__name__)

_BOOL_TRUE = {"1", "true", "yes", "on", "y"}

# Field aliases for 'mode=on,weight=2,buy=yes' strings and YAML files
_FIELD_ALIASES = {
    "producer": "preferred_producer_id",
    "preferred_producer": "preferred_producer_id",
    "buy": "market_buy",
    "sell": "market_sell",
}
_POLICY_FIELDS = {"mode", "weight", "preferred_producer_id", "market_buy", "market_sell"}


def _as_bool(val: Any) -> bool:
    if isinstance(val, str):
        return val.strip().lower() in _BOOL_TRUE
    return bool(val)


def normalize_policy_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Map raw keys/values onto ResourcePolicy constructor arguments."""
    out: Dict[str, Any] = {}
    for key, val in (data or {}).items():
        key = _FIELD_ALIASES.get(key, key)
        if key not in _POLICY_FIELDS:
            continue
        if key == "mode":
            if isinstance(val, bool):
                # YAML 1.1 reads unquoted on/off as booleans
                val = Mode.ON if val else Mode.OFF
            elif not isinstance(val, Mode):
                val = Mode(str(val).strip().lower())
        elif key in ("market_buy", "market_sell"):
            val = _as_bool(val)
        elif key == "preferred_producer_id":
            val = str(val) if val not in (None, "", "auto") else None
        out[key] = val
    return out


def policy_from_dict(resource_id: str, data: Mapping[str, Any]) -> ResourcePolicy:
    return ResourcePolicy(resource_id=resource_id, **normalize_policy_fields(data))


def policy_to_dict(policy: ResourcePolicy) -> Dict[str, Any]:
    return {
        "mode": policy.mode.value,
        "weight": policy.weight,
        "preferred_producer_id": policy.preferred_producer_id,
        "market_buy": policy.market_buy,
        "market_sell": policy.market_sell,
    }


def parse_policy_string(s: str) -> Dict[str, Any]:
    """Parse 'mode=on,weight=3,buy=yes' into ResourcePolicy field values."""
    data = {}
    for part in (s or "").split(","):
        part = part.strip()
        if "=" not in part:
            continue
        key, val = part.split("=", 1)
        data[key.strip()] = val.strip()
    return normalize_policy_fields(data)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class PolicyStore:
    def __init__(self, policies: Optional[Mapping[str, ResourcePolicy]] = None,
                 path: Optional[str] = None):
        self._lock = threading.Lock()
        self._policies: Dict[str, ResourcePolicy] = deepcopy(dict(policies or {}))
        self.path = path

    @classmethod
    def load(cls, path: str) -> "PolicyStore":
        from pathlib import Path
        from tt_planner.io import load_policies
        policies = load_policies(path) if Path(path).exists() else {}
        return cls(policies, path=path)

    def save(self, path: Optional[str] = None):
        from tt_planner.io import save_policies
        target = path or self.path
        if not target:
            raise ValueError("PolicyStore has no path to save to")
        save_policies(self.snapshot(), target)

    def snapshot(self) -> Dict[str, ResourcePolicy]:
        """Consistent copy of every policy (copy-on-read)."""
        with self._lock:
            return deepcopy(self._policies)

    def get(self, resource_id: str) -> ResourcePolicy:
        with self._lock:
            policy = self._policies.get(resource_id)
            return deepcopy(policy) if policy else ResourcePolicy(resource_id=resource_id)

    def set_policy(self, policy: ResourcePolicy):
        with self._lock:
            self._policies[policy.resource_id] = deepcopy(policy)

    def update(self, resource_id: str, **changes) -> ResourcePolicy:
        """Change some fields of one policy, creating it with defaults if needed."""
        changes = normalize_policy_fields(changes)
        with self._lock:
            current = self._policies.get(resource_id) or ResourcePolicy(resource_id=resource_id)
            updated = replace(current, **changes)
            self._policies[resource_id] = updated
            return deepcopy(updated)

    def ensure_defaults(self, resource_ids: Iterable[str]) -> List[str]:
        """Create default (Off) policies for ids seen for the first time."""
        created = []
        with self._lock:
            for rid in resource_ids:
                if rid not in self._policies:
                    self._policies[rid] = ResourcePolicy(resource_id=rid)
                    created.append(rid)
        if created:
            logger.debug("Created default policies: %s", ", ".join(created))
        return created

    def __len__(self) -> int:
        with self._lock:
            return len(self._policies)
