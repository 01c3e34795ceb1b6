"""
TT Planner - Output Formatting
===============================
Pretty-printing for one tick's plans.
"""

from typing import Optional

from tt_planner.config import GlobalBudget
from tt_planner.models import Side, Snapshot, TickResult


def fmt_amount(val: float) -> str:
    """Short human amount: 1234 -> 1.23k, 5e6 -> 5.00M."""
    abs_val = abs(val)
    sign = "-" if val < 0 else ""
    for size, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "k")):
        if abs_val >= size:
            digits = 1 if abs_val >= size * 10 else 2
            return f"{sign}{abs_val / size:.{digits}f}{suffix}"
    return f"{sign}{abs_val:.0f}" if abs_val >= 100 else f"{sign}{abs_val:.2f}"


def print_full_report(result: TickResult, snapshot: Optional[Snapshot] = None,
                      budget: Optional[GlobalBudget] = None):
    print()
    print("=" * 70)
    print("  TT ALLOCATION & TRADE PLANNER")
    print(f"  Tick: {result.tick}")
    if budget is not None:
        print(f"  Budget: {budget.summary()}")
    if snapshot is not None:
        print(f"  Workers: {fmt_amount(snapshot.total_workers)}   "
              f"Funding: {fmt_amount(snapshot.funding)}")
    print("=" * 70)

    print_allocation(result, snapshot)
    print_trades(result)
    print_notes(result)


def print_allocation(result: TickResult, snapshot: Optional[Snapshot] = None):
    alloc = result.allocation
    print()
    print("--- WORKER ALLOCATION ---")
    if not alloc.targets:
        print(" No producer demanded (nothing enabled)")
        return

    names = {}
    if snapshot is not None:
        names = {p.producer_id: p.display_name for p in snapshot.producers}

    print(f" {'Producer':<24} {'Mode':<8} {'Units':>7} {'% Work':>8}")
    print(f" {'-' * 24} {'-' * 8} {'-' * 7} {'-' * 8}")
    for t in alloc.targets:
        name = names.get(t.producer_id, t.producer_id)
        print(f" {name[:24]:<24} {t.resolved_mode.value:<8} "
              f"{t.target_unit_count:>7} {t.target_percent:>7.2f}%")
    print(f" Workers used: {fmt_amount(alloc.workers_requested)} / "
          f"{fmt_amount(alloc.workers_budget)} budget")


def print_trades(result: TickResult):
    print()
    print("--- MARKET ORDERS ---")
    if not result.trades and not result.trades_before_clamp:
        print(" None")
        return

    before = {(o.resource_id, o.side): o.quantity for o in result.trades_before_clamp}
    print(f" {'Resource':<16} {'Side':<5} {'Qty':>10} {'Planned':>10}")
    print(f" {'-' * 16} {'-' * 5} {'-' * 10} {'-' * 10}")
    for o in result.trades:
        planned = before.get((o.resource_id, o.side), o.quantity)
        print(f" {o.resource_id[:16]:<16} {o.side.value:<5} "
              f"{o.quantity:>10} {planned:>10}")

    kept = {(o.resource_id, o.side) for o in result.trades}
    for rid, side in before:
        if side == Side.BUY and (rid, side) not in kept:
            print(f" {rid[:16]:<16} {side.value:<5} {'(unfunded)':>10} {before[(rid, side)]:>10}")


def print_notes(result: TickResult):
    notes = []
    if result.allocation.unserved_resource_ids:
        notes.append("No producer for: " + ", ".join(result.allocation.unserved_resource_ids))
    if result.unseen_resource_ids:
        notes.append("New resources (default Off): " + ", ".join(result.unseen_resource_ids))
    if not notes:
        return
    print()
    print("--- NOTES ---")
    for n in notes:
        print(f" {n}")
