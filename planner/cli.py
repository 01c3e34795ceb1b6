"""
TT Planner - CLI Entry Point
=============================
Usage:
    python cli.py plan <snapshot.yaml> [--policies policies.yaml] [--budget budget.yaml]
    python cli.py run <snapshot.yaml> [--ticks 10] [--period-ms 1000]
    python cli.py policy list [--policies policies.yaml]
    python cli.py policy set <resource> "mode=on,weight=3,buy=yes" [--policies policies.yaml]
    python cli.py web [--port 8080]
"""

import argparse
import logging
import sys

import yaml

from tt_planner.config import GlobalBudget, LoopConfig, apply_budget_string
from tt_planner.dispatch import PlanDispatcher, RecordingApplier
from tt_planner.engine import ControlLoop, PlanningEngine
from tt_planner.format import print_full_report
from tt_planner.io import export_result_json, load_budget, load_snapshot
from tt_planner.policy import PolicyStore, parse_policy_string
from tt_planner.snapshot import SnapshotError

DEFAULT_POLICIES = "policies.yaml"

LOAD_ERRORS = (OSError, SnapshotError, yaml.YAMLError, ValueError)


def _resolve_budget(args) -> GlobalBudget:
    """Budget file first, then 'k=v' overrides on top."""
    budget = GlobalBudget()
    if args.budget:
        budget = load_budget(args.budget)
        print(f"[budget] {budget.summary()}")
    if args.set:
        budget = apply_budget_string(budget, args.set)
        print(f"[budget] {budget.summary()}")
    return budget


def cmd_plan(args):
    try:
        snapshot = load_snapshot(args.file)
        store = PolicyStore.load(args.policies)
        budget = _resolve_budget(args)
    except LOAD_ERRORS as e:
        print(f"Error loading {args.file}: {e}")
        sys.exit(1)

    engine = PlanningEngine(budget)
    result = engine.tick(snapshot, store.snapshot())
    print_full_report(result, snapshot, budget)

    if result.unseen_resource_ids and args.save_policies:
        store.ensure_defaults(result.unseen_resource_ids)
        store.save()
        print(f"\nAdded default policies to {args.policies}")

    if args.export_json:
        export_result_json(result, args.export_json)
        print(f"\nExported JSON to {args.export_json}")


def cmd_run(args):
    try:
        store = PolicyStore.load(args.policies)
        budget = _resolve_budget(args)
    except LOAD_ERRORS as e:
        print(f"Error loading configuration: {e}")
        sys.exit(1)

    applier = RecordingApplier()
    engine = PlanningEngine(budget, dispatcher=PlanDispatcher(applier))
    # The snapshot file is re-read every tick, so an external writer can feed the loop
    loop = ControlLoop(engine, lambda: load_snapshot(args.file), store,
                       LoopConfig(period_ms=args.period_ms))

    def on_tick(result):
        flags = []
        if result.allocation_dispatched:
            flags.append("allocation")
        if result.trades_dispatched:
            flags.append("trades")
        written = ", ".join(flags) if flags else "no change"
        print(f"[tick {result.tick}] {len(result.allocation.targets)} targets, "
              f"{len(result.trades)} orders -> {written}")

    try:
        loop.run(max_ticks=args.ticks, on_tick=on_tick)
    except KeyboardInterrupt:
        loop.stop()

    if loop.last_result is not None:
        print_full_report(loop.last_result, budget=budget)
    print(f"\n{loop.ticks}/{loop.attempts} ticks planned, "
          f"{len(applier.allocations)} allocation + {len(applier.trades)} trade writes")

    if args.save_policies:
        store.save()
        print(f"Saved policies to {args.policies}")


def cmd_policy(args):
    try:
        store = PolicyStore.load(args.policies)
    except LOAD_ERRORS as e:
        print(f"Error loading {args.policies}: {e}")
        sys.exit(1)

    if args.policy_action == "list":
        policies = store.snapshot()
        if not policies:
            print(f"No policies in {args.policies}")
            return
        print(f"{'Resource':<16} {'Mode':<8} {'Weight':>6} {'Buy':>4} {'Sell':>5}  Producer")
        print("-" * 60)
        for rid, p in sorted(policies.items()):
            print(f"{rid:<16} {p.mode.value:<8} {p.weight:>6.1f} "
                  f"{'yes' if p.market_buy else '':>4} {'yes' if p.market_sell else '':>5}  "
                  f"{p.preferred_producer_id or 'auto'}")
        return

    if not args.resource or not args.fields:
        print("policy set needs <resource> and 'key=value,...'")
        sys.exit(2)
    try:
        policy = store.update(args.resource, **parse_policy_string(args.fields))
    except ValueError as e:
        print(f"Bad policy: {e}")
        sys.exit(2)
    store.save()
    print(f"[policy] {policy.resource_id}: mode={policy.mode.value}, weight={policy.weight:g}, "
          f"buy={policy.market_buy}, sell={policy.market_sell}")


def main():
    parser = argparse.ArgumentParser(
        description="TT Allocation & Trade Planner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Log planner decisions (-v info, -vv debug)")
    sub = parser.add_subparsers(dest="command", help="Command to run")

    def add_common(p):
        p.add_argument("--policies", "-p", default=DEFAULT_POLICIES,
                       help=f"Policy YAML file (default: {DEFAULT_POLICIES})")
        p.add_argument("--budget", "-b", default=None,
                       help="Budget YAML file")
        p.add_argument("--set", default=None,
                       help="Budget overrides: 'reserve=0.1,floor=500,pack=yes'")
        p.add_argument("--save-policies", action="store_true",
                       help="Write default policies for new resources back to the policy file")

    # plan
    p_plan = sub.add_parser("plan", aliases=["p"],
                            help="Plan one tick from a snapshot file")
    p_plan.add_argument("file", help="Snapshot YAML/JSON file")
    add_common(p_plan)
    p_plan.add_argument("--export-json", default=None,
                        help="Export the plans as JSON for the order applier")

    # run
    p_run = sub.add_parser("run", aliases=["loop"],
                           help="Run the control loop over a snapshot file")
    p_run.add_argument("file", help="Snapshot YAML/JSON file (re-read every tick)")
    add_common(p_run)
    p_run.add_argument("--ticks", "-n", type=int, default=10,
                       help="Number of ticks (default: 10)")
    p_run.add_argument("--period-ms", type=int, default=1000,
                       help="Tick period in ms, clamped to 500-5000 (default: 1000)")

    # policy
    p_pol = sub.add_parser("policy", help="Policy store management")
    p_pol.add_argument("policy_action", choices=["list", "set"],
                       help="list=show policies, set=change one resource")
    p_pol.add_argument("resource", nargs="?", default=None,
                       help="Resource id (required for set)")
    p_pol.add_argument("fields", nargs="?", default=None,
                       help="'mode=on,weight=3,buy=yes,sell=no,producer=ore_mine'")
    p_pol.add_argument("--policies", "-p", default=DEFAULT_POLICIES,
                       help=f"Policy YAML file (default: {DEFAULT_POLICIES})")

    # web
    p_web = sub.add_parser("web", aliases=["serve"],
                           help="Start the web frontend")
    p_web.add_argument("--port", type=int, default=8080,
                       help="Port to serve on (default: 8080)")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG if args.verbose > 1 else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    if args.command in ("plan", "p"):
        cmd_plan(args)
    elif args.command in ("run", "loop"):
        cmd_run(args)
    elif args.command == "policy":
        cmd_policy(args)
    elif args.command in ("web", "serve"):
        from tt_planner.web import start_server
        start_server(port=args.port)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
