#!/usr/bin/env python3
"""
Run a payout calculation, validate a plan, or debug a single entity.

Usage:
    python3 scripts/run_calculation.py --plan plan.yaml --dataset data.yaml --period 2024-03
    python3 scripts/run_calculation.py --plan plan.yaml --validate-only
    python3 scripts/run_calculation.py --plan plan.yaml --dataset data.yaml --period 2024-03 \\
        --entity-id store-017
    python3 scripts/run_calculation.py --db-url sqlite:///incentives.db --tenant acme \\
        --rule-set optica-2024 --period 2024-03 --json

Exit codes:
    0  success (warnings may have been printed)
    1  configuration error, data-access failure or timeout
    2  bad command line
"""

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 80


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def field(label: str, value, indent: int = 2) -> None:
    print(f"{' ' * indent}{label:<22} {value}")


def print_result(result) -> None:
    from incentive_engines.narrative import describe_result

    print()
    print(f"  {result.entity_id}  ({result.external_id or '-'})  variant={result.variant_id}")
    for line in describe_result(result):
        print(f"      {line}")
    for warning in result.warnings:
        print(f"      ! {warning}")


def validate_only(plan_paths: list[str], settings) -> int:
    from incentive_config.loader import load_plan
    from incentive_config.validator import validate_plan

    status = 0
    for path in plan_paths:
        plan = load_plan(path)
        validation = validate_plan(plan, settings.band_gap_epsilon)
        banner(f"PLAN {plan.plan_id} v{plan.version} ({path})")
        if not validation.issues:
            print("  no issues")
        for issue in validation.issues:
            print(f"  {issue}")
        if not validation.is_valid:
            status = 1
    return status


def build_data_access(args):
    if args.db_url:
        from incentive_kernel.db.engine import get_session_factory, init_engine_from_url
        from incentive_services.sql_data_access import SqlDataAccess

        init_engine_from_url(args.db_url)
        return SqlDataAccess(get_session_factory()), args.tenant

    from incentive_config.loader import load_dataset, load_plan
    from incentive_services.data_access import InMemoryDataAccess

    plans = [load_plan(p) for p in args.plan]
    dataset = load_dataset(args.dataset)
    return InMemoryDataAccess.from_dataset(dataset, plans), dataset.tenant_id


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run an incentive calculation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--plan", action="append", default=[], help="Plan YAML file (repeatable)")
    parser.add_argument("--dataset", help="Dataset YAML file (entities, facts, assignments)")
    parser.add_argument("--db-url", help="Database URL instead of YAML files")
    parser.add_argument("--tenant", default="default", help="Tenant id (database mode)")
    parser.add_argument("--rule-set", help="Rule set id (defaults to the only --plan)")
    parser.add_argument("--period", help="Period id to calculate")
    parser.add_argument("--entity-id", help="Evaluate one entity without persisting")
    parser.add_argument("--settings", help="Engine settings YAML file")
    parser.add_argument("--validate-only", action="store_true", help="Only validate --plan files")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("--verbose", action="store_true", help="Emit structured logs to stderr")

    args = parser.parse_args()

    from incentive_config.settings import load_settings
    from incentive_kernel.exceptions import IncentiveKernelError
    from incentive_kernel.logging_config import configure_logging

    if args.verbose:
        configure_logging(level=logging.DEBUG)
    else:
        logging.disable(logging.CRITICAL)

    settings = load_settings(args.settings)

    if args.validate_only:
        if not args.plan:
            parser.error("--validate-only needs at least one --plan")
        return validate_only(args.plan, settings)

    if not args.period:
        parser.error("--period is required")
    if not args.db_url and (not args.plan or not args.dataset):
        parser.error("give --plan and --dataset, or --db-url")

    rule_set_id = args.rule_set
    if rule_set_id is None:
        if args.db_url or len(args.plan) != 1:
            parser.error("--rule-set is required with --db-url or several --plan files")

    from incentive_services.calculation_orchestrator import CalculationOrchestrator

    try:
        data_access, tenant_id = build_data_access(args)
        if rule_set_id is None:
            from incentive_config.loader import load_plan

            rule_set_id = load_plan(args.plan[0]).plan_id
        orchestrator = CalculationOrchestrator(data_access, settings)

        if args.entity_id:
            outcome = orchestrator.calculate_entity(rule_set_id, args.entity_id, args.period)
            if args.json:
                payload = outcome.to_dict() if hasattr(outcome, "to_dict") else vars(outcome)
                print(json.dumps(payload, indent=2, ensure_ascii=False))
            elif hasattr(outcome, "components"):
                print_result(outcome)
            else:
                print(f"  {outcome.entity_id} skipped: {outcome.reason}")
            return 0

        run = orchestrator.run_calculation(tenant_id, rule_set_id, args.period)
    except IncentiveKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        for issue in getattr(exc, "issues", []):
            print(f"    {issue}", file=sys.stderr)
        return 1

    if args.json:
        payload = run.to_dict()
        payload["run_fingerprint"] = run.run_fingerprint
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return 0

    banner(f"CALCULATION {rule_set_id} / {args.period}")
    field("outcome", run.outcome.value)
    field("entities", run.entity_count)
    field("total_payout", f"{run.total_payout:,.2f}")
    field("fingerprint", run.run_fingerprint)
    for result in run.results:
        print_result(result)
    if run.skipped:
        banner("SKIPPED")
        for skip in run.skipped:
            print(f"  {skip.entity_id}: {skip.reason}")
    if run.warnings:
        banner("WARNINGS")
        for warning in run.warnings:
            print(f"  {warning}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
