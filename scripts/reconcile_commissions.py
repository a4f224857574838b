#!/usr/bin/env python3
"""
Reconcile partner commission balances against the commission ledger.

Replays every applied ledger entry, compares the result with the stored
partner balance columns and checks each entry's before/after snapshots.

Usage:
    python3 scripts/reconcile_commissions.py
    python3 scripts/reconcile_commissions.py --partner-id <uuid>
    python3 scripts/reconcile_commissions.py --json

Exit status:
    0  every partner is consistent
    1  usage or connection error
    2  drift found
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("DATABASE_URL", "sqlite:///commissions.db")

W = 80


def banner(title: str) -> None:
    print()
    print("=" * W)
    print(f"  {title}")
    print("=" * W)


def report_to_dict(report) -> dict:
    return {
        "partner_id": str(report.partner_id),
        "consistent": report.is_consistent,
        "entries_checked": report.entries_checked,
        "stored": report.stored.as_dict(),
        "derived": report.derived.as_dict(),
        "drift": report.balance_drift,
        "balance_problems": list(report.balance_problems),
        "entry_discrepancies": [
            {
                "transaction_id": str(d.transaction_id),
                "reference_number": d.reference_number,
                "problem": d.problem,
            }
            for d in report.entry_discrepancies
        ],
    }


def print_report(report, currency: str) -> None:
    from commission_kernel.db.types import format_minor_units

    status = "OK   " if report.is_consistent else "DRIFT"
    print(f"  [{status}] partner {report.partner_id}  ({report.entries_checked} entries)")
    if report.is_consistent:
        return
    for name, delta in report.balance_drift.items():
        stored = report.stored.as_dict()[name]
        derived = report.derived.as_dict()[name]
        print(
            f"      {name:<14} stored {format_minor_units(stored, currency):>12}  "
            f"ledger {format_minor_units(derived, currency):>12}  "
            f"diff {format_minor_units(delta, currency):>12}"
        )
    for problem in report.balance_problems:
        print(f"      invariant: {problem}")
    for d in report.entry_discrepancies:
        print(f"      entry {d.reference_number}: {d.problem}")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Reconcile partner commission balances against the ledger.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  python3 scripts/reconcile_commissions.py\n"
            "  python3 scripts/reconcile_commissions.py --partner-id 1b2c3d4e-...\n"
            "  python3 scripts/reconcile_commissions.py --json\n"
        ),
    )
    parser.add_argument(
        "--partner-id", type=str,
        help="Reconcile a single partner (default: all partners)",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Output JSON instead of formatted text",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to a commission configuration YAML file",
    )
    parser.add_argument(
        "--db-url", type=str, default=DEFAULT_DB_URL,
        help=f"Database URL (default: {DEFAULT_DB_URL})",
    )

    args = parser.parse_args()

    partner_id = None
    if args.partner_id:
        try:
            partner_id = UUID(args.partner_id)
        except ValueError as exc:
            print(f"  ERROR: Invalid UUID: {exc}", file=sys.stderr)
            return 1

    # Suppress library logging
    logging.disable(logging.CRITICAL)

    from commission_config import get_active_config
    from commission_kernel.db.engine import get_session_factory, init_engine_from_url
    from commission_kernel.exceptions import CommissionKernelError
    from commission_services.reporting_service import ReportingService

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"  ERROR: Invalid configuration: {exc}", file=sys.stderr)
        return 1

    try:
        init_engine_from_url(args.db_url, echo=False)
    except Exception as exc:
        print(f"  ERROR: Cannot connect to database: {exc}", file=sys.stderr)
        return 1

    reporting = ReportingService(get_session_factory(), config)
    try:
        reports = reporting.reconcile(partner_id)
    except CommissionKernelError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    drift = [r for r in reports if not r.is_consistent]

    if args.json:
        print(json.dumps([report_to_dict(r) for r in reports], indent=2, default=str))
        return 2 if drift else 0

    banner("COMMISSION RECONCILIATION")
    for report in reports:
        print_report(report, config.money.currency)
    banner(f"{len(reports)} partner(s) checked, {len(drift)} with drift")
    return 2 if drift else 0


if __name__ == "__main__":
    sys.exit(main())
