"""
Print the parts report of a work order.

Shows the per-part ledger, the reconciliation buckets and the report status
straight from the database, without going through the API.

Usage:
    python scripts/work_order_report.py WO-1001
    python scripts/work_order_report.py WO-1001 --json
"""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.models.reports import WorkOrderReport
from reconciliation.service import get_default_service


def print_report(report: WorkOrderReport) -> None:
    print(f"\nWork order {report.work_order_id}: {report.report_status.value}")
    print("-" * 64)
    print(f"{'PART':<16}{'ISSUED':>12}{'INSTALLED':>12}{'REMAINING':>12}")
    for entry in report.ledger:
        print(f"{entry.part_id:<16}{entry.issued_qty:>12}{entry.installed_qty:>12}{entry.remaining_qty:>12}")
    print("-" * 64)

    recon = report.reconciliation
    for label, bucket in (
        ("Matched", recon.matched),
        ("Issued, not installed", recon.issued_not_installed),
        ("Installed, not issued", recon.installed_not_issued),
    ):
        parts = ", ".join(e.part_id for e in bucket) or "-"
        print(f"{label:<24}{parts}")

    totals = report.totals
    print(f"\nParts cost: {totals.parts_cost_total}")
    print(f"QA result:  {report.qa_result.value if report.qa_result else 'none'}")


def main():
    parser = argparse.ArgumentParser(description="Show a work order parts report")
    parser.add_argument("work_order_id")
    parser.add_argument("--json", action="store_true", help="Print the API response body")
    args = parser.parse_args()

    result = get_default_service().build_report(args.work_order_id)
    if not result.ok:
        print(json.dumps({"error": result.error.to_dict()}, indent=2), file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.value.to_response(), indent=2))
    else:
        print_report(result.value)
    return 0


if __name__ == "__main__":
    sys.exit(main())
