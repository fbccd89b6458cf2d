"""Work order report builder.

Usage:
    from reconciliation.report import build_report

    report = build_report("WO-1001", store)
    report.report_status          # ReportStatus.NEEDS_QA
    report.to_response()          # {"report_status": ..., "report_runtime": {...}}
"""

from decimal import Decimal
from typing import List, Optional, Sequence

from typing_extensions import Protocol

from core.models.canonical import InstallationRecord, IssuedLine, QaResult
from core.models.reports import (
    MismatchCounts,
    Reconciliation,
    ReportTotals,
    WorkOrderReport,
)
from reconciliation.capacity import compute_installable
from reconciliation.engine import reconcile
from reconciliation.ledger import Ledger, aggregate
from reconciliation.status import resolve_status


class RecordSource(Protocol):
    """Read accessors the host service provides for one work order."""

    def fetch_issued_lines(self, work_order_id: str) -> List[IssuedLine]:
        ...

    def fetch_installations(self, work_order_id: str) -> List[InstallationRecord]:
        ...

    def fetch_qa_result(self, work_order_id: str) -> Optional[QaResult]:
        ...


def compute_totals(
    ledger: Ledger,
    reconciliation: Reconciliation,
    issued_lines: Sequence[IssuedLine],
) -> ReportTotals:
    parts_cost = sum((line.total_cost for line in issued_lines), Decimal("0"))
    return ReportTotals(
        parts_cost_total=parts_cost,
        issued_qty_total=sum((e.issued_qty for e in ledger.values()), Decimal("0")),
        installed_qty_total=sum((e.installed_qty for e in ledger.values()), Decimal("0")),
        matched_count=len(reconciliation.matched),
        mismatch_counts=MismatchCounts(
            issued_not_installed=len(reconciliation.issued_not_installed),
            installed_not_issued=len(reconciliation.installed_not_issued),
        ),
    )


def assemble_report(
    work_order_id: str,
    issued_lines: Sequence[IssuedLine],
    installations: Sequence[InstallationRecord],
    qa_result: Optional[QaResult],
) -> WorkOrderReport:
    """Run the whole read pipeline over already-loaded records.

    Raises:
        DataIntegrityError: propagated from aggregate() on corrupted records
    """
    ledger = aggregate(issued_lines, installations)
    reconciliation = reconcile(ledger, issued_lines)
    report_status = resolve_status(reconciliation, qa_result)
    installable = compute_installable(ledger, issued_lines, installations)

    return WorkOrderReport(
        work_order_id=work_order_id,
        ledger=list(ledger.values()),
        reconciliation=reconciliation,
        report_status=report_status,
        installable_parts=installable,
        qa_result=qa_result,
        issued_lines=list(issued_lines),
        installations=list(installations),
        totals=compute_totals(ledger, reconciliation, issued_lines),
    )


def build_report(work_order_id: str, source: RecordSource) -> WorkOrderReport:
    """Fetch the raw records of a work order and build its report."""
    return assemble_report(
        work_order_id,
        source.fetch_issued_lines(work_order_id),
        source.fetch_installations(work_order_id),
        source.fetch_qa_result(work_order_id),
    )
