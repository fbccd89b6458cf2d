"""Report status resolution."""

from typing import Optional

from core.models.canonical import QaResult
from core.models.reports import Reconciliation, ReportStatus


def resolve_status(
    reconciliation: Reconciliation,
    qa_result: Optional[QaResult],
) -> ReportStatus:
    """Map reconciliation output and QA result to a single verdict.

    Part discrepancies outrank QA: a work order whose parts data cannot be
    trusted is not ready for QA, whatever the road test said.
    """
    if reconciliation.issued_not_installed or reconciliation.installed_not_issued:
        return ReportStatus.NEEDS_PARTS_RECONCILIATION
    if qa_result is None:
        return ReportStatus.NEEDS_QA
    if QaResult(qa_result) == QaResult.FAIL:
        return ReportStatus.QA_FAILED
    return ReportStatus.OK
