"""Work order closeout activities.

Temporal activities wrapping WorkOrderService for the closeout workflow.
Business refusals (report not OK, role not allowed, already closed) come back
as data; only a missing work order or corrupted records fail the activity.
"""

import time
from dataclasses import dataclass
from typing import Optional

from temporalio import activity
from temporalio.exceptions import ApplicationError

from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import (
    record_activity_completed,
    record_activity_failed,
    record_activity_started,
)
from reconciliation.errors import DataIntegrityError, EngineError, WorkOrderNotFound
from reconciliation.service import WorkOrderService, get_default_service

logger = get_logger(__name__)


# =============================================================================
# Service Wiring
# =============================================================================

_service: Optional[WorkOrderService] = None


def set_activity_service(service: Optional[WorkOrderService]) -> None:
    """Use a specific service for activities (worker startup, tests)."""
    global _service
    _service = service


def _get_service() -> WorkOrderService:
    global _service
    if _service is None:
        _service = get_default_service()
    return _service


def _fail(error: EngineError, activity_name: str) -> ApplicationError:
    record_activity_failed(activity_name, error.code.value)
    logger.error(
        f"{activity_name} failed: {error.message}",
        extra_fields={"error_code": error.code.value},
    )
    return ApplicationError(
        error.message,
        error.to_dict(),
        type=error.code.value,
        non_retryable=True,
    )


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class BuildReportInput:
    """Input for build_work_order_report activity."""
    work_order_id: str


@dataclass
class BuildReportOutput:
    """Output from build_work_order_report activity.

    Attributes:
        work_order_id: Work order the report was built for
        report_status: NEEDS_PARTS_RECONCILIATION, NEEDS_QA, QA_FAILED or OK
        matched_count: Parts whose issued and installed quantities match
        issued_not_installed: Parts issued but not (fully) installed
        installed_not_issued: Parts installed beyond what was issued
        parts_cost_total: Issued parts cost as a decimal string
    """
    work_order_id: str
    report_status: str
    matched_count: int
    issued_not_installed: int
    installed_not_issued: int
    parts_cost_total: str


@dataclass
class CompleteWorkOrderInput:
    """Input for complete_work_order activity."""
    work_order_id: str
    actor_role: str
    notes: Optional[str] = None


@dataclass
class CompleteWorkOrderOutput:
    """Output from complete_work_order activity."""
    work_order_id: str
    completed: bool
    status: str
    completed_at: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


# =============================================================================
# Activity Definitions
# =============================================================================

@activity.defn
async def build_work_order_report(input: BuildReportInput) -> BuildReportOutput:
    """Build the parts report for a work order and summarize it."""
    name = "build_work_order_report"
    record_activity_started(name)
    started = time.time()

    with with_correlation(work_order_id=input.work_order_id, activity_name=name):
        try:
            result = _get_service().build_report(input.work_order_id)
        except DataIntegrityError as e:
            raise _fail(e, name)
        if not result.ok:
            raise _fail(result.error, name)

        report = result.value
        activity.logger.info(f"Report for {input.work_order_id}: {report.report_status.value}")

        record_activity_completed(name, (time.time() - started) * 1000)
        return BuildReportOutput(
            work_order_id=input.work_order_id,
            report_status=report.report_status.value,
            matched_count=report.totals.matched_count,
            issued_not_installed=report.totals.mismatch_counts.issued_not_installed,
            installed_not_issued=report.totals.mismatch_counts.installed_not_issued,
            parts_cost_total=str(report.totals.parts_cost_total),
        )


@activity.defn
async def complete_work_order(input: CompleteWorkOrderInput) -> CompleteWorkOrderOutput:
    """Attempt to complete a work order through the completion gate."""
    name = "complete_work_order"
    record_activity_started(name)
    started = time.time()

    with with_correlation(work_order_id=input.work_order_id, actor_role=input.actor_role, activity_name=name):
        try:
            result = _get_service().complete_work_order(input.work_order_id, input.actor_role, notes=input.notes)
        except DataIntegrityError as e:
            raise _fail(e, name)

        if not result.ok:
            if isinstance(result.error, WorkOrderNotFound):
                raise _fail(result.error, name)
            activity.logger.warning(f"Completion refused: {result.error.code.value}")
            record_activity_completed(name, (time.time() - started) * 1000)
            current = _get_service().get_work_order(input.work_order_id).unwrap()
            return CompleteWorkOrderOutput(
                work_order_id=input.work_order_id,
                completed=False,
                status=current.status.value,
                error_code=result.error.code.value,
                error_message=result.error.message,
            )

        work_order = result.value
        record_activity_completed(name, (time.time() - started) * 1000)
        return CompleteWorkOrderOutput(
            work_order_id=work_order.id,
            completed=True,
            status=work_order.status.value,
            completed_at=work_order.completed_at.isoformat() if work_order.completed_at else None,
        )
