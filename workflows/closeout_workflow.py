"""
Work Order Closeout Workflow

BUILD_REPORT → (report OK?) → COMPLETE

Completes a work order only when its parts are reconciled and QA passed.
Otherwise the workflow finishes BLOCKED and reports the status that stopped
it, so the caller can fix the mismatch or record QA and start a new run.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.work_orders import (
        build_work_order_report,
        complete_work_order,
        BuildReportInput,
        CompleteWorkOrderInput,
    )


TASK_QUEUE = "fleet-maintenance"

ACTIVITY_RETRY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
    maximum_attempts=5,
)


# =============================================================================
# Workflow Input/Output
# =============================================================================

class CloseoutStatus:
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"
    REJECTED = "REJECTED"


@dataclass
class CloseoutInput:
    """Input for the closeout workflow."""
    work_order_id: str
    actor_role: str
    notes: Optional[str] = None


@dataclass
class CloseoutOutput:
    """Outcome of a closeout attempt.

    status is COMPLETED, BLOCKED (report status not OK) or REJECTED (the gate
    refused, e.g. role not allowed or work order already closed).
    """
    work_order_id: str
    status: str
    report_status: str
    completed_at: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


# =============================================================================
# Closeout Workflow
# =============================================================================

@workflow.defn
class WorkOrderCloseoutWorkflow:
    """Build the parts report and complete the work order if it is OK."""

    def __init__(self):
        self.stage = "BUILD_REPORT"
        self.report_status: Optional[str] = None

    @workflow.query
    def current_stage(self) -> str:
        return self.stage

    @workflow.run
    async def run(self, input: CloseoutInput) -> CloseoutOutput:
        workflow.logger.info(f"Starting closeout for work order {input.work_order_id}")

        report = await workflow.execute_activity(
            build_work_order_report,
            BuildReportInput(work_order_id=input.work_order_id),
            start_to_close_timeout=timedelta(seconds=30),
            retry_policy=ACTIVITY_RETRY,
        )
        self.report_status = report.report_status

        if report.report_status != "OK":
            self.stage = CloseoutStatus.BLOCKED
            workflow.logger.info(f"Closeout blocked: {report.report_status}")
            return CloseoutOutput(
                work_order_id=input.work_order_id,
                status=CloseoutStatus.BLOCKED,
                report_status=report.report_status,
                error_code="NOT_RECONCILED_OR_QA_PENDING",
                message=f"Report status is {report.report_status}",
            )

        self.stage = "COMPLETE"
        outcome = await workflow.execute_activity(
            complete_work_order,
            CompleteWorkOrderInput(
                work_order_id=input.work_order_id,
                actor_role=input.actor_role,
                notes=input.notes,
            ),
            start_to_close_timeout=timedelta(seconds=30),
            retry_policy=ACTIVITY_RETRY,
        )

        if not outcome.completed:
            self.stage = CloseoutStatus.REJECTED
            workflow.logger.warning(f"Closeout rejected: {outcome.error_code}")
            return CloseoutOutput(
                work_order_id=input.work_order_id,
                status=CloseoutStatus.REJECTED,
                report_status=report.report_status,
                error_code=outcome.error_code,
                message=outcome.error_message,
            )

        self.stage = CloseoutStatus.COMPLETED
        workflow.logger.info(f"Work order {input.work_order_id} completed")
        return CloseoutOutput(
            work_order_id=input.work_order_id,
            status=CloseoutStatus.COMPLETED,
            report_status=report.report_status,
            completed_at=outcome.completed_at,
        )
