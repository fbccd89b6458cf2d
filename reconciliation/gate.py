"""Work-order completion gate.

The only code path allowed to move a work order to COMPLETED. Completion is
one-way; there is no uncomplete operation.
"""

from datetime import datetime
from typing import Iterable, Optional

from core.models.canonical import WorkOrder, WorkOrderStatus, utc_now
from core.models.reports import ReportStatus
from reconciliation.errors import (
    AlreadyTerminal,
    Forbidden,
    NotReconciledOrQaPending,
    Result,
)


DEFAULT_COMPLETION_ROLES = frozenset({"ADMIN", "ACCOUNTANT"})


def is_authorized(actor_role: Optional[str], roles: Optional[Iterable[str]] = None) -> bool:
    """Case-insensitive role membership check."""
    if not actor_role:
        return False
    allowed = {r.upper() for r in (roles or DEFAULT_COMPLETION_ROLES)}
    return actor_role.strip().upper() in allowed


def complete(
    work_order: WorkOrder,
    report_status: ReportStatus,
    actor_role: Optional[str],
    now: Optional[datetime] = None,
    authorized_roles: Optional[Iterable[str]] = None,
) -> Result[WorkOrder]:
    """Mark a work order COMPLETED if every precondition holds.

    Preconditions, checked in order:
    - work order not already COMPLETED or CANCELED
    - report status is OK
    - actor role may complete work orders

    Returns:
        Result with a new WorkOrder (the input is not mutated)
    """
    if work_order.status.is_terminal:
        return Result.failure(AlreadyTerminal(
            f"Work order {work_order.id} is already {work_order.status.value}",
            {"work_order_id": work_order.id, "status": work_order.status.value},
        ))

    if ReportStatus(report_status) != ReportStatus.OK:
        return Result.failure(NotReconciledOrQaPending(ReportStatus(report_status)))

    if not is_authorized(actor_role, authorized_roles):
        return Result.failure(Forbidden(
            f"Role {actor_role or '(none)'} may not complete work orders",
            {"actor_role": actor_role},
        ))

    completed = work_order.model_copy(update={
        "status": WorkOrderStatus.COMPLETED,
        "completed_at": now or utc_now(),
        "completed_by_role": actor_role.strip().upper(),
    })
    return Result.success(completed)
