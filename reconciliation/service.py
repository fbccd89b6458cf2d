"""
Work Order Service

Host service wrapping the pure engine with persistence, logging, metrics and
audit. Every write runs read-validate-write inside one immediate store
transaction, so two concurrent requests can never both pass validation against
the same remaining quantity or serial.

Usage:
    service = WorkOrderService(store)
    wo = service.create_work_order(vehicle_id="TRK-12")
    issue = service.create_issue(wo.id, actor_role="ADMIN").unwrap()
    service.add_issue_lines(issue.id, [IssueLineRequest(part_id="P1", qty=4)], actor_role="ADMIN")
    result = service.add_installations(wo.id, [InstallationRequest(part_id="P1", qty_installed=4)])
    if not result.ok:
        print(result.error.to_dict())
"""

import time
from typing import Dict, List, Optional, Sequence

from core.audit.events import AuditEventType, AuditLogger, build_audit_logger
from core.config import Settings, get_settings
from core.models.canonical import (
    InstallationRecord,
    InstallationRequest,
    Issue,
    IssuedLine,
    IssueLineRequest,
    Part,
    QaReport,
    QaResult,
    WorkOrder,
    WorkOrderStatus,
    utc_now,
)
from core.models.reports import ReportStatus, WorkOrderReport
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import record_operation, record_processing_time, record_report_status
from reconciliation.capacity import compute_installable, validate_installation, validate_issue_line
from reconciliation.errors import (
    AlreadyTerminal,
    DataIntegrityError,
    EngineError,
    Forbidden,
    NotReconciledOrQaPending,
    Result,
    ValidationError,
    WorkOrderNotFound,
)
from reconciliation.gate import complete, is_authorized
from reconciliation.ledger import aggregate
from reconciliation.report import build_report
from storage.work_orders import StoreSession, WorkOrderStore, new_id

logger = get_logger(__name__)


class WorkOrderService:
    """Orchestrates issuance, installation, QA and completion for work orders."""

    def __init__(
        self,
        store: WorkOrderStore,
        audit: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.audit = audit or build_audit_logger(self.settings.audit_dir)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_role(self, actor_role: Optional[str], action: str) -> Optional[Forbidden]:
        if is_authorized(actor_role, self.settings.completion_roles):
            return None
        return Forbidden(
            f"Role {actor_role or '(none)'} may not {action}",
            {"actor_role": actor_role, "allowed_roles": sorted(self.settings.completion_roles)},
        )

    def _load_open(self, session: StoreSession, work_order_id: str) -> WorkOrder:
        """Load a work order that still accepts changes, raising the engine error otherwise."""
        work_order = session.get_work_order(work_order_id)
        if work_order is None:
            raise WorkOrderNotFound(
                f"Work order {work_order_id} not found",
                {"work_order_id": work_order_id},
            )
        if work_order.status.is_terminal:
            raise AlreadyTerminal(
                f"Work order {work_order_id} is already {work_order.status.value}",
                {"work_order_id": work_order_id, "status": work_order.status.value},
            )
        return work_order

    def _accepted(self, operation: str, started: float, message: str, **extra_fields):
        duration_ms = (time.time() - started) * 1000
        record_operation(operation, accepted=True, duration_ms=duration_ms)
        logger.info(message, extra_fields={"operation": operation, **extra_fields})

    def _rejected(
        self,
        operation: str,
        started: float,
        error: EngineError,
        event_type: AuditEventType,
        work_order_id: Optional[str],
        actor_role: Optional[str],
        part_id: Optional[str] = None,
    ) -> Result:
        duration_ms = (time.time() - started) * 1000
        record_operation(operation, accepted=False, error_code=error.code.value, duration_ms=duration_ms)
        logger.warning(
            f"{operation} rejected: {error.message}",
            extra_fields={"operation": operation, "error_code": error.code.value},
        )
        if isinstance(error, Forbidden):
            event_type = AuditEventType.ACCESS_DENIED
        if isinstance(error, DataIntegrityError):
            self.audit.log_error(
                AuditEventType.DATA_INTEGRITY_ERROR,
                error.message,
                work_order_id=work_order_id,
                details=error.to_dict(),
                actor=actor_role,
            )
            raise error
        else:
            self.audit.log_block(
                event_type,
                error.message,
                work_order_id=work_order_id,
                part_id=part_id,
                details=error.to_dict(),
                actor=actor_role,
            )
        return Result.failure(error)

    def _audit_anomalies(self, report: WorkOrderReport):
        for entry in report.reconciliation.installed_not_issued:
            self.audit.log_warning(
                AuditEventType.RECONCILIATION_ANOMALY,
                f"Part {entry.part_id} installed beyond issued quantity",
                work_order_id=report.work_order_id,
                part_id=entry.part_id,
                details={
                    "issued_qty": str(entry.issued_qty),
                    "installed_qty": str(entry.installed_qty),
                },
            )

    # =========================================================================
    # Work Orders
    # =========================================================================

    def create_work_order(
        self,
        vehicle_id: Optional[str] = None,
        notes: Optional[str] = None,
        work_order_id: Optional[str] = None,
    ) -> WorkOrder:
        """Create an OPEN work order.

        Raises:
            ValidationError: work_order_id is already taken
        """
        started = time.time()
        work_order = WorkOrder(
            id=work_order_id or new_id("WO"),
            status=WorkOrderStatus.OPEN,
            vehicle_id=vehicle_id,
            notes=notes,
            opened_at=utc_now(),
        )
        with with_correlation(work_order_id=work_order.id, operation="create_work_order"):
            with self.store.transaction() as session:
                if session.get_work_order(work_order.id) is not None:
                    error = ValidationError(
                        f"Work order {work_order.id} already exists",
                        {"work_order_id": work_order.id},
                    )
                    record_operation("create_work_order", accepted=False, error_code=error.code.value)
                    raise error
                session.insert_work_order(work_order)

            self._accepted("create_work_order", started, "Work order created", vehicle_id=vehicle_id)
            self.audit.log_info(
                AuditEventType.WORK_ORDER_CREATED,
                f"Work order {work_order.id} opened",
                work_order_id=work_order.id,
                details={"vehicle_id": vehicle_id},
            )
        return work_order

    def get_work_order(self, work_order_id: str) -> Result[WorkOrder]:
        work_order = self.store.get_work_order(work_order_id)
        if work_order is None:
            return Result.failure(WorkOrderNotFound(
                f"Work order {work_order_id} not found",
                {"work_order_id": work_order_id},
            ))
        return Result.success(work_order)

    # =========================================================================
    # Catalog
    # =========================================================================

    def register_part(self, part: Part, actor_role: Optional[str]) -> Result[Part]:
        """Create or rename a catalog entry. Same roles as issuing parts."""
        started = time.time()
        with with_correlation(part_id=part.part_id, actor_role=actor_role, operation="register_part"):
            denied = self._require_role(actor_role, "edit the parts catalog")
            if denied:
                return self._rejected(
                    "register_part", started, denied, AuditEventType.ACCESS_DENIED, None, actor_role, part_id=part.part_id,
                )
            if not part.part_id.strip():
                return self._rejected(
                    "register_part", started, ValidationError("part_id is required"),
                    AuditEventType.PART_REJECTED, None, actor_role, part_id=part.part_id,
                )

            with self.store.transaction() as session:
                session.upsert_part(part)

            self._accepted("register_part", started, "Part registered", name=part.name)
            self.audit.log_info(
                AuditEventType.PART_REGISTERED,
                f"Part {part.part_id} registered",
                part_id=part.part_id,
                details={"name": part.name, "brand": part.brand},
                actor=actor_role,
            )
            return Result.success(part)

    def describe_parts(self, part_ids: Sequence[str]) -> Dict[str, Part]:
        """Display labels for part ids; ids missing from the catalog are left out."""
        return self.store.get_parts(part_ids)

    # =========================================================================
    # Issuance
    # =========================================================================

    def create_issue(
        self,
        work_order_id: str,
        actor_role: Optional[str],
        notes: Optional[str] = None,
    ) -> Result[Issue]:
        """Open an issuance event. An OPEN work order moves to IN_PROGRESS."""
        started = time.time()
        with with_correlation(work_order_id=work_order_id, actor_role=actor_role, operation="create_issue"):
            denied = self._require_role(actor_role, "issue parts")
            if denied:
                return self._rejected("create_issue", started, denied, AuditEventType.ACCESS_DENIED, work_order_id, actor_role)

            now = utc_now()
            issue = Issue(id=new_id("ISS"), work_order_id=work_order_id, created_at=now, notes=notes)
            moved_to_in_progress = False
            try:
                with self.store.transaction() as session:
                    work_order = self._load_open(session, work_order_id)
                    session.insert_issue(issue)
                    if work_order.status == WorkOrderStatus.OPEN:
                        session.update_work_order(work_order.model_copy(update={
                            "status": WorkOrderStatus.IN_PROGRESS,
                            "started_at": now,
                        }))
                        moved_to_in_progress = True
            except EngineError as e:
                return self._rejected("create_issue", started, e, AuditEventType.ISSUE_LINE_REJECTED, work_order_id, actor_role)

            if moved_to_in_progress:
                self.audit.log_info(
                    AuditEventType.WORK_ORDER_STARTED,
                    f"Work order {work_order_id} moved to IN_PROGRESS",
                    work_order_id=work_order_id,
                    actor=actor_role,
                )

            self._accepted("create_issue", started, "Issue created", issue_id=issue.id)
            self.audit.log_info(
                AuditEventType.ISSUE_CREATED,
                f"Issue {issue.id} created",
                work_order_id=work_order_id,
                details={"issue_id": issue.id},
                actor=actor_role,
            )
            return Result.success(issue)

    def add_issue_lines(
        self,
        issue_id: str,
        lines: Sequence[IssueLineRequest],
        actor_role: Optional[str],
    ) -> Result[List[IssuedLine]]:
        """Append lines to an issue. Either every line is written or none is."""
        started = time.time()
        with with_correlation(issue_id=issue_id, actor_role=actor_role, operation="add_issue_lines"):
            work_order_id = None
            denied = self._require_role(actor_role, "issue parts")
            if denied:
                return self._rejected("add_issue_lines", started, denied, AuditEventType.ACCESS_DENIED, None, actor_role)

            if not lines:
                return self._rejected(
                    "add_issue_lines", started, ValidationError("At least one line is required"),
                    AuditEventType.ISSUE_LINE_REJECTED, None, actor_role,
                )

            for index, request in enumerate(lines):
                checked = validate_issue_line(request)
                if not checked.ok:
                    checked.error.details["line_index"] = index
                    return self._rejected(
                        "add_issue_lines", started, checked.error,
                        AuditEventType.ISSUE_LINE_REJECTED, None, actor_role, part_id=request.part_id,
                    )

            written: List[IssuedLine] = []
            try:
                with self.store.transaction() as session:
                    issue = session.get_issue(issue_id)
                    if issue is None:
                        raise ValidationError(f"Issue {issue_id} not found", {"issue_id": issue_id})
                    work_order_id = issue.work_order_id
                    self._load_open(session, work_order_id)

                    issued_serials = {
                        line.part_item_id
                        for line in session.fetch_issued_lines(work_order_id)
                        if line.part_item_id is not None
                    }
                    for index, request in enumerate(lines):
                        serial = request.part_item_id
                        if serial is None:
                            continue
                        if serial in issued_serials:
                            raise ValidationError(
                                f"Serial {serial} is already issued on work order {work_order_id}",
                                {"part_id": request.part_id, "part_item_id": serial, "line_index": index},
                            )
                        issued_serials.add(serial)

                    now = utc_now()
                    for request in lines:
                        written.append(session.insert_issue_line(IssuedLine(
                            issue_id=issue_id,
                            work_order_id=work_order_id,
                            part_id=request.part_id.strip(),
                            part_item_id=request.part_item_id,
                            qty=request.qty,
                            unit_cost=request.unit_cost,
                            notes=request.notes,
                            created_at=now,
                        )))
            except EngineError as e:
                return self._rejected("add_issue_lines", started, e, AuditEventType.ISSUE_LINE_REJECTED, work_order_id, actor_role)

            with with_correlation(work_order_id=work_order_id):
                self._accepted("add_issue_lines", started, "Issue lines added", line_count=len(written))
            for line in written:
                self.audit.log_info(
                    AuditEventType.ISSUE_LINE_ADDED,
                    f"Issued {line.qty} x {line.part_id}",
                    work_order_id=work_order_id,
                    part_id=line.part_id,
                    details={"issue_id": issue_id, "part_item_id": line.part_item_id, "qty": str(line.qty)},
                    actor=actor_role,
                )
            return Result.success(written)

    # =========================================================================
    # Installation
    # =========================================================================

    def add_installations(
        self,
        work_order_id: str,
        requests: Sequence[InstallationRequest],
        actor_role: Optional[str] = None,
    ) -> Result[List[InstallationRecord]]:
        """Record installations as one all-or-nothing batch.

        Each item is validated against the records already stored plus the
        items of this batch written before it, so a batch cannot overdraw a
        part or install the same serial twice.
        """
        started = time.time()
        with with_correlation(work_order_id=work_order_id, actor_role=actor_role, operation="add_installations"):
            if not requests:
                return self._rejected(
                    "add_installations", started, ValidationError("At least one installation is required"),
                    AuditEventType.INSTALLATION_REJECTED, work_order_id, actor_role,
                )

            written: List[InstallationRecord] = []
            current_part = None
            try:
                with self.store.transaction() as session:
                    self._load_open(session, work_order_id)
                    issued_lines = session.fetch_issued_lines(work_order_id)
                    installations = session.fetch_installations(work_order_id)
                    now = utc_now()

                    for index, request in enumerate(requests):
                        current_part = request.part_id
                        ledger = aggregate(issued_lines, installations)
                        installable = compute_installable(ledger, issued_lines, installations)
                        checked = validate_installation(request, installable, installations)
                        if not checked.ok:
                            checked.error.details["item_index"] = index
                            raise checked.error

                        normalized = checked.value
                        record = session.insert_installation(InstallationRecord(
                            work_order_id=work_order_id,
                            part_id=normalized.part_id,
                            part_item_id=normalized.part_item_id,
                            qty_installed=normalized.qty_installed,
                            odometer_at_install=normalized.odometer,
                            installed_at=now,
                            notes=normalized.notes,
                        ))
                        installations.append(record)
                        written.append(record)
            except EngineError as e:
                return self._rejected(
                    "add_installations", started, e, AuditEventType.INSTALLATION_REJECTED,
                    work_order_id, actor_role, part_id=current_part,
                )

            self._accepted("add_installations", started, "Installations recorded", item_count=len(written))
            for record in written:
                self.audit.log_info(
                    AuditEventType.INSTALLATION_RECORDED,
                    f"Installed {record.qty_installed} x {record.part_id}",
                    work_order_id=work_order_id,
                    part_id=record.part_id,
                    details={
                        "installation_id": record.id,
                        "part_item_id": record.part_item_id,
                        "qty_installed": str(record.qty_installed),
                    },
                    actor=actor_role,
                )
            return Result.success(written)

    # =========================================================================
    # Reports and QA
    # =========================================================================

    def build_report(self, work_order_id: str) -> Result[WorkOrderReport]:
        """Build the parts report from a consistent snapshot.

        Raises:
            DataIntegrityError: stored records are corrupted
        """
        started = time.time()
        with with_correlation(work_order_id=work_order_id, operation="build_report"):
            with self.store.session() as session:
                if session.get_work_order(work_order_id) is None:
                    return Result.failure(WorkOrderNotFound(
                        f"Work order {work_order_id} not found",
                        {"work_order_id": work_order_id},
                    ))
                try:
                    report = build_report(work_order_id, session)
                except DataIntegrityError as e:
                    logger.error(f"Corrupted records: {e.message}", extra_fields=e.details)
                    self.audit.log_error(
                        AuditEventType.DATA_INTEGRITY_ERROR,
                        e.message,
                        work_order_id=work_order_id,
                        details=e.to_dict(),
                    )
                    raise

            duration_ms = (time.time() - started) * 1000
            record_processing_time("build_report", duration_ms)
            record_report_status(report.report_status.value)
            self._audit_anomalies(report)
            logger.debug(
                "Report built",
                extra_fields={
                    "report_status": report.report_status.value,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return Result.success(report)

    def record_qa_result(
        self,
        work_order_id: str,
        result: QaResult,
        actor_role: Optional[str],
        remarks: Optional[str] = None,
    ) -> Result[QaReport]:
        """Record a road test result. Refused while parts are not reconciled."""
        started = time.time()
        with with_correlation(work_order_id=work_order_id, actor_role=actor_role, operation="record_qa_result"):
            qa_report = QaReport(
                work_order_id=work_order_id,
                result=QaResult(result),
                remarks=remarks,
                recorded_at=utc_now(),
                recorded_by_role=actor_role.strip().upper() if actor_role else None,
            )
            try:
                with self.store.transaction() as session:
                    self._load_open(session, work_order_id)
                    report = build_report(work_order_id, session)
                    if report.report_status == ReportStatus.NEEDS_PARTS_RECONCILIATION:
                        raise NotReconciledOrQaPending(
                            report.report_status,
                            "Fix the parts mismatch before recording QA",
                        )
                    session.insert_qa_report(qa_report)
            except EngineError as e:
                return self._rejected("record_qa_result", started, e, AuditEventType.QA_REJECTED, work_order_id, actor_role)

            self._accepted("record_qa_result", started, "QA result recorded", qa_result=qa_report.result.value)
            self.audit.log_info(
                AuditEventType.QA_RECORDED,
                f"QA {qa_report.result.value} recorded",
                work_order_id=work_order_id,
                details={"result": qa_report.result.value, "remarks": remarks},
                actor=actor_role,
            )
            return Result.success(qa_report)

    # =========================================================================
    # Completion and Cancelation
    # =========================================================================

    def complete_work_order(
        self,
        work_order_id: str,
        actor_role: Optional[str],
        notes: Optional[str] = None,
    ) -> Result[WorkOrder]:
        """Rebuild the report and apply the completion gate in one transaction."""
        started = time.time()
        with with_correlation(work_order_id=work_order_id, actor_role=actor_role, operation="complete_work_order"):
            report_status = None
            try:
                with self.store.transaction() as session:
                    work_order = session.get_work_order(work_order_id)
                    if work_order is None:
                        raise WorkOrderNotFound(
                            f"Work order {work_order_id} not found",
                            {"work_order_id": work_order_id},
                        )
                    report_status = build_report(work_order_id, session).report_status
                    outcome = complete(
                        work_order,
                        report_status,
                        actor_role,
                        authorized_roles=self.settings.completion_roles,
                    )
                    completed = outcome.unwrap()
                    if notes:
                        completed = completed.model_copy(update={"completion_notes": notes})
                    session.update_work_order(completed)
            except EngineError as e:
                return self._rejected(
                    "complete_work_order", started, e, AuditEventType.COMPLETION_BLOCKED, work_order_id, actor_role,
                )

            self._accepted("complete_work_order", started, "Work order completed")
            self.audit.log_info(
                AuditEventType.WORK_ORDER_COMPLETED,
                f"Work order {work_order_id} completed",
                work_order_id=work_order_id,
                details={"report_status": report_status.value},
                actor=actor_role,
            )
            return Result.success(completed)

    def cancel_work_order(self, work_order_id: str, actor_role: Optional[str]) -> Result[WorkOrder]:
        started = time.time()
        with with_correlation(work_order_id=work_order_id, actor_role=actor_role, operation="cancel_work_order"):
            denied = self._require_role(actor_role, "cancel work orders")
            if denied:
                return self._rejected("cancel_work_order", started, denied, AuditEventType.ACCESS_DENIED, work_order_id, actor_role)
            try:
                with self.store.transaction() as session:
                    work_order = self._load_open(session, work_order_id)
                    canceled = work_order.model_copy(update={
                        "status": WorkOrderStatus.CANCELED,
                        "canceled_at": utc_now(),
                    })
                    session.update_work_order(canceled)
            except EngineError as e:
                return self._rejected("cancel_work_order", started, e, AuditEventType.COMPLETION_BLOCKED, work_order_id, actor_role)

            self._accepted("cancel_work_order", started, "Work order canceled")
            self.audit.log_info(
                AuditEventType.WORK_ORDER_CANCELED,
                f"Work order {work_order_id} canceled",
                work_order_id=work_order_id,
                actor=actor_role,
            )
            return Result.success(canceled)


def get_default_service() -> WorkOrderService:
    """Service on the configured database, initializing tables on first use."""
    settings = get_settings()
    store = WorkOrderStore(settings.db_path)
    store.init_db()
    return WorkOrderService(store, settings=settings)
