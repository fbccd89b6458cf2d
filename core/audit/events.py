"""Audit trail for work-order actions.

Every issuance, installation, QA report, completion and cancelation is
recorded here, and so is every refusal, with the error code and the role
that asked. Events fan out to one or more backends:

- InMemoryAuditBackend: process-local, queried by tests and the service
- JSONFileAuditBackend: append-only JSON Lines, one file per UTC day
"""

import json
import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from core.models.audit import AuditEvent, AuditSeverity
from core.models.canonical import utc_now
from core.observability.logging import get_logger

logger = get_logger(__name__)


class AuditEventType(str, Enum):
    """What happened to the work order."""
    # Lifecycle
    WORK_ORDER_CREATED = "WORK_ORDER_CREATED"
    WORK_ORDER_STARTED = "WORK_ORDER_STARTED"
    WORK_ORDER_COMPLETED = "WORK_ORDER_COMPLETED"
    WORK_ORDER_CANCELED = "WORK_ORDER_CANCELED"
    COMPLETION_BLOCKED = "COMPLETION_BLOCKED"

    # Issuance
    ISSUE_CREATED = "ISSUE_CREATED"
    ISSUE_LINE_ADDED = "ISSUE_LINE_ADDED"
    ISSUE_LINE_REJECTED = "ISSUE_LINE_REJECTED"

    # Installation
    INSTALLATION_RECORDED = "INSTALLATION_RECORDED"
    INSTALLATION_REJECTED = "INSTALLATION_REJECTED"

    # QA
    QA_RECORDED = "QA_RECORDED"
    QA_REJECTED = "QA_REJECTED"

    # Data
    RECONCILIATION_ANOMALY = "RECONCILIATION_ANOMALY"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Catalog
    PART_REGISTERED = "PART_REGISTERED"
    PART_REJECTED = "PART_REJECTED"

    ACCESS_DENIED = "ACCESS_DENIED"


def create_audit_event(
    event_type: AuditEventType,
    message: str,
    severity: AuditSeverity = AuditSeverity.INFO,
    work_order_id: Optional[str] = None,
    part_id: Optional[str] = None,
    workflow_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    actor: Optional[str] = None,
) -> AuditEvent:
    """Build an event stamped with a fresh id and the current UTC time.

    actor is the caller's role; "system" when the action had no caller.
    """
    return AuditEvent(
        event_id=str(uuid.uuid4()),
        timestamp=utc_now(),
        event_type=AuditEventType(event_type).value,
        severity=severity,
        work_order_id=work_order_id,
        part_id=part_id,
        workflow_id=workflow_id,
        message=message,
        details=details or {},
        actor=actor or "system",
    )


# =============================================================================
# Backends
# =============================================================================

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class AuditQuery:
    """Filter shared by every backend's query()."""

    def __init__(
        self,
        event_type: Optional[str] = None,
        work_order_id: Optional[str] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100,
    ):
        self.event_type = event_type.value if isinstance(event_type, AuditEventType) else event_type
        self.work_order_id = work_order_id
        self.start_time = _as_utc(start_time)
        self.end_time = _as_utc(end_time)
        self.limit = limit

    def matches(self, event: AuditEvent) -> bool:
        if self.event_type and event.event_type != self.event_type:
            return False
        if self.work_order_id and event.work_order_id != self.work_order_id:
            return False
        timestamp = _as_utc(event.timestamp)
        if self.start_time and timestamp < self.start_time:
            return False
        if self.end_time and timestamp > self.end_time:
            return False
        return True

    def apply(self, events: Iterable[AuditEvent]) -> List[AuditEvent]:
        selected: List[AuditEvent] = []
        for event in events:
            if len(selected) >= self.limit:
                break
            if self.matches(event):
                selected.append(event)
        return selected


class AuditBackend(ABC):
    """Where audit events are persisted."""

    @abstractmethod
    def log(self, event: AuditEvent) -> None:
        ...

    @abstractmethod
    def query(self, criteria: AuditQuery) -> List[AuditEvent]:
        """Events matching criteria, oldest first."""
        ...


class JSONFileAuditBackend(AuditBackend):
    """One JSON object per line in <base_path>/YYYY-MM-DD.jsonl.

    Appending never rewrites earlier lines, so a crash mid-write can at worst
    truncate the last event of the day.
    """

    def __init__(self, base_path: Path, lookback_days: int = 30):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.lookback_days = lookback_days

    def path_for(self, day: date) -> Path:
        return self.base_path / f"{day:%Y-%m-%d}.jsonl"

    def log(self, event: AuditEvent) -> None:
        with open(self.path_for(event.timestamp), "a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")

    def _days(self, criteria: AuditQuery) -> Iterator[date]:
        last = (criteria.end_time or utc_now()).date()
        first = criteria.start_time.date() if criteria.start_time else last - timedelta(days=self.lookback_days)
        day = first
        while day <= last:
            yield day
            day += timedelta(days=1)

    def _read(self, criteria: AuditQuery) -> Iterator[AuditEvent]:
        for day in self._days(criteria):
            path = self.path_for(day)
            if not path.exists():
                continue
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    if line.strip():
                        yield AuditEvent.model_validate(json.loads(line))

    def query(self, criteria: AuditQuery) -> List[AuditEvent]:
        return criteria.apply(self._read(criteria))


class InMemoryAuditBackend(AuditBackend):
    """Keeps events in a list; used by tests and as the default backend."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    def log(self, event: AuditEvent) -> None:
        self.events.append(event)

    def query(self, criteria: Optional[AuditQuery] = None, **filters) -> List[AuditEvent]:
        return (criteria or AuditQuery(**filters)).apply(self.events)

    def clear(self) -> None:
        self.events.clear()


# =============================================================================
# Logger
# =============================================================================

class AuditLogger:
    """Fans events out to every backend.

    Usage:
        audit = AuditLogger()
        audit.add_backend(JSONFileAuditBackend(Path("./audit")))

        audit.log_block(
            AuditEventType.INSTALLATION_REJECTED,
            "Serial S1 is already installed on this work order",
            work_order_id="WO-1001",
            part_id="P2",
            actor="MECHANIC",
        )
    """

    def __init__(self):
        self._backends: List[AuditBackend] = []

    def add_backend(self, backend: AuditBackend) -> None:
        self._backends.append(backend)

    def log(self, event: AuditEvent) -> None:
        for backend in self._backends:
            try:
                backend.log(event)
            except Exception as e:
                # An audit backend failing must not undo a committed write
                logger.error(
                    f"Audit backend {type(backend).__name__} failed",
                    extra_fields={"event_type": event.event_type, "error": str(e)},
                )

    def _emit(self, severity: AuditSeverity, event_type: AuditEventType, message: str, **kwargs) -> None:
        self.log(create_audit_event(event_type, message, severity, **kwargs))

    def log_info(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        self._emit(AuditSeverity.INFO, event_type, message, **kwargs)

    def log_warning(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        self._emit(AuditSeverity.WARN, event_type, message, **kwargs)

    def log_error(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        self._emit(AuditSeverity.ERROR, event_type, message, **kwargs)

    def log_block(self, event_type: AuditEventType, message: str, **kwargs) -> None:
        """An action refused by a business rule."""
        self._emit(AuditSeverity.BLOCK, event_type, message, **kwargs)

    def query(self, **filters) -> List[AuditEvent]:
        """Query the first backend (event_type, work_order_id, start_time, end_time, limit)."""
        if not self._backends:
            return []
        return self._backends[0].query(AuditQuery(**filters))


def build_audit_logger(audit_dir: Optional[Path] = None) -> AuditLogger:
    """In-memory backend first, plus daily JSON Lines files when audit_dir is set."""
    audit = AuditLogger()
    audit.add_backend(InMemoryAuditBackend())
    if audit_dir is not None:
        audit.add_backend(JSONFileAuditBackend(audit_dir))
    return audit
