"""
Work Order Store

SQLite persistence for work orders and their parts records:
- parts: display catalog (name, brand) keyed by part_id
- work_orders: aggregate root and lifecycle status
- issues / issue_lines: parts released from stock against a work order
- installations: parts physically fitted to the vehicle
- qa_reports: road test results (the latest one counts)

Quantities and costs are stored as TEXT so Decimal values round-trip exactly.

Writers use transaction(), which opens the connection with BEGIN IMMEDIATE:
SQLite then admits one writer at a time, so a read-validate-write sequence
cannot interleave with another one. A partial UNIQUE index on
installations(work_order_id, part_item_id) rejects a second install of the
same serial even if validation were bypassed, and a matching index on
issue_lines rejects issuing one serial twice.

The database must be a file path. ":memory:" databases are private to each
connection and would lose data between calls.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

from core.models.canonical import (
    InstallationRecord,
    Issue,
    IssuedLine,
    Part,
    QaReport,
    QaResult,
    WorkOrder,
    WorkOrderStatus,
)
from core.observability.logging import get_logger
from reconciliation.errors import SerialAlreadyInstalled, ValidationError

logger = get_logger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS parts (
        part_id TEXT PRIMARY KEY,
        name TEXT,
        brand TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS work_orders (
        id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        vehicle_id TEXT,
        notes TEXT,
        opened_at TEXT,
        started_at TEXT,
        completed_at TEXT,
        completed_by_role TEXT,
        completion_notes TEXT,
        canceled_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS issues (
        id TEXT PRIMARY KEY,
        work_order_id TEXT NOT NULL REFERENCES work_orders(id),
        created_at TEXT NOT NULL,
        notes TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS issue_lines (
        id TEXT PRIMARY KEY,
        issue_id TEXT NOT NULL REFERENCES issues(id),
        work_order_id TEXT NOT NULL REFERENCES work_orders(id),
        part_id TEXT NOT NULL,
        part_item_id TEXT,
        qty TEXT NOT NULL,
        unit_cost TEXT NOT NULL DEFAULT '0',
        notes TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS installations (
        id TEXT PRIMARY KEY,
        work_order_id TEXT NOT NULL REFERENCES work_orders(id),
        part_id TEXT NOT NULL,
        part_item_id TEXT,
        qty_installed TEXT NOT NULL,
        odometer_at_install TEXT,
        installed_at TEXT,
        notes TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS qa_reports (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        work_order_id TEXT NOT NULL REFERENCES work_orders(id),
        result TEXT NOT NULL,
        remarks TEXT,
        recorded_at TEXT,
        recorded_by_role TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_issue_lines_wo ON issue_lines(work_order_id, part_id)",
    "CREATE INDEX IF NOT EXISTS idx_installations_wo ON installations(work_order_id, part_id)",
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_installations_serial
    ON installations(work_order_id, part_item_id)
    WHERE part_item_id IS NOT NULL
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_issue_lines_serial
    ON issue_lines(work_order_id, part_item_id)
    WHERE part_item_id IS NOT NULL
    """,
]


def new_id(prefix: str) -> str:
    """Generate a prefixed random identifier, e.g. INS-3f2a9c1b7d0e."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _dec(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _ts(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


# =============================================================================
# Row Conversion
# =============================================================================

def _row_to_work_order(row: sqlite3.Row) -> WorkOrder:
    return WorkOrder(
        id=row["id"],
        status=WorkOrderStatus(row["status"]),
        vehicle_id=row["vehicle_id"],
        notes=row["notes"],
        opened_at=row["opened_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        completed_by_role=row["completed_by_role"],
        completion_notes=row["completion_notes"],
        canceled_at=row["canceled_at"],
    )


def _row_to_issued_line(row: sqlite3.Row) -> IssuedLine:
    return IssuedLine(
        id=row["id"],
        issue_id=row["issue_id"],
        work_order_id=row["work_order_id"],
        part_id=row["part_id"],
        part_item_id=row["part_item_id"],
        qty=row["qty"],
        unit_cost=row["unit_cost"],
        notes=row["notes"],
        created_at=row["created_at"],
    )


def _row_to_installation(row: sqlite3.Row) -> InstallationRecord:
    return InstallationRecord(
        id=row["id"],
        work_order_id=row["work_order_id"],
        part_id=row["part_id"],
        part_item_id=row["part_item_id"],
        qty_installed=row["qty_installed"],
        odometer_at_install=row["odometer_at_install"],
        installed_at=row["installed_at"],
        notes=row["notes"],
    )


def _row_to_qa_report(row: sqlite3.Row) -> QaReport:
    return QaReport(
        work_order_id=row["work_order_id"],
        result=QaResult(row["result"]),
        remarks=row["remarks"],
        recorded_at=row["recorded_at"],
        recorded_by_role=row["recorded_by_role"],
    )


# =============================================================================
# Session (one connection)
# =============================================================================

class StoreSession:
    """Record accessors bound to one open connection.

    Satisfies the RecordSource protocol, so a report can be built from the
    same snapshot a transaction is about to write against.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # -- work orders ----------------------------------------------------------

    def insert_work_order(self, work_order: WorkOrder) -> WorkOrder:
        self.conn.execute(
            """
            INSERT INTO work_orders
            (id, status, vehicle_id, notes, opened_at, started_at,
             completed_at, completed_by_role, completion_notes, canceled_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                work_order.id,
                work_order.status.value,
                work_order.vehicle_id,
                work_order.notes,
                _ts(work_order.opened_at),
                _ts(work_order.started_at),
                _ts(work_order.completed_at),
                work_order.completed_by_role,
                work_order.completion_notes,
                _ts(work_order.canceled_at),
            ),
        )
        return work_order

    def get_work_order(self, work_order_id: str) -> Optional[WorkOrder]:
        row = self.conn.execute(
            "SELECT * FROM work_orders WHERE id = ?", (work_order_id,)
        ).fetchone()
        return _row_to_work_order(row) if row else None

    def update_work_order(self, work_order: WorkOrder) -> WorkOrder:
        self.conn.execute(
            """
            UPDATE work_orders
            SET status = ?, vehicle_id = ?, notes = ?, started_at = ?,
                completed_at = ?, completed_by_role = ?, completion_notes = ?,
                canceled_at = ?
            WHERE id = ?
            """,
            (
                work_order.status.value,
                work_order.vehicle_id,
                work_order.notes,
                _ts(work_order.started_at),
                _ts(work_order.completed_at),
                work_order.completed_by_role,
                work_order.completion_notes,
                _ts(work_order.canceled_at),
                work_order.id,
            ),
        )
        return work_order

    # -- catalog --------------------------------------------------------------

    def upsert_part(self, part: Part) -> Part:
        self.conn.execute(
            """
            INSERT INTO parts (part_id, name, brand) VALUES (?, ?, ?)
            ON CONFLICT(part_id) DO UPDATE SET name = excluded.name, brand = excluded.brand
            """,
            (part.part_id, part.name, part.brand),
        )
        return part

    def get_parts(self, part_ids: Sequence[str]) -> Dict[str, Part]:
        """Catalog entries for the given ids; unknown ids are simply absent."""
        if not part_ids:
            return {}
        placeholders = ", ".join("?" for _ in part_ids)
        rows = self.conn.execute(
            f"SELECT * FROM parts WHERE part_id IN ({placeholders})", tuple(part_ids)
        ).fetchall()
        return {row["part_id"]: Part(part_id=row["part_id"], name=row["name"], brand=row["brand"]) for row in rows}

    # -- issues ---------------------------------------------------------------

    def insert_issue(self, issue: Issue) -> Issue:
        self.conn.execute(
            "INSERT INTO issues (id, work_order_id, created_at, notes) VALUES (?, ?, ?, ?)",
            (issue.id, issue.work_order_id, _ts(issue.created_at), issue.notes),
        )
        return issue

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        row = self.conn.execute("SELECT * FROM issues WHERE id = ?", (issue_id,)).fetchone()
        if not row:
            return None
        return Issue(
            id=row["id"],
            work_order_id=row["work_order_id"],
            created_at=row["created_at"],
            notes=row["notes"],
        )

    def insert_issue_line(self, line: IssuedLine) -> IssuedLine:
        """Append an issue line.

        Raises:
            ValidationError: the serial is already issued on this work order
        """
        if line.id is None:
            line = line.model_copy(update={"id": new_id("ISL")})
        try:
            self.conn.execute(
                """
                INSERT INTO issue_lines
                (id, issue_id, work_order_id, part_id, part_item_id, qty, unit_cost, notes, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    line.id,
                    line.issue_id,
                    line.work_order_id,
                    line.part_id,
                    line.part_item_id,
                    _dec(line.qty),
                    _dec(line.unit_cost),
                    line.notes,
                    _ts(line.created_at),
                ),
            )
        except sqlite3.IntegrityError as e:
            if line.part_item_id is None:
                raise
            raise ValidationError(
                f"Serial {line.part_item_id} is already issued on work order {line.work_order_id}",
                {"part_id": line.part_id, "part_item_id": line.part_item_id},
            ) from e
        return line

    # -- installations --------------------------------------------------------

    def insert_installation(self, record: InstallationRecord) -> InstallationRecord:
        """Append an installation.

        Raises:
            SerialAlreadyInstalled: the serial is already installed on this work order
        """
        if record.id is None:
            record = record.model_copy(update={"id": new_id("INS")})
        try:
            self.conn.execute(
                """
                INSERT INTO installations
                (id, work_order_id, part_id, part_item_id, qty_installed,
                 odometer_at_install, installed_at, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.work_order_id,
                    record.part_id,
                    record.part_item_id,
                    _dec(record.qty_installed),
                    _dec(record.odometer_at_install),
                    _ts(record.installed_at),
                    record.notes,
                ),
            )
        except sqlite3.IntegrityError as e:
            if record.part_item_id is None:
                raise
            logger.warning(
                "Serial uniqueness index rejected installation",
                extra_fields={"part_item_id": record.part_item_id, "error": str(e)},
            )
            raise SerialAlreadyInstalled(
                f"Serial {record.part_item_id} is already installed on work order {record.work_order_id}",
                {"part_id": record.part_id, "part_item_id": record.part_item_id},
            ) from e
        return record

    # -- QA -------------------------------------------------------------------

    def insert_qa_report(self, report: QaReport) -> QaReport:
        self.conn.execute(
            """
            INSERT INTO qa_reports (work_order_id, result, remarks, recorded_at, recorded_by_role)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                report.work_order_id,
                report.result.value,
                report.remarks,
                _ts(report.recorded_at),
                report.recorded_by_role,
            ),
        )
        return report

    def fetch_latest_qa_report(self, work_order_id: str) -> Optional[QaReport]:
        row = self.conn.execute(
            "SELECT * FROM qa_reports WHERE work_order_id = ? ORDER BY id DESC LIMIT 1",
            (work_order_id,),
        ).fetchone()
        return _row_to_qa_report(row) if row else None

    # -- RecordSource ---------------------------------------------------------

    def fetch_issued_lines(self, work_order_id: str) -> List[IssuedLine]:
        rows = self.conn.execute(
            "SELECT * FROM issue_lines WHERE work_order_id = ? ORDER BY rowid",
            (work_order_id,),
        ).fetchall()
        return [_row_to_issued_line(r) for r in rows]

    def fetch_installations(self, work_order_id: str) -> List[InstallationRecord]:
        rows = self.conn.execute(
            "SELECT * FROM installations WHERE work_order_id = ? ORDER BY rowid",
            (work_order_id,),
        ).fetchall()
        return [_row_to_installation(r) for r in rows]

    def fetch_qa_result(self, work_order_id: str) -> Optional[QaResult]:
        report = self.fetch_latest_qa_report(work_order_id)
        return report.result if report else None


# =============================================================================
# Store
# =============================================================================

class WorkOrderStore:
    """
    File-backed store for work orders.

    Usage:
        store = WorkOrderStore(Path("fleet_maintenance.db"))
        store.init_db()

        with store.transaction() as session:
            lines = session.fetch_issued_lines("WO-1001")
            session.insert_installation(record)
    """

    def __init__(self, db_path: Union[str, Path], timeout: float = 30.0):
        if str(db_path) == ":memory:":
            raise ValueError("WorkOrderStore needs a file path; :memory: is per-connection")
        self.db_path = Path(db_path)
        self.timeout = timeout

    def get_db_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory (autocommit; transactions are explicit)."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_db(self) -> None:
        """Create tables and indexes if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self.get_db_connection()
        try:
            for statement in SCHEMA:
                conn.execute(statement)
        finally:
            conn.close()
        logger.info("Work order store initialized", extra_fields={"db_path": str(self.db_path)})

    @contextmanager
    def transaction(self) -> Iterator[StoreSession]:
        """Immediate write transaction; commits on success, rolls back on any exception."""
        conn = self.get_db_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield StoreSession(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def session(self) -> Iterator[StoreSession]:
        """Read-only snapshot of the database."""
        conn = self.get_db_connection()
        try:
            conn.execute("BEGIN")
            try:
                yield StoreSession(conn)
            finally:
                conn.execute("ROLLBACK")
        finally:
            conn.close()

    # Convenience readers, each on its own connection

    def get_work_order(self, work_order_id: str) -> Optional[WorkOrder]:
        with self.session() as s:
            return s.get_work_order(work_order_id)

    def fetch_issued_lines(self, work_order_id: str) -> List[IssuedLine]:
        with self.session() as s:
            return s.fetch_issued_lines(work_order_id)

    def fetch_installations(self, work_order_id: str) -> List[InstallationRecord]:
        with self.session() as s:
            return s.fetch_installations(work_order_id)

    def fetch_qa_result(self, work_order_id: str) -> Optional[QaResult]:
        with self.session() as s:
            return s.fetch_qa_result(work_order_id)

    def count_work_orders(self) -> int:
        """Raises sqlite3.Error when the schema is missing or the file is unreadable."""
        with self.session() as s:
            return s.conn.execute("SELECT COUNT(*) FROM work_orders").fetchone()[0]

    def get_parts(self, part_ids: Sequence[str]) -> Dict[str, Part]:
        with self.session() as s:
            return s.get_parts(part_ids)
