"""
SQLite work order store tests.
"""

import sqlite3
from datetime import datetime
from decimal import Decimal

import pytest

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
from reconciliation.errors import SerialAlreadyInstalled, ValidationError
from storage.work_orders import WorkOrderStore


@pytest.fixture
def seeded(store):
    """Store holding WO-1 with a single issue ISS-1."""
    with store.transaction() as s:
        s.insert_work_order(WorkOrder(id="WO-1", opened_at=datetime(2026, 1, 5, 8, 30)))
        s.insert_issue(Issue(id="ISS-1", work_order_id="WO-1", created_at=datetime(2026, 1, 5, 9, 0)))
    return store


def _install(part_id, qty, serial=None):
    return InstallationRecord(work_order_id="WO-1", part_id=part_id, part_item_id=serial, qty_installed=qty)


class TestWorkOrderStore:
    """Persistence, transactions and uniqueness guarantees."""

    def test_memory_database_rejected(self):
        """In-memory databases do not survive across connections."""
        with pytest.raises(ValueError):
            WorkOrderStore(":memory:")

    def test_init_db_is_idempotent(self, store):
        store.init_db()
        store.init_db()
        assert store.get_work_order("nope") is None

    def test_work_order_round_trip(self, seeded):
        wo = seeded.get_work_order("WO-1")
        assert wo.status == WorkOrderStatus.OPEN
        assert wo.opened_at == datetime(2026, 1, 5, 8, 30)

        with seeded.transaction() as s:
            s.update_work_order(wo.model_copy(update={"status": WorkOrderStatus.IN_PROGRESS}))
        assert seeded.get_work_order("WO-1").status == WorkOrderStatus.IN_PROGRESS

    def test_decimals_round_trip_exactly(self, seeded):
        """Quantities and costs keep every digit."""
        with seeded.transaction() as s:
            s.insert_issue_line(IssuedLine(
                issue_id="ISS-1", work_order_id="WO-1", part_id="OIL", qty="4.125", unit_cost="19.99",
            ))
        line = seeded.fetch_issued_lines("WO-1")[0]
        assert line.qty == Decimal("4.125")
        assert line.unit_cost == Decimal("19.99")
        assert line.id.startswith("ISL-")

    def test_fetch_keeps_insertion_order(self, seeded):
        with seeded.transaction() as s:
            for part_id in ("C", "A", "B"):
                s.insert_installation(_install(part_id, 1))
        assert [r.part_id for r in seeded.fetch_installations("WO-1")] == ["C", "A", "B"]

    def test_duplicate_serial_rejected_by_index(self, seeded):
        """The partial unique index refuses a second install of the same serial."""
        with seeded.transaction() as s:
            s.insert_installation(_install("P2", 1, serial="S1"))

        with pytest.raises(SerialAlreadyInstalled):
            with seeded.transaction() as s:
                s.insert_installation(_install("P2", 1, serial="S1"))
        assert len(seeded.fetch_installations("WO-1")) == 1

    def test_serial_issued_once_by_index(self, seeded):
        """Issue lines carry the same per-work-order serial uniqueness."""
        line = IssuedLine(issue_id="ISS-1", work_order_id="WO-1", part_id="P2", part_item_id="S1", qty=1)
        with seeded.transaction() as s:
            s.insert_issue_line(line)

        with pytest.raises(ValidationError):
            with seeded.transaction() as s:
                s.insert_issue_line(line)
        assert len(seeded.fetch_issued_lines("WO-1")) == 1

    def test_catalog_upsert(self, store):
        with store.transaction() as s:
            s.upsert_part(Part(part_id="P1", name="Oil filter"))
            s.upsert_part(Part(part_id="P1", name="Oil filter", brand="Fleetguard"))
        assert store.get_parts(["P1", "P2"]) == {"P1": Part(part_id="P1", name="Oil filter", brand="Fleetguard")}
        assert store.get_parts([]) == {}

    def test_bulk_rows_may_repeat(self, seeded):
        """NULL serials are outside the unique index."""
        with seeded.transaction() as s:
            s.insert_installation(_install("P1", 1))
            s.insert_installation(_install("P1", 2))
        assert len(seeded.fetch_installations("WO-1")) == 2

    def test_rollback_on_error(self, seeded):
        """Nothing written in a failed transaction is kept."""
        with pytest.raises(RuntimeError):
            with seeded.transaction() as s:
                s.insert_installation(_install("P1", 1))
                raise RuntimeError("boom")
        assert seeded.fetch_installations("WO-1") == []

    def test_latest_qa_result_counts(self, seeded):
        assert seeded.fetch_qa_result("WO-1") is None
        with seeded.transaction() as s:
            s.insert_qa_report(QaReport(work_order_id="WO-1", result=QaResult.FAIL))
            s.insert_qa_report(QaReport(work_order_id="WO-1", result=QaResult.PASS))
        assert seeded.fetch_qa_result("WO-1") == QaResult.PASS

    def test_foreign_keys_enforced(self, store):
        """Records cannot point at a missing work order."""
        with pytest.raises(sqlite3.IntegrityError):
            with store.transaction() as s:
                s.insert_installation(InstallationRecord(work_order_id="WO-404", part_id="P1", qty_installed=1))

    def test_records_scoped_per_work_order(self, seeded):
        with seeded.transaction() as s:
            s.insert_work_order(WorkOrder(id="WO-2"))
            s.insert_installation(_install("P2", 1, serial="S1"))
            s.insert_installation(InstallationRecord(
                work_order_id="WO-2", part_id="P2", part_item_id="S1", qty_installed=1,
            ))
        assert len(seeded.fetch_installations("WO-1")) == 1
        assert len(seeded.fetch_installations("WO-2")) == 1
