"""Shared pytest fixtures: temporary SQLite store, in-memory audit, service."""

from decimal import Decimal

import pytest

from core.audit.events import AuditLogger, InMemoryAuditBackend
from core.config import Settings
from core.models.canonical import InstallationRecord, IssuedLine
from core.observability.metrics import MetricsCollector
from reconciliation.service import WorkOrderService
from storage.work_orders import WorkOrderStore


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Each test starts with empty metrics."""
    MetricsCollector.reset()
    yield
    MetricsCollector.reset()


@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=tmp_path / "fleet_test.db")


@pytest.fixture
def store(settings):
    s = WorkOrderStore(settings.db_path)
    s.init_db()
    return s


@pytest.fixture
def audit_backend():
    return InMemoryAuditBackend()


@pytest.fixture
def service(store, settings, audit_backend):
    audit = AuditLogger()
    audit.add_backend(audit_backend)
    return WorkOrderService(store, audit=audit, settings=settings)


@pytest.fixture
def make_line():
    """Factory for issued lines (bulk unless a serial is given)."""
    counter = {"n": 0}

    def _make(part_id, qty, serial=None, unit_cost="0"):
        counter["n"] += 1
        return IssuedLine(
            id=f"ISL-{counter['n']}",
            issue_id="ISS-1",
            work_order_id="WO-1",
            part_id=part_id,
            part_item_id=serial,
            qty=Decimal(str(qty)),
            unit_cost=Decimal(str(unit_cost)),
        )

    return _make


@pytest.fixture
def make_install():
    """Factory for installation records."""
    counter = {"n": 0}

    def _make(part_id, qty, serial=None):
        counter["n"] += 1
        return InstallationRecord(
            id=f"INS-{counter['n']}",
            work_order_id="WO-1",
            part_id=part_id,
            part_item_id=serial,
            qty_installed=Decimal(str(qty)),
        )

    return _make
