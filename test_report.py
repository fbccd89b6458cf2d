"""
Report builder tests, including the full issue-install-QA-complete walkthrough.
"""

from decimal import Decimal

from core.models.canonical import InstallationRequest, IssueLineRequest, QaResult, WorkOrderStatus
from core.models.reports import ReportStatus
from reconciliation.errors import ValidationError
from reconciliation.report import assemble_report


class TestAssembleReport:
    """Pure report assembly over already-loaded records."""

    def test_totals(self, make_line, make_install):
        """Cost total covers every issued line; mismatch counts follow the buckets."""
        lines = [make_line("P1", 3, unit_cost="10"), make_line("P2", 1, serial="S1", unit_cost="250.50")]
        installs = [make_install("P1", 3), make_install("P9", 1)]
        report = assemble_report("WO-1", lines, installs, None)

        assert report.totals.parts_cost_total == Decimal("280.50")
        assert report.totals.issued_qty_total == Decimal("4")
        assert report.totals.installed_qty_total == Decimal("4")
        assert report.totals.matched_count == 1
        assert report.totals.mismatch_counts.issued_not_installed == 1
        assert report.totals.mismatch_counts.installed_not_issued == 1
        assert report.report_status == ReportStatus.NEEDS_PARTS_RECONCILIATION

    def test_to_response_is_stable(self, make_line, make_install):
        """Two builds over the same records serialize identically."""
        lines = [make_line("B", 2, unit_cost="1.5"), make_line("A", 1)]
        installs = [make_install("A", 1)]
        first = assemble_report("WO-1", lines, installs, QaResult.PASS).to_response()
        second = assemble_report("WO-1", lines, installs, QaResult.PASS).to_response()
        assert first == second

    def test_response_shape(self, make_line):
        response = assemble_report("WO-1", [make_line("P1", 2, unit_cost="3")], [], None).to_response()

        assert response["report_status"] == "NEEDS_PARTS_RECONCILIATION"
        runtime = response["report_runtime"]
        assert runtime["issued"]["total_cost"] == "6"
        assert runtime["issued"]["lines"][0]["total_cost"] == "6"
        assert runtime["installable_parts"][0]["part_id"] == "P1"
        assert runtime["qa_result"] is None
        assert set(runtime["reconciliation"]) == {"matched", "issued_not_installed", "installed_not_issued"}

    def test_empty_work_order_needs_qa(self):
        """Nothing issued and nothing installed only waits on QA."""
        report = assemble_report("WO-1", [], [], None)
        assert report.report_status == ReportStatus.NEEDS_QA
        assert report.totals.parts_cost_total == Decimal("0")


class TestWorkOrderWalkthrough:
    """Issue P1 x3 and serial S1 of P2, install in steps, pass QA, complete."""

    def test_full_flow(self, service):
        wo = service.create_work_order(vehicle_id="TRK-7")
        issue = service.create_issue(wo.id, actor_role="ADMIN").unwrap()
        service.add_issue_lines(issue.id, [
            IssueLineRequest(part_id="P1", qty=3, unit_cost="12"),
            IssueLineRequest(part_id="P2", part_item_id="S1", qty=1, unit_cost="400"),
        ], actor_role="ADMIN").unwrap()

        # Two of three P1 installed
        service.add_installations(wo.id, [InstallationRequest(part_id="P1", qty_installed=2)]).unwrap()
        report = service.build_report(wo.id).unwrap()
        short = {e.part_id: e for e in report.reconciliation.issued_not_installed}
        assert short["P1"].issued_qty - short["P1"].installed_qty == Decimal("1")
        assert report.report_status == ReportStatus.NEEDS_PARTS_RECONCILIATION

        # Last P1
        service.add_installations(wo.id, [InstallationRequest(part_id="P1", qty_installed=1)]).unwrap()
        report = service.build_report(wo.id).unwrap()
        assert [e.part_id for e in report.reconciliation.matched] == ["P1"]

        # Serialized qty 2 is malformed
        result = service.add_installations(
            wo.id, [InstallationRequest(part_id="P2", part_item_id="S1", qty_installed=2)],
        )
        assert isinstance(result.error, ValidationError)

        service.add_installations(wo.id, [InstallationRequest(part_id="P2", part_item_id="S1")]).unwrap()
        report = service.build_report(wo.id).unwrap()
        assert [e.part_id for e in report.reconciliation.matched] == ["P1", "P2"]
        assert report.report_status == ReportStatus.NEEDS_QA
        assert report.installable_parts == []

        service.record_qa_result(wo.id, QaResult.PASS, actor_role="MECHANIC").unwrap()
        assert service.build_report(wo.id).unwrap().report_status == ReportStatus.OK

        completed = service.complete_work_order(wo.id, actor_role="ADMIN").unwrap()
        assert completed.status == WorkOrderStatus.COMPLETED
        assert completed.completed_at is not None
        assert service.get_work_order(wo.id).unwrap().status == WorkOrderStatus.COMPLETED
