"""
Closeout activity and workflow tests.

Activities run inside temporalio's ActivityEnvironment. The workflow's run()
is driven directly with execute_activity replaced, so no Temporal server is
needed.
"""

import asyncio
import logging

import pytest
from temporalio import workflow
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from activities.work_orders import (
    BuildReportInput,
    BuildReportOutput,
    CompleteWorkOrderInput,
    CompleteWorkOrderOutput,
    build_work_order_report,
    complete_work_order,
    set_activity_service,
)
from core.models.canonical import InstallationRequest, IssueLineRequest, QaResult
from core.observability.metrics import get_metrics
from workflows.closeout_workflow import CloseoutInput, CloseoutStatus, WorkOrderCloseoutWorkflow


@pytest.fixture
def activity_service(service):
    set_activity_service(service)
    yield service
    set_activity_service(None)


@pytest.fixture
def ready_work_order(activity_service):
    """WO-1 with every issued part installed and QA passed."""
    service = activity_service
    service.create_work_order(work_order_id="WO-1")
    issue = service.create_issue("WO-1", actor_role="ADMIN").unwrap()
    service.add_issue_lines(issue.id, [IssueLineRequest(part_id="P1", qty=2, unit_cost="7.25")], actor_role="ADMIN")
    service.add_installations("WO-1", [InstallationRequest(part_id="P1", qty_installed=2)]).unwrap()
    service.record_qa_result("WO-1", QaResult.PASS, actor_role="MECHANIC").unwrap()
    return "WO-1"


def _run(fn, arg):
    return asyncio.run(ActivityEnvironment().run(fn, arg))


class TestActivities:

    def test_build_report(self, ready_work_order):
        output = _run(build_work_order_report, BuildReportInput(work_order_id=ready_work_order))
        assert output.report_status == "OK"
        assert output.matched_count == 1
        assert output.parts_cost_total == "14.50"
        assert get_metrics().get_summary()["activities"]["completed"] == 1

    def test_build_report_missing_work_order(self, activity_service):
        """A missing work order fails the activity without retries."""
        with pytest.raises(ApplicationError) as exc:
            _run(build_work_order_report, BuildReportInput(work_order_id="WO-404"))
        assert exc.value.non_retryable
        assert exc.value.type == "WORK_ORDER_NOT_FOUND"

    def test_complete(self, ready_work_order):
        output = _run(complete_work_order, CompleteWorkOrderInput(work_order_id=ready_work_order, actor_role="ADMIN"))
        assert output.completed
        assert output.status == "COMPLETED"
        assert output.completed_at

    def test_refusal_is_data(self, ready_work_order):
        """A role that may not complete comes back as an unsuccessful output."""
        output = _run(complete_work_order, CompleteWorkOrderInput(work_order_id=ready_work_order, actor_role="MECHANIC"))
        assert not output.completed
        assert output.status == "IN_PROGRESS"
        assert output.error_code == "FORBIDDEN"


class TestCloseoutWorkflow:

    @pytest.fixture
    def fake_activities(self, monkeypatch):
        """Replace execute_activity with canned outputs per activity."""
        outputs = {}
        calls = []

        async def execute_activity(fn, arg, **kwargs):
            calls.append(fn.__name__)
            return outputs[fn.__name__]

        monkeypatch.setattr(workflow, "execute_activity", execute_activity)
        monkeypatch.setattr(workflow, "logger", logging.getLogger("workflows.test"))
        return outputs, calls

    @staticmethod
    def _report(status):
        return BuildReportOutput(
            work_order_id="WO-1",
            report_status=status,
            matched_count=1,
            issued_not_installed=0,
            installed_not_issued=0,
            parts_cost_total="0",
        )

    def test_blocked_when_report_not_ok(self, fake_activities):
        outputs, calls = fake_activities
        outputs["build_work_order_report"] = self._report("NEEDS_QA")

        wf = WorkOrderCloseoutWorkflow()
        result = asyncio.run(wf.run(CloseoutInput(work_order_id="WO-1", actor_role="ADMIN")))

        assert result.status == CloseoutStatus.BLOCKED
        assert result.report_status == "NEEDS_QA"
        assert result.error_code == "NOT_RECONCILED_OR_QA_PENDING"
        assert calls == ["build_work_order_report"]
        assert wf.current_stage() == CloseoutStatus.BLOCKED

    def test_completed(self, fake_activities):
        outputs, calls = fake_activities
        outputs["build_work_order_report"] = self._report("OK")
        outputs["complete_work_order"] = CompleteWorkOrderOutput(
            work_order_id="WO-1", completed=True, status="COMPLETED", completed_at="2026-03-01T12:00:00",
        )

        result = asyncio.run(WorkOrderCloseoutWorkflow().run(CloseoutInput(work_order_id="WO-1", actor_role="ADMIN")))

        assert result.status == CloseoutStatus.COMPLETED
        assert result.completed_at == "2026-03-01T12:00:00"
        assert calls == ["build_work_order_report", "complete_work_order"]

    def test_rejected_by_gate(self, fake_activities):
        outputs, _ = fake_activities
        outputs["build_work_order_report"] = self._report("OK")
        outputs["complete_work_order"] = CompleteWorkOrderOutput(
            work_order_id="WO-1", completed=False, status="IN_PROGRESS",
            error_code="FORBIDDEN", error_message="Role MECHANIC may not complete work orders",
        )

        result = asyncio.run(WorkOrderCloseoutWorkflow().run(CloseoutInput(work_order_id="WO-1", actor_role="MECHANIC")))

        assert result.status == CloseoutStatus.REJECTED
        assert result.error_code == "FORBIDDEN"
