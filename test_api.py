"""
HTTP API tests using FastAPI's TestClient against a temporary database.
"""

import pytest
from fastapi.testclient import TestClient

from api.routes.work_orders import get_service
from api.server import create_app

ADMIN = {"X-Actor-Role": "ADMIN"}
MECHANIC = {"X-Actor-Role": "MECHANIC"}


@pytest.fixture
def client(service):
    app = create_app()
    app.dependency_overrides[get_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def work_order_id(client):
    """An in-progress work order with P1 x3 and serial S1 of P2 issued."""
    response = client.post("/work-orders", json={"id": "WO-100", "vehicle_id": "TRK-7"})
    assert response.status_code == 201

    issue = client.post("/work-orders/WO-100/issues", json={}, headers=ADMIN).json()
    response = client.post(f"/issues/{issue['id']}/lines", json={"lines": [
        {"part_id": "P1", "qty": "3", "unit_cost": "12.00"},
        {"part_id": "P2", "part_item_id": "S1", "qty": 1, "unit_cost": "400"},
    ]}, headers=ADMIN)
    assert response.status_code == 201
    return "WO-100"


class TestHealth:

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["services"]["storage"] == "up"
        assert data["services"]["work_orders"] == 0

    def test_storage_down(self, settings, tmp_path):
        """A store whose schema was never created is reported as down."""
        from core.audit.events import AuditLogger
        from reconciliation.service import WorkOrderService
        from storage.work_orders import WorkOrderStore

        app = create_app()
        bare = WorkOrderService(WorkOrderStore(tmp_path / "empty.db"), audit=AuditLogger(), settings=settings)
        app.dependency_overrides[get_service] = lambda: bare
        client = TestClient(app)

        assert client.get("/health").json()["status"] == "degraded"
        response = client.get("/ready")
        assert response.status_code == 503
        assert response.json() == {"status": "not ready"}

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}

    def test_request_id_echoed(self, client):
        """A caller-supplied request id comes back; otherwise one is generated."""
        assert client.get("/live", headers={"X-Request-ID": "req-42"}).headers["X-Request-ID"] == "req-42"
        assert client.get("/live").headers["X-Request-ID"]

    def test_metrics(self, client, work_order_id):
        """Accepted operations show up in the metrics summary."""
        data = client.get("/metrics").json()
        assert data["operations"]["by_operation"]["add_issue_lines"]["accepted"] == 1


class TestWorkOrderEndpoints:

    def test_get_work_order(self, client, work_order_id):
        data = client.get(f"/work-orders/{work_order_id}").json()
        assert data["status"] == "IN_PROGRESS"
        assert data["vehicle_id"] == "TRK-7"

    def test_unknown_work_order_is_404(self, client):
        response = client.get("/work-orders/WO-404")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WORK_ORDER_NOT_FOUND"

    def test_issue_without_role_is_403(self, client, work_order_id):
        response = client.post(f"/work-orders/{work_order_id}/issues", json={}, headers=MECHANIC)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_installable_parts(self, client, work_order_id):
        data = client.get(f"/work-orders/{work_order_id}/installable-parts").json()
        items = {row["part_id"]: row for row in data["items"]}
        assert items["P1"]["remaining_qty"] == "3"
        assert items["P2"]["installable_serials"] == ["S1"]

    def test_missing_serial_is_400(self, client, work_order_id):
        """A serialized part requires a serial; the error lists the choices."""
        response = client.post(
            f"/work-orders/{work_order_id}/installations",
            json={"items": [{"part_id": "P2", "qty_installed": 1}]},
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "SERIAL_REQUIRED"
        assert error["details"]["installable_serials"] == ["S1"]

    def test_over_install_is_409(self, client, work_order_id):
        response = client.post(
            f"/work-orders/{work_order_id}/installations",
            json={"items": [{"part_id": "P1", "qty_installed": 5}]},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "QUANTITY_EXCEEDS_REMAINING"

    @pytest.mark.parametrize("qty", ["abc", "Infinity", "NaN"])
    def test_unusable_qty_is_400(self, client, work_order_id, qty):
        """Non-numeric and non-finite quantities come back as VALIDATION_ERROR."""
        issue = client.post(f"/work-orders/{work_order_id}/issues", json={}, headers=ADMIN).json()
        response = client.post(f"/issues/{issue['id']}/lines", json={"lines": [
            {"part_id": "P3", "qty": qty},
        ]}, headers=ADMIN)
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["fields"][0]["loc"][-1] == "qty"

    def test_non_finite_odometer_is_400(self, client, work_order_id):
        response = client.post(f"/work-orders/{work_order_id}/installations", json={"items": [
            {"part_id": "P1", "qty_installed": 1, "odometer_at_install": "Infinity"},
        ]})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_serial_issued_twice_is_400(self, client, work_order_id):
        issue = client.post(f"/work-orders/{work_order_id}/issues", json={}, headers=ADMIN).json()
        response = client.post(f"/issues/{issue['id']}/lines", json={"lines": [
            {"part_id": "P2", "part_item_id": "S1", "qty": 1},
        ]}, headers=ADMIN)
        assert response.status_code == 400
        assert response.json()["error"]["details"]["part_item_id"] == "S1"

    def test_catalog_labels_installable_parts(self, client, work_order_id):
        assert client.put("/parts/P1", json={"name": "Oil filter"}, headers=MECHANIC).status_code == 403
        response = client.put("/parts/P1", json={"name": "Oil filter", "brand": "Fleetguard"}, headers=ADMIN)
        assert response.json() == {"part_id": "P1", "name": "Oil filter", "brand": "Fleetguard"}
        assert client.get("/parts/P9").status_code == 404

        items = {row["part_id"]: row for row in client.get(f"/work-orders/{work_order_id}/installable-parts").json()["items"]}
        assert items["P1"]["name"] == "Oil filter"
        assert items["P2"]["name"] is None

    def test_qa_refused_before_reconciliation(self, client, work_order_id):
        response = client.post(
            f"/work-orders/{work_order_id}/post-report",
            json={"road_test_result": "PASS"},
            headers=MECHANIC,
        )
        assert response.status_code == 409
        assert response.json()["error"]["details"]["report_status"] == "NEEDS_PARTS_RECONCILIATION"

    def test_close_out(self, client, work_order_id):
        """Install everything, pass QA, then complete."""
        response = client.post(f"/work-orders/{work_order_id}/installations", json={"items": [
            {"part_id": "P1", "qty_installed": 3, "odometer_at_install": 120450},
            {"part_id": "P2", "part_item_id": "S1"},
        ]})
        assert response.status_code == 201
        assert len(response.json()["installations"]) == 2

        report = client.get(f"/work-orders/{work_order_id}/report").json()
        assert report["report_status"] == "NEEDS_QA"
        assert report["report_runtime"]["totals"]["matched_count"] == 2

        blocked = client.post(f"/work-orders/{work_order_id}/complete", headers=ADMIN)
        assert blocked.status_code == 409
        assert blocked.json()["error"]["details"]["report_status"] == "NEEDS_QA"

        response = client.post(
            f"/work-orders/{work_order_id}/post-report",
            json={"road_test_result": "PASS", "remarks": "Brakes OK"},
            headers=MECHANIC,
        )
        assert response.status_code == 201

        response = client.post(f"/work-orders/{work_order_id}/complete", json={}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

        again = client.post(f"/work-orders/{work_order_id}/complete", headers=ADMIN)
        assert again.json()["error"]["code"] == "ALREADY_TERMINAL"

    def test_cancel(self, client, work_order_id):
        assert client.post(f"/work-orders/{work_order_id}/cancel", headers=MECHANIC).status_code == 403
        response = client.post(f"/work-orders/{work_order_id}/cancel", headers=ADMIN)
        assert response.json()["status"] == "CANCELED"
