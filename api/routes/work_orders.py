"""Work order endpoints.

Parts catalog, issuance, installation, QA (post-report) and completion.
The caller's role is read from the X-Actor-Role header; authentication is
done upstream.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from core.models.canonical import InstallationRequest, IssueLineRequest, Part, QaResult
from reconciliation.service import WorkOrderService, get_default_service


router = APIRouter()

_service: Optional[WorkOrderService] = None


def get_service() -> WorkOrderService:
    """Process-wide service on the configured database."""
    global _service
    if _service is None:
        _service = get_default_service()
    return _service


# =============================================================================
# Request Models
# =============================================================================

class WorkOrderCreateRequest(BaseModel):
    id: Optional[str] = Field(None, description="Work order ID (generated when omitted)")
    vehicle_id: Optional[str] = None
    notes: Optional[str] = None


class IssueCreateRequest(BaseModel):
    notes: Optional[str] = None


class IssueLinesRequest(BaseModel):
    """Lines to append to an issue, written all-or-nothing."""
    lines: List[IssueLineRequest]


class InstallationsRequest(BaseModel):
    """Installations to record, written all-or-nothing."""
    items: List[InstallationRequest]


class PostReportRequest(BaseModel):
    """Road test result for a work order."""
    road_test_result: QaResult
    remarks: Optional[str] = None


class PartUpsertRequest(BaseModel):
    name: Optional[str] = None
    brand: Optional[str] = None


class CompleteRequest(BaseModel):
    notes: Optional[str] = None


# =============================================================================
# Work Orders
# =============================================================================

@router.post("/work-orders", status_code=201)
def create_work_order(
    request: WorkOrderCreateRequest,
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    """Open a new work order."""
    work_order = service.create_work_order(
        vehicle_id=request.vehicle_id,
        notes=request.notes,
        work_order_id=request.id,
    )
    return work_order.model_dump(mode="json")


@router.get("/work-orders/{work_order_id}")
def get_work_order(
    work_order_id: str,
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    return service.get_work_order(work_order_id).unwrap().model_dump(mode="json")


@router.post("/work-orders/{work_order_id}/cancel")
def cancel_work_order(
    work_order_id: str,
    x_actor_role: Optional[str] = Header(None),
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    return service.cancel_work_order(work_order_id, x_actor_role).unwrap().model_dump(mode="json")


# =============================================================================
# Catalog
# =============================================================================

@router.put("/parts/{part_id}")
def register_part(
    part_id: str,
    request: PartUpsertRequest,
    x_actor_role: Optional[str] = Header(None),
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    part = Part(part_id=part_id, name=request.name, brand=request.brand)
    return service.register_part(part, x_actor_role).unwrap().model_dump(mode="json")


@router.get("/parts/{part_id}")
def get_part(part_id: str, service: WorkOrderService = Depends(get_service)) -> Dict[str, Any]:
    part = service.describe_parts([part_id]).get(part_id)
    if part is None:
        raise HTTPException(status_code=404, detail=f"Part {part_id} is not in the catalog")
    return part.model_dump(mode="json")


# =============================================================================
# Issuance
# =============================================================================

@router.post("/work-orders/{work_order_id}/issues", status_code=201)
def create_issue(
    work_order_id: str,
    request: IssueCreateRequest,
    x_actor_role: Optional[str] = Header(None),
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    """Open an issuance event against a work order."""
    issue = service.create_issue(work_order_id, x_actor_role, notes=request.notes).unwrap()
    return issue.model_dump(mode="json")


@router.post("/issues/{issue_id}/lines", status_code=201)
def add_issue_lines(
    issue_id: str,
    request: IssueLinesRequest,
    x_actor_role: Optional[str] = Header(None),
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    lines = service.add_issue_lines(issue_id, request.lines, x_actor_role).unwrap()
    return {"lines": [line.model_dump(mode="json") for line in lines]}


# =============================================================================
# Installation
# =============================================================================

@router.get("/work-orders/{work_order_id}/installable-parts")
def get_installable_parts(
    work_order_id: str,
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    """Parts (and serials) that may still be installed, labeled from the catalog."""
    report = service.build_report(work_order_id).unwrap()
    catalog = service.describe_parts([row.part_id for row in report.installable_parts])
    items = []
    for row in report.installable_parts:
        part = catalog.get(row.part_id)
        items.append({
            **row.model_dump(mode="json"),
            "name": part.name if part else None,
            "brand": part.brand if part else None,
        })
    return {"work_order_id": work_order_id, "items": items}


@router.post("/work-orders/{work_order_id}/installations", status_code=201)
def add_installations(
    work_order_id: str,
    request: InstallationsRequest,
    x_actor_role: Optional[str] = Header(None),
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    """Record installations. The whole batch is rejected if any item fails."""
    records = service.add_installations(work_order_id, request.items, x_actor_role).unwrap()
    return {"installations": [r.model_dump(mode="json") for r in records]}


# =============================================================================
# Report, QA, Completion
# =============================================================================

@router.get("/work-orders/{work_order_id}/report")
def get_report(
    work_order_id: str,
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    return service.build_report(work_order_id).unwrap().to_response()


@router.post("/work-orders/{work_order_id}/post-report", status_code=201)
def post_report(
    work_order_id: str,
    request: PostReportRequest,
    x_actor_role: Optional[str] = Header(None),
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    """Record the road test result."""
    qa_report = service.record_qa_result(
        work_order_id,
        request.road_test_result,
        x_actor_role,
        remarks=request.remarks,
    ).unwrap()
    return qa_report.model_dump(mode="json")


@router.post("/work-orders/{work_order_id}/complete")
def complete_work_order(
    work_order_id: str,
    request: Optional[CompleteRequest] = None,
    x_actor_role: Optional[str] = Header(None),
    service: WorkOrderService = Depends(get_service),
) -> Dict[str, Any]:
    """Complete the work order if the report is OK and the role may complete."""
    notes = request.notes if request else None
    work_order = service.complete_work_order(work_order_id, x_actor_role, notes=notes).unwrap()
    return work_order.model_dump(mode="json")
