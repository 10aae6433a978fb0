from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from grn_service.api.auth import User
from grn_service.guardrails.decorators import require_permission, SoDChecker
from grn_service.guardrails.permissions import Permission
from grn_service.models.audit import AuditEntry
from grn_service.models.grn import GoodsReceiptNote, GRNItem, GRNStatus
from grn_service.reports.grn_pdf import render_grn_pdf
from grn_service.workflow.coordinator import approval_coordinator
from grn_service.workflow.inspection import InspectionResult

router = APIRouter(prefix="/api/grn-requests", tags=["GRN Requests"])

# Request Models
class GRNItemCreate(BaseModel):
    item_code: str
    item_name: Optional[str] = None
    warehouse_id: Optional[str] = None
    warehouse_name: Optional[str] = None
    batch_no: Optional[str] = None
    uom: Optional[str] = None
    po_qty: float = Field(0.0, ge=0)
    received_qty: float = Field(..., gt=0)

class GRNCreate(BaseModel):
    grn_no: Optional[str] = None
    po_no: str
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None
    receipt_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[GRNItemCreate] = Field(..., min_length=1)

class ReasonRequest(BaseModel):
    reason: Optional[str] = None

@router.post("/", response_model=GoodsReceiptNote, response_model_by_alias=False, status_code=201)
async def create_grn(
    payload: GRNCreate,
    current_user: User = Depends(require_permission(Permission.CREATE_GRN))
):
    data = payload.model_dump(exclude_none=True)
    # Numbered by the coordinator when the client does not supply one
    data.setdefault("grn_no", "")
    grn = GoodsReceiptNote(**data)
    return await approval_coordinator.create_grn(grn, current_user.to_actor())

@router.get("/", response_model=List[GoodsReceiptNote], response_model_by_alias=False)
async def list_grns(
    status: Optional[GRNStatus] = None,
    po_no: Optional[str] = None,
    search: Optional[str] = None,
    created_by: Optional[str] = None,
    limit: int = 50,
    skip: int = 0,
    current_user: User = Depends(require_permission(Permission.VIEW_GRN))
):
    return await approval_coordinator.list_grns(status=status, po_no=po_no, search=search, created_by=created_by,
                                               skip=skip, limit=limit)

@router.get("/stats", response_model=Dict[str, int])
async def get_grn_stats(current_user: User = Depends(require_permission(Permission.VIEW_GRN))):
    """Counts by status."""
    return await approval_coordinator.stats()

@router.get("/{grn_id}", response_model=GoodsReceiptNote, response_model_by_alias=False)
async def get_grn(grn_id: str, current_user: User = Depends(require_permission(Permission.VIEW_GRN))):
    return await approval_coordinator.get_grn(grn_id)

@router.delete("/{grn_id}", status_code=204)
async def delete_grn(grn_id: str, current_user: User = Depends(require_permission(Permission.DELETE_GRN))):
    await approval_coordinator.delete_grn(grn_id, current_user.to_actor())
    return Response(status_code=204)

@router.get("/{grn_id}/logs", response_model=List[AuditEntry])
async def get_grn_logs(grn_id: str, current_user: User = Depends(require_permission(Permission.VIEW_GRN))):
    return await approval_coordinator.get_logs(grn_id)

@router.get("/{grn_id}/pdf")
async def download_grn_pdf(grn_id: str, current_user: User = Depends(require_permission(Permission.VIEW_GRN))):
    grn = await approval_coordinator.get_grn(grn_id)
    return Response(
        content=render_grn_pdf(grn),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="GRN_{grn.grn_no}.pdf"'}
    )

@router.post("/{grn_id}/start-inspection", response_model=GoodsReceiptNote, response_model_by_alias=False)
async def start_inspection(grn_id: str, current_user: User = Depends(require_permission(Permission.INSPECT_GRN))):
    return await approval_coordinator.start_inspection(grn_id, current_user.to_actor())

@router.post("/{grn_id}/items/{item_id}/inspect", response_model=GRNItem)
async def inspect_item(
    grn_id: str,
    item_id: str,
    result: InspectionResult,
    current_user: User = Depends(require_permission(Permission.INSPECT_GRN))
):
    return await approval_coordinator.record_item_inspection(grn_id, item_id, result, current_user.to_actor())

@router.post("/{grn_id}/send-to-inventory", response_model=GoodsReceiptNote, response_model_by_alias=False)
async def send_to_inventory(
    grn_id: str,
    current_user: User = Depends(require_permission(Permission.SEND_TO_INVENTORY))
):
    return await approval_coordinator.submit_for_inventory_approval(grn_id, current_user.to_actor())

@router.post("/{grn_id}/reject", response_model=GoodsReceiptNote, response_model_by_alias=False)
async def reject_grn(
    grn_id: str,
    payload: Optional[ReasonRequest] = None,
    current_user: User = Depends(require_permission(Permission.REJECT_GRN))
):
    return await approval_coordinator.reject(grn_id, payload.reason if payload else None, current_user.to_actor())

@router.post("/{grn_id}/send-back", response_model=GoodsReceiptNote, response_model_by_alias=False)
async def send_back_grn(
    grn_id: str,
    payload: Optional[ReasonRequest] = None,
    current_user: User = Depends(require_permission(Permission.SEND_BACK_GRN))
):
    return await approval_coordinator.send_back(grn_id, payload.reason if payload else None, current_user.to_actor())

@router.post("/{grn_id}/inventory-approve", response_model=GoodsReceiptNote, response_model_by_alias=False)
async def inventory_approve(
    grn_id: str,
    current_user: User = Depends(SoDChecker("inventory_approve", Permission.INVENTORY_APPROVE))
):
    return await approval_coordinator.inventory_approve(grn_id, current_user.to_actor())
