from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field
from grn_service.models.base import MongoModel, EmbeddedModel
from grn_service.models.audit import AuditEntry

class GRNStatus(str, Enum):
    PENDING = "pending"
    INSPECTING = "inspecting"
    AWAITING_INVENTORY_APPROVAL = "awaiting_inventory_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    SENT_BACK = "sent_back"

class ItemStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PARTIALLY_ACCEPTED = "partially_accepted"

class QCCheck(BaseModel):
    passed: bool = False
    label: str = ""

def derive_item_status(accepted_qty: float, rejected_qty: float, received_qty: float,
                       inspected: bool) -> ItemStatus:
    """Display status of a line, computed from its inspection flag and quantities."""
    if not inspected:
        return ItemStatus.PENDING
    if accepted_qty == received_qty:
        return ItemStatus.ACCEPTED
    if accepted_qty == 0 and rejected_qty > 0:
        return ItemStatus.REJECTED
    return ItemStatus.PARTIALLY_ACCEPTED

class GRNItem(EmbeddedModel):
    """A receipt line. Quantities ordered/received are fixed at creation."""
    item_code: str
    item_name: Optional[str] = None
    warehouse_id: Optional[str] = None
    warehouse_name: Optional[str] = None
    batch_no: Optional[str] = None
    uom: Optional[str] = None

    po_qty: float = Field(0.0, ge=0, description="Quantity ordered on the PO line")
    received_qty: float = Field(..., gt=0, description="Quantity physically received")
    accepted_qty: float = 0.0
    rejected_qty: float = 0.0
    inspected: bool = False

    qc_checks: Dict[str, QCCheck] = Field(default_factory=dict)
    notes: Optional[str] = None

    @computed_field
    @property
    def item_status(self) -> ItemStatus:
        return derive_item_status(self.accepted_qty, self.rejected_qty, self.received_qty, self.inspected)

    @property
    def warehouse(self) -> Optional[str]:
        """The warehouse stock is posted to: name when known, else id."""
        return self.warehouse_name or self.warehouse_id

class GoodsReceiptNote(MongoModel):
    """
    Goods Receipt Note (GRN) document.
    Represents physical receipt of goods against a PO, with its inspection
    results and the append-only history of status transitions.
    """
    grn_no: str = Field(..., description="Human-facing GRN number, immutable")
    po_no: str = Field(..., description="Reference to PO")
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None

    status: GRNStatus = Field(default=GRNStatus.PENDING)
    receipt_date: datetime = Field(default_factory=datetime.utcnow)
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None

    items: List[GRNItem] = []
    logs: List[AuditEntry] = []

    stock_entry_no: Optional[str] = None
    version: int = 0

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        json_schema_extra={
            "example": {
                "grn_no": "GRN-202401-000042",
                "po_no": "PO-1001",
                "supplier_id": "SUP-7",
                "status": "inspecting",
                "items": [
                    {"item_code": "RM-STEEL-12", "received_qty": 10, "accepted_qty": 7, "rejected_qty": 3,
                     "warehouse_name": "Raw Material Store"}
                ]
            }
        }
    )

    def get_item(self, item_id: str) -> Optional[GRNItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    @property
    def accepted_items(self) -> List[GRNItem]:
        return [item for item in self.items if item.accepted_qty > 0]

    @property
    def total_accepted(self) -> float:
        return sum(item.accepted_qty for item in self.items)

    @property
    def total_rejected(self) -> float:
        return sum(item.rejected_qty for item in self.items)
