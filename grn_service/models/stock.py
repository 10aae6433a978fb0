from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from grn_service.models.base import MongoModel

class StockPosting(BaseModel):
    """Stock increase sent to the item ledger for one accepted GRN line."""
    item_code: str
    warehouse: str
    qty: float = Field(..., gt=0)
    batch_no: Optional[str] = None
    uom: Optional[str] = None
    reference: str = Field(..., description="GRN number the stock came from")

class StockEntry(MongoModel):
    """
    Ledger document recording one receipt of stock (a "Material Receipt").
    One entry per approved GRN; `reference_name` is unique.
    """
    entry_no: str
    entry_type: str
    entry_date: datetime = Field(default_factory=datetime.utcnow)
    purpose: str
    reference_doctype: str = "GRN Request"
    reference_name: str
    remarks: Optional[str] = None
    created_by: Optional[str] = None
    items: List[StockPosting] = []

class StockBalance(MongoModel):
    item_code: str
    warehouse: str
    batch_no: Optional[str] = None
    qty: float = 0.0
    updated_at: datetime = Field(default_factory=datetime.utcnow)
