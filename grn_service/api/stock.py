from typing import List, Optional

from fastapi import APIRouter, Depends

from grn_service.api.auth import User
from grn_service.database import db
from grn_service.guardrails.decorators import require_permission
from grn_service.guardrails.permissions import Permission
from grn_service.exceptions import NotFound
from grn_service.models.stock import StockBalance, StockEntry

router = APIRouter(prefix="/api/stock", tags=["Stock"])

@router.get("/balances", response_model=List[StockBalance], response_model_by_alias=False)
async def list_stock_balances(
    item_code: Optional[str] = None,
    warehouse: Optional[str] = None,
    current_user: User = Depends(require_permission(Permission.VIEW_STOCK))
):
    """Quantities on hand per item/warehouse/batch, as raised by approved GRNs."""
    return await db.ledger.list_balances(item_code=item_code, warehouse=warehouse)

@router.get("/entries/{grn_no}", response_model=StockEntry, response_model_by_alias=False)
async def get_stock_entry(grn_no: str, current_user: User = Depends(require_permission(Permission.VIEW_STOCK))):
    """The Material Receipt posted when GRN `grn_no` was approved."""
    entry = await db.ledger.get_entry_for(grn_no)
    if not entry:
        raise NotFound(f"No stock entry for GRN {grn_no}", grn_no=grn_no)
    return entry
