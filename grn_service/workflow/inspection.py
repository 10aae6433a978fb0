import logging
import math
from typing import Dict, List, Optional
from pydantic import BaseModel

from grn_service.database import db
from grn_service.exceptions import InvalidQuantity, InvalidState, NotFound
from grn_service.models.audit import Actor
from grn_service.models.grn import GoodsReceiptNote, GRNItem, GRNStatus, QCCheck

logger = logging.getLogger(__name__)

class InspectionResult(BaseModel):
    """Operator's outcome for one receipt line."""
    accepted_qty: float = 0.0
    rejected_qty: float = 0.0
    qc_checks: Optional[Dict[str, QCCheck]] = None
    notes: Optional[str] = None

def check_quantities(item: GRNItem, accepted_qty: float, rejected_qty: float) -> None:
    """Raise InvalidQuantity unless 0 <= accepted, 0 <= rejected and their sum <= received."""
    label = item.item_code
    for name, value in (("accepted_qty", accepted_qty), ("rejected_qty", rejected_qty)):
        if value is None or math.isnan(value) or value < 0:
            raise InvalidQuantity(f"{name} for {label} must be zero or more (got {value})",
                                  item_id=item.id, item_code=item.item_code)
    if accepted_qty + rejected_qty > item.received_qty:
        raise InvalidQuantity(
            f"Accepted ({accepted_qty}) + rejected ({rejected_qty}) exceeds received quantity "
            f"({item.received_qty}) for {label}",
            item_id=item.id, item_code=item.item_code
        )

class InspectionEngine:
    def __init__(self, database=None):
        self.db = database or db

    def validate_items(self, items: List[GRNItem]) -> None:
        """Check the quantity invariant on every line before the GRN moves on."""
        for item in items:
            check_quantities(item, item.accepted_qty, item.rejected_qty)

    def apply(self, item: GRNItem, result: InspectionResult) -> GRNItem:
        """Return a copy of `item` carrying the inspection result."""
        check_quantities(item, result.accepted_qty, result.rejected_qty)
        update = {"accepted_qty": result.accepted_qty, "rejected_qty": result.rejected_qty, "inspected": True}
        if result.qc_checks is not None:
            update["qc_checks"] = result.qc_checks
        if result.notes is not None:
            update["notes"] = result.notes
        return item.model_copy(update=update)

    async def record_item_inspection(self,
                                     grn_id: str,
                                     item_id: str,
                                     result: InspectionResult,
                                     actor: Actor) -> GRNItem:
        """
        Store the inspection of one line while the GRN is `inspecting`.
        Does not change the GRN status and writes no audit entry.
        """
        grn = await self._load(grn_id)
        if grn.status != GRNStatus.INSPECTING:
            raise InvalidState(
                f"GRN {grn.grn_no} is {grn.status.value}; items can only be inspected while inspecting",
                status=grn.status.value,
                operation="record_item_inspection"
            )
        item = grn.get_item(item_id)
        if item is None:
            raise NotFound(f"Item {item_id} not found on GRN {grn.grn_no}", item_id=item_id)

        inspected = self.apply(item, result)
        saved = await self.db.grns.update_item(grn.id, inspected, GRNStatus.INSPECTING)
        if saved is None:
            current = await self._load(grn_id)
            logger.warning(f"Inspection of {item.item_code} on {grn.grn_no} lost a race (now {current.status.value})")
            raise InvalidState(
                f"GRN {grn.grn_no} changed to {current.status.value} during inspection",
                status=current.status.value,
                operation="record_item_inspection"
            )

        logger.info(
            f"GRN {grn.grn_no}: {item.item_code} inspected by {actor.display_name} "
            f"(accepted {inspected.accepted_qty}, rejected {inspected.rejected_qty})"
        )
        return saved.get_item(item_id)

    async def _load(self, grn_id: str) -> GoodsReceiptNote:
        grn = await self.db.grns.get(grn_id)
        if not grn:
            raise NotFound(f"GRN {grn_id} not found", grn_id=grn_id)
        return grn
