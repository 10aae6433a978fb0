import logging
from datetime import datetime
from typing import Dict, List, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from grn_service.config import settings
from grn_service.database import db
from grn_service.exceptions import (
    GRNError, InvalidQuantity, InvalidState, MissingReason, NotFound, PostingFailure, ValidationError
)
from grn_service.models.audit import Actor, AuditEntry
from grn_service.models.grn import GoodsReceiptNote, GRNItem, GRNStatus
from grn_service.models.stock import StockPosting
from grn_service.repositories.base import is_write_conflict
from grn_service.repositories.counter import format_document_no
from grn_service.workflow import state_machine
from grn_service.workflow.inspection import InspectionEngine, InspectionResult
from grn_service.workflow.state_machine import Operation, Transition

logger = logging.getLogger(__name__)

class ApprovalCoordinator:
    """
    Runs every GRN operation: validates the requested edge against the
    transition table, enforces the quantity invariants, writes the new status
    together with its audit entry, and posts stock on final approval.
    """

    def __init__(self, database=None, inspection: InspectionEngine = None):
        self.db = database or db
        self.inspection = inspection or InspectionEngine(self.db)

    # --- Reads -----------------------------------------------------------

    async def get_grn(self, grn_id: str, session=None) -> GoodsReceiptNote:
        grn = await self.db.grns.get(grn_id, session=session)
        if not grn:
            raise NotFound(f"GRN {grn_id} not found", grn_id=grn_id)
        return grn

    async def list_grns(self, status: Optional[GRNStatus] = None, po_no: Optional[str] = None,
                        search: Optional[str] = None, created_by: Optional[str] = None,
                        skip: int = 0, limit: int = 50) -> List[GoodsReceiptNote]:
        return await self.db.grns.search(status=status, po_no=po_no, search=search, created_by=created_by,
                                         skip=skip, limit=limit)

    async def stats(self) -> Dict[str, int]:
        return await self.db.grns.status_counts()

    async def get_logs(self, grn_id: str) -> List[AuditEntry]:
        grn = await self.get_grn(grn_id)
        return sorted(grn.logs, key=lambda e: e.created_at)

    # --- Lifecycle outside the state machine -----------------------------

    async def create_grn(self, grn: GoodsReceiptNote, actor: Actor) -> GoodsReceiptNote:
        """Record a receipt against a PO. The GRN starts `pending` with nothing inspected."""
        if not grn.items:
            raise ValidationError("A GRN needs at least one item")
        if not grn.po_no:
            raise ValidationError("A GRN must reference a purchase order")

        now = datetime.utcnow()
        items = [
            item.model_copy(update={
                "accepted_qty": 0.0,
                "rejected_qty": 0.0,
                "inspected": False,
                "uom": item.uom or settings.DEFAULT_UOM
            })
            for item in grn.items
        ]
        grn = grn.model_copy(update={
            "id": None,
            "grn_no": grn.grn_no or await self._next_grn_no(),
            "status": GRNStatus.PENDING,
            "rejection_reason": None,
            "stock_entry_no": None,
            "items": items,
            "logs": [],
            "version": 0,
            "created_by": actor.id,
            "created_at": now,
            "updated_at": now
        })
        try:
            created = await self.db.grns.create(grn)
        except DuplicateKeyError:
            raise ValidationError(f"GRN number {grn.grn_no} already exists", grn_no=grn.grn_no)

        logger.info(f"GRN {created.grn_no} created for PO {created.po_no} by {actor.display_name}")
        return created

    async def delete_grn(self, grn_id: str, actor: Actor) -> None:
        """Only a pending GRN that has never transitioned may be deleted."""
        grn = await self.get_grn(grn_id)
        if grn.status != GRNStatus.PENDING or grn.logs:
            raise InvalidState(
                f"GRN {grn.grn_no} is {grn.status.value} and is kept as a historical record",
                status=grn.status.value,
                operation="delete"
            )
        if not await self.db.grns.delete_if_untouched(grn_id):
            current = await self.get_grn(grn_id)
            raise InvalidState(f"GRN {grn.grn_no} changed before it could be deleted",
                               status=current.status.value, operation="delete")
        logger.info(f"GRN {grn.grn_no} deleted by {actor.display_name}")

    # --- State machine operations ----------------------------------------

    async def start_inspection(self, grn_id: str, actor: Actor) -> GoodsReceiptNote:
        return await self._transition(grn_id, Operation.START_INSPECTION, actor)

    async def record_item_inspection(self, grn_id: str, item_id: str, result: InspectionResult,
                                     actor: Actor) -> GRNItem:
        return await self.inspection.record_item_inspection(grn_id, item_id, result, actor)

    async def submit_for_inventory_approval(self, grn_id: str, actor: Actor) -> GoodsReceiptNote:
        return await self._transition(grn_id, Operation.SUBMIT_FOR_INVENTORY_APPROVAL, actor,
                                      guard=self._check_ready_for_inventory)

    async def reject(self, grn_id: str, reason: Optional[str], actor: Actor) -> GoodsReceiptNote:
        return await self._transition(grn_id, Operation.REJECT, actor, reason=reason)

    async def send_back(self, grn_id: str, reason: Optional[str], actor: Actor) -> GoodsReceiptNote:
        return await self._transition(grn_id, Operation.SEND_BACK, actor, reason=reason)

    async def inventory_approve(self, grn_id: str, actor: Actor) -> GoodsReceiptNote:
        """
        Final approval. Status change, audit entry and stock posting commit
        together; if any posting fails nothing is written and the GRN stays
        awaiting_inventory_approval.
        """
        try:
            async with self.db.transaction() as session:
                return await self._transition(grn_id, Operation.INVENTORY_APPROVE, actor,
                                              guard=self._check_postable, session=session)
        except PostingFailure as e:
            logger.error(f"Inventory approval of GRN {grn_id} rolled back: {e.message}")
            raise
        except PyMongoError as e:
            if not is_write_conflict(e):
                logger.error(f"Inventory approval of GRN {grn_id} rolled back: {e}")
                raise PostingFailure(f"Stock could not be posted for GRN {grn_id}; nothing was written")
            current = await self.get_grn(grn_id)
            logger.warning(f"GRN {current.grn_no}: inventory_approve hit a write conflict "
                           f"(now {current.status.value})")
            raise InvalidState(
                f"GRN {current.grn_no} conflicted with a concurrent update (now {current.status.value}); "
                f"reload and retry",
                status=current.status.value,
                operation=Operation.INVENTORY_APPROVE.value
            )

    # --- Internals ---------------------------------------------------------

    async def _transition(self, grn_id: str, operation: Operation, actor: Actor,
                          reason: Optional[str] = None, guard=None, session=None) -> GoodsReceiptNote:
        grn = await self.get_grn(grn_id, session=session)
        try:
            transition = state_machine.resolve(operation, grn.status)
            reason = self._check_reason(transition, reason)
            if guard:
                guard(grn)
        except GRNError as e:
            logger.warning(f"GRN {grn.grn_no}: {operation.value} refused ({e.kind}): {e.message}")
            raise

        entry = AuditEntry(
            action=transition.action,
            status_from=grn.status.value,
            status_to=transition.to_state.value,
            reason=reason,
            actor=actor
        )
        updated = grn.model_copy(update={
            "status": transition.to_state,
            "rejection_reason": reason if transition.to_state == GRNStatus.REJECTED else None
        })

        postings = self._build_postings(grn) if transition.posts_stock else []
        if postings:
            entry_no = await self.db.ledger.generate_entry_no(settings.STOCK_ENTRY_TYPE)
            updated = updated.model_copy(update={"stock_entry_no": entry_no})

        saved = await self.db.grns.compare_and_swap(updated, grn.status, grn.version, entry, session=session)
        if saved is None:
            current = await self.get_grn(grn_id)
            logger.warning(f"GRN {grn.grn_no}: {operation.value} lost a concurrent update "
                           f"(now {current.status.value})")
            raise InvalidState(
                f"GRN {grn.grn_no} was changed by another user (now {current.status.value}); reload and retry",
                status=current.status.value,
                operation=operation.value
            )

        if postings:
            # In a transaction the abort discards the status change; without one it is undone here
            try:
                await self.db.ledger.post(postings, grn.grn_no, actor, entry_no=updated.stock_entry_no,
                                          session=session)
            except (PostingFailure, PyMongoError):
                if session is None:
                    await self._revert(grn, saved, entry)
                raise

        logger.info(f"GRN {saved.grn_no}: {entry.status_from} -> {entry.status_to} by {actor.display_name}")
        return saved

    async def _revert(self, grn: GoodsReceiptNote, saved: GoodsReceiptNote, entry: AuditEntry) -> None:
        reverted = await self.db.grns.revert_transition(grn, saved, entry)
        if reverted is None:
            logger.error(f"GRN {grn.grn_no}: could not restore {grn.status.value} after a failed posting; "
                         f"manual correction needed")
        else:
            logger.warning(f"GRN {grn.grn_no}: restored to {grn.status.value} after a failed posting")

    def _check_reason(self, transition: Transition, reason: Optional[str]) -> Optional[str]:
        reason = reason.strip() if reason else None
        if transition.requires_reason and not reason:
            raise MissingReason(f"A reason is required to {transition.operation.value.replace('_', ' ')}")
        return reason

    def _check_ready_for_inventory(self, grn: GoodsReceiptNote) -> None:
        self.inspection.validate_items(grn.items)
        if not grn.accepted_items:
            raise InvalidQuantity(
                f"Nothing was accepted on GRN {grn.grn_no}; reject it instead of sending it to inventory"
            )

    def _check_postable(self, grn: GoodsReceiptNote) -> None:
        self._check_ready_for_inventory(grn)
        for item in grn.accepted_items:
            if not item.warehouse:
                raise PostingFailure(
                    f"Item {item.item_code} has no warehouse to store {item.accepted_qty} in",
                    item_code=item.item_code
                )

    def _build_postings(self, grn: GoodsReceiptNote) -> List[StockPosting]:
        return [
            StockPosting(
                item_code=item.item_code,
                warehouse=item.warehouse,
                qty=item.accepted_qty,
                batch_no=item.batch_no,
                uom=item.uom or settings.DEFAULT_UOM,
                reference=grn.grn_no
            )
            for item in grn.accepted_items
        ]

    async def _next_grn_no(self) -> str:
        period = datetime.utcnow().strftime("%Y%m")
        prefix = settings.GRN_NO_PREFIX
        value = await self.db.sequences.next_value(f"grn:{prefix}-{period}")
        return format_document_no(prefix, period, value)

approval_coordinator = ApprovalCoordinator()
