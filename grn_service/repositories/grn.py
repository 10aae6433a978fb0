import logging
import re
from datetime import datetime
from typing import Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorClientSession
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import OperationFailure
from grn_service.repositories.base import BaseRepository, is_write_conflict, to_object_id
from grn_service.models.audit import AuditEntry
from grn_service.models.grn import GoodsReceiptNote, GRNItem, GRNStatus

logger = logging.getLogger(__name__)


class GRNRepository(BaseRepository[GoodsReceiptNote]):
    """
    GRN header, items and audit log live in one document, so a status change
    and its audit entry are written by a single atomic update.
    """

    async def search(self,
                     status: Optional[GRNStatus] = None,
                     po_no: Optional[str] = None,
                     search: Optional[str] = None,
                     created_by: Optional[str] = None,
                     skip: int = 0,
                     limit: int = 50) -> List[GoodsReceiptNote]:
        query = {}
        if status:
            query["status"] = GRNStatus(status).value
        if po_no:
            query["po_no"] = po_no
        if created_by:
            query["created_by"] = created_by
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"grn_no": pattern}, {"po_no": pattern}, {"supplier_name": pattern}]
        return await self.list(query, skip=skip, limit=limit, sort=[("created_at", DESCENDING)])

    async def compare_and_swap(self,
                               grn: GoodsReceiptNote,
                               expected_status: GRNStatus,
                               expected_version: int,
                               entry: AuditEntry,
                               session: AsyncIOMotorClientSession = None) -> Optional[GoodsReceiptNote]:
        """
        Persist a status transition. The write only lands if the stored document
        still has the status and version the caller read; returns None otherwise.
        """
        oid = to_object_id(grn.id)
        if oid is None:
            return None
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": oid, "status": GRNStatus(expected_status).value, "version": expected_version},
                {
                    "$set": {
                        "status": grn.status.value,
                        "rejection_reason": grn.rejection_reason,
                        "stock_entry_no": grn.stock_entry_no,
                        "updated_at": datetime.utcnow()
                    },
                    "$inc": {"version": 1},
                    "$push": {"logs": entry.model_dump(mode="python")}
                },
                return_document=ReturnDocument.AFTER,
                session=session
            )
        except OperationFailure as e:
            if not is_write_conflict(e):
                raise
            logger.warning(f"Write conflict on GRN {grn.grn_no}")
            return None
        return self.model_cls.from_mongo(doc) if doc else None

    async def revert_transition(self,
                                grn: GoodsReceiptNote,
                                applied: GoodsReceiptNote,
                                entry: AuditEntry) -> Optional[GoodsReceiptNote]:
        """
        Undo a transition written by `compare_and_swap` outside a transaction:
        restore the previous status and pull its audit entry. Lands only if
        nothing else has written the document since.
        """
        oid = to_object_id(grn.id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "status": applied.status.value, "version": applied.version},
            {
                "$set": {
                    "status": grn.status.value,
                    "rejection_reason": grn.rejection_reason,
                    "stock_entry_no": grn.stock_entry_no,
                    "updated_at": datetime.utcnow()
                },
                "$inc": {"version": 1},
                "$pull": {"logs": {"id": entry.id}}
            },
            return_document=ReturnDocument.AFTER
        )
        return self.model_cls.from_mongo(doc) if doc else None

    async def update_item(self,
                          grn_id: str,
                          item: GRNItem,
                          required_status: GRNStatus,
                          session: AsyncIOMotorClientSession = None) -> Optional[GoodsReceiptNote]:
        """
        Overwrite one line in place. Lands only while the GRN is still in
        `required_status`; other lines are untouched so concurrent inspections
        of different items do not conflict.
        """
        oid = to_object_id(grn_id)
        if oid is None:
            return None
        data = item.model_dump(mode="python", exclude={"item_status"})
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "status": GRNStatus(required_status).value, "items.id": item.id},
            {
                "$set": {"items.$": data, "updated_at": datetime.utcnow()},
                "$inc": {"version": 1}
            },
            return_document=ReturnDocument.AFTER,
            session=session
        )
        return self.model_cls.from_mongo(doc) if doc else None

    async def delete_if_untouched(self, grn_id: str) -> bool:
        """Delete a GRN that is still pending and has never transitioned."""
        oid = to_object_id(grn_id)
        if oid is None:
            return False
        result = await self.collection.delete_one(
            {"_id": oid, "status": GRNStatus.PENDING.value, "logs": {"$size": 0}}
        )
        return result.deleted_count > 0

    async def status_counts(self) -> Dict[str, int]:
        pipeline = [
            {"$group": {"_id": "$status", "count": {"$sum": 1}}}
        ]
        cursor = self.collection.aggregate(pipeline)
        stats = {doc["_id"]: doc["count"] for doc in await cursor.to_list(length=None)}

        # Fill zeros
        final_stats = {status.value: 0 for status in GRNStatus}
        final_stats.update({k: v for k, v in stats.items() if k in final_stats})
        return final_stats
