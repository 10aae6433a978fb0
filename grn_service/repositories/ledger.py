import logging
from datetime import datetime
from typing import Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError
from grn_service.config import settings
from grn_service.exceptions import PostingFailure
from grn_service.models.audit import Actor
from grn_service.models.stock import StockBalance, StockEntry, StockPosting
from grn_service.repositories.base import BaseRepository, is_write_conflict
from grn_service.repositories.counter import SequenceRepository, format_document_no

logger = logging.getLogger(__name__)

class StockLedgerRepository(BaseRepository[StockEntry]):
    """
    Item ledger: one stock entry document per receipt plus running balances
    per item/warehouse/batch. Postings are additive only.
    """

    def __init__(self, collection: AsyncIOMotorCollection, balances: AsyncIOMotorCollection,
                 sequences: SequenceRepository):
        super().__init__(collection, StockEntry)
        self.balances = balances
        self.sequences = sequences

    async def generate_entry_no(self, entry_type: str) -> str:
        """
        MA-YYYYMM-000001 for 'Material Receipt'. Drawn outside any transaction so
        concurrent approvals never conflict on the counter; an aborted approval
        leaves a gap in the numbering.
        """
        prefix = entry_type[:2].upper()
        period = datetime.utcnow().strftime("%Y%m")
        value = await self.sequences.next_value(f"stock_entry:{prefix}-{period}")
        return format_document_no(prefix, period, value)

    async def post(self,
                   postings: List[StockPosting],
                   reference: str,
                   actor: Actor,
                   entry_no: Optional[str] = None,
                   session: AsyncIOMotorClientSession = None) -> StockEntry:
        """
        Record a material receipt for `reference` and raise balances.
        Any failure raises PostingFailure. Inside a transaction the caller's
        abort discards partial writes; without one (session None) the writes
        already made are reversed here before raising. Write conflicts are
        re-raised untouched so the caller can report a lost race.
        """
        for posting in postings:
            if not posting.warehouse:
                raise PostingFailure(f"No warehouse for item {posting.item_code}", item_code=posting.item_code)

        entry_type = settings.STOCK_ENTRY_TYPE
        try:
            entry = StockEntry(
                entry_no=entry_no or await self.generate_entry_no(entry_type),
                entry_type=entry_type,
                purpose=f"GRN Approved - {reference}",
                reference_name=reference,
                remarks=f"Auto-generated from GRN Request {reference} - Inventory Approved",
                created_by=actor.id,
                items=postings
            )
            await self.create(entry, session=session)
        except DuplicateKeyError:
            raise PostingFailure(f"Stock already posted for {reference}")
        except PyMongoError as e:
            if is_write_conflict(e):
                raise
            raise PostingFailure(f"Could not record stock entry for {reference}: {e}")

        applied: List[StockPosting] = []
        for posting in postings:
            try:
                await self._add_balance(posting, posting.qty, session=session)
            except PyMongoError as e:
                if session is None:
                    await self._reverse(entry, applied)
                if is_write_conflict(e):
                    raise
                logger.error(f"Stock posting failed for {posting.item_code} @ {posting.warehouse}: {e}")
                raise PostingFailure(
                    f"Could not post {posting.qty} of {posting.item_code} to {posting.warehouse}",
                    item_code=posting.item_code,
                    warehouse=posting.warehouse
                )
            applied.append(posting)

        logger.info(f"Stock entry {entry.entry_no} posted for {reference} ({len(postings)} lines)")
        return entry

    async def _add_balance(self, posting: StockPosting, qty: float, session: AsyncIOMotorClientSession = None):
        await self.balances.update_one(
            {"item_code": posting.item_code, "warehouse": posting.warehouse, "batch_no": posting.batch_no},
            {"$inc": {"qty": qty}, "$set": {"updated_at": datetime.utcnow()}},
            upsert=True,
            session=session
        )

    async def _reverse(self, entry: StockEntry, applied: List[StockPosting]) -> None:
        logger.warning(f"Reversing stock entry {entry.entry_no} for {entry.reference_name} "
                       f"({len(applied)} balance lines)")
        for posting in applied:
            await self._add_balance(posting, -posting.qty)
        await self.collection.delete_one({"entry_no": entry.entry_no})

    async def get_entry_for(self, reference: str) -> Optional[StockEntry]:
        return await self.get_by_field("reference_name", reference)

    async def list_balances(self, item_code: Optional[str] = None, warehouse: Optional[str] = None,
                            limit: int = 200) -> List[StockBalance]:
        query: Dict[str, str] = {}
        if item_code:
            query["item_code"] = item_code
        if warehouse:
            query["warehouse"] = warehouse
        cursor = self.balances.find(query).sort([("item_code", ASCENDING), ("warehouse", ASCENDING)]).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [StockBalance.from_mongo(doc) for doc in docs]
