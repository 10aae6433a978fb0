import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from grn_service.config import settings
from grn_service.database import Database
from grn_service.exceptions import PostingFailure
from grn_service.models.audit import Actor
from grn_service.models.grn import GoodsReceiptNote, GRNItem, GRNStatus
from grn_service.models.stock import StockBalance, StockEntry
from grn_service.repositories.counter import format_document_no
from grn_service.workflow.coordinator import ApprovalCoordinator


class FakeSession:
    """Stands in for a Motor session: collects undo steps for the open transaction."""
    def __init__(self):
        self.undo = []

    def on_abort(self, step):
        self.undo.append(step)


class InMemorySequences:
    def __init__(self):
        self.values: Dict[str, int] = {}

    async def next_value(self, name: str, session=None) -> int:
        self.values[name] = self.values.get(name, 0) + 1
        return self.values[name]


class InMemoryGRNRepository:
    """
    Same contract as GRNRepository. Reads yield to the event loop so that
    concurrent callers interleave the way they do against a real server.
    """
    def __init__(self):
        self.docs: Dict[str, GoodsReceiptNote] = {}

    def _store(self, grn: GoodsReceiptNote, session=None):
        previous = self.docs.get(grn.id)
        self.docs[grn.id] = grn
        if session is not None:
            session.on_abort(lambda: self.docs.__setitem__(grn.id, previous))

    async def get(self, id: str, session=None) -> Optional[GoodsReceiptNote]:
        await asyncio.sleep(0)
        grn = self.docs.get(id)
        return grn.model_copy(deep=True) if grn else None

    async def search(self, status=None, po_no=None, search=None, created_by=None,
                     skip=0, limit=50) -> List[GoodsReceiptNote]:
        found = []
        for grn in self.docs.values():
            if status and grn.status != GRNStatus(status):
                continue
            if po_no and grn.po_no != po_no:
                continue
            if created_by and grn.created_by != created_by:
                continue
            if search:
                needle = search.lower()
                haystack = [grn.grn_no, grn.po_no, grn.supplier_name or ""]
                if not any(needle in value.lower() for value in haystack):
                    continue
            found.append(grn.model_copy(deep=True))
        found.sort(key=lambda g: g.created_at, reverse=True)
        return found[skip:skip + limit]

    async def create(self, grn: GoodsReceiptNote, session=None) -> GoodsReceiptNote:
        if any(existing.grn_no == grn.grn_no for existing in self.docs.values()):
            raise DuplicateKeyError(f"duplicate grn_no {grn.grn_no}")
        grn.id = str(ObjectId())
        self._store(grn.model_copy(deep=True), session)
        return grn

    async def compare_and_swap(self, grn, expected_status, expected_version, entry, session=None):
        stored = self.docs.get(grn.id)
        if stored is None or stored.status != expected_status or stored.version != expected_version:
            return None
        updated = stored.model_copy(deep=True, update={
            "status": grn.status,
            "rejection_reason": grn.rejection_reason,
            "stock_entry_no": grn.stock_entry_no,
            "version": stored.version + 1,
            "logs": stored.logs + [entry],
            "updated_at": datetime.utcnow()
        })
        self._store(updated, session)
        return updated.model_copy(deep=True)

    async def revert_transition(self, grn, applied, entry):
        stored = self.docs.get(grn.id)
        if stored is None or stored.status != applied.status or stored.version != applied.version:
            return None
        reverted = stored.model_copy(deep=True, update={
            "status": grn.status,
            "rejection_reason": grn.rejection_reason,
            "stock_entry_no": grn.stock_entry_no,
            "version": stored.version + 1,
            "logs": [e for e in stored.logs if e.id != entry.id],
            "updated_at": datetime.utcnow()
        })
        self._store(reverted)
        return reverted.model_copy(deep=True)

    async def update_item(self, grn_id: str, item: GRNItem, required_status, session=None):
        stored = self.docs.get(grn_id)
        if stored is None or stored.status != required_status or stored.get_item(item.id) is None:
            return None
        items = [item if existing.id == item.id else existing for existing in stored.items]
        updated = stored.model_copy(deep=True, update={
            "items": items,
            "version": stored.version + 1,
            "updated_at": datetime.utcnow()
        })
        self._store(updated, session)
        return updated.model_copy(deep=True)

    async def delete_if_untouched(self, grn_id: str) -> bool:
        stored = self.docs.get(grn_id)
        if stored is None or stored.status != GRNStatus.PENDING or stored.logs:
            return False
        del self.docs[grn_id]
        return True

    async def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in GRNStatus}
        for grn in self.docs.values():
            counts[grn.status.value] += 1
        return counts


class InMemoryLedger:
    """
    Same contract as StockLedgerRepository. Set `fail_on` to an item code to
    make posting of that line fail after the earlier lines were written;
    `error` replaces the PostingFailure raised there. Without a session the
    partial writes are reversed before raising, as the real ledger does.
    """
    def __init__(self, sequences: InMemorySequences):
        self.sequences = sequences
        self.entries: List[StockEntry] = []
        self.balances: Dict[tuple, float] = {}
        self.fail_on: Optional[str] = None
        self.error: Optional[Exception] = None

    async def generate_entry_no(self, entry_type: str) -> str:
        period = datetime.utcnow().strftime("%Y%m")
        value = await self.sequences.next_value(f"stock_entry:{period}")
        return format_document_no(entry_type[:2].upper(), period, value)

    async def post(self, postings, reference: str, actor: Actor, entry_no=None, session=None) -> StockEntry:
        if any(entry.reference_name == reference for entry in self.entries):
            raise PostingFailure(f"Stock already posted for {reference}")
        entry = StockEntry(
            entry_no=entry_no or await self.generate_entry_no("Material Receipt"),
            entry_type="Material Receipt",
            purpose=f"GRN Approved - {reference}",
            reference_name=reference,
            created_by=actor.id,
            items=postings
        )
        self.entries.append(entry)
        undo = [lambda: self.entries.remove(entry)]

        for posting in postings:
            if posting.item_code == self.fail_on:
                if session is None:
                    for step in reversed(undo):
                        step()
                else:
                    for step in undo:
                        session.on_abort(step)
                raise self.error or PostingFailure(f"Ledger refused {posting.item_code}",
                                                   item_code=posting.item_code, warehouse=posting.warehouse)
            key = (posting.item_code, posting.warehouse, posting.batch_no)
            previous = self.balances.get(key)
            self.balances[key] = (previous or 0.0) + posting.qty
            undo.append(lambda key=key, previous=previous: self._restore(key, previous))

        if session is not None:
            for step in undo:
                session.on_abort(step)
        return entry

    def _restore(self, key, previous):
        if previous is None:
            self.balances.pop(key, None)
        else:
            self.balances[key] = previous

    async def get_entry_for(self, reference: str) -> Optional[StockEntry]:
        for entry in self.entries:
            if entry.reference_name == reference:
                return entry
        return None

    async def list_balances(self, item_code=None, warehouse=None, limit=200) -> List[StockBalance]:
        rows = [
            StockBalance(item_code=code, warehouse=wh, batch_no=batch, qty=qty)
            for (code, wh, batch), qty in sorted(self.balances.items(), key=lambda kv: (kv[0][0], kv[0][1]))
            if (item_code is None or code == item_code) and (warehouse is None or wh == warehouse)
        ]
        return rows[:limit]

    def balance(self, item_code: str, warehouse: str, batch_no: Optional[str] = None) -> float:
        return self.balances.get((item_code, warehouse, batch_no), 0.0)


class InMemoryDatabase:
    """Drop-in for grn_service.database.Database with transaction rollback."""
    def __init__(self):
        self.sequences = InMemorySequences()
        self.grns = InMemoryGRNRepository()
        self.ledger = InMemoryLedger(self.sequences)

    @asynccontextmanager
    async def transaction(self):
        session = FakeSession()
        try:
            yield session
        except BaseException:
            for step in reversed(session.undo):
                step()
            raise


@pytest.fixture
def fake_db():
    return InMemoryDatabase()


@pytest.fixture
def coordinator(fake_db):
    return ApprovalCoordinator(database=fake_db)


@pytest.fixture
def non_transactional_db(fake_db, monkeypatch):
    """The real Database with in-memory repositories and transactions switched off."""
    monkeypatch.setattr(settings, "MONGODB_USE_TRANSACTIONS", False)
    database = Database()
    database.sequences = fake_db.sequences
    database.grns = fake_db.grns
    database.ledger = fake_db.ledger
    return database


@pytest.fixture
def clerk():
    return Actor(id="clerk", name="Store Clerk")


@pytest.fixture
def inspector():
    return Actor(id="insp", name="QC Inspector")


@pytest.fixture
def inventory():
    return Actor(id="inv", name="Inventory Manager")


@pytest.fixture
def sample_grn():
    return GoodsReceiptNote(
        grn_no="",
        po_no="PO-1001",
        supplier_id="SUP-7",
        supplier_name="Steel Traders",
        items=[
            GRNItem(item_code="RM-STEEL-12", item_name="Steel rod 12mm", po_qty=10, received_qty=10,
                    warehouse_name="Raw Material Store")
        ]
    )


@pytest.fixture
def two_item_grn():
    return GoodsReceiptNote(
        grn_no="",
        po_no="PO-2002",
        supplier_name="Polymers Ltd",
        items=[
            GRNItem(item_code="RM-PP", po_qty=100, received_qty=100, warehouse_name="Store A"),
            GRNItem(item_code="RM-PE", po_qty=50, received_qty=50, warehouse_name="Store B")
        ]
    )
