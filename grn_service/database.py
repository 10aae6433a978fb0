import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from grn_service.config import settings
from grn_service.repositories.grn import GRNRepository
from grn_service.repositories.ledger import StockLedgerRepository
from grn_service.repositories.counter import SequenceRepository
from grn_service.models.grn import GoodsReceiptNote

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None

    # Repositories
    grns: GRNRepository = None
    ledger: StockLedgerRepository = None
    sequences: SequenceRepository = None

    def connect(self):
        """Initialize database connection and repositories."""
        self.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=False)
        db = self.client[settings.DB_NAME]

        self.sequences = SequenceRepository(db.counters)
        self.grns = GRNRepository(db.grn_requests, GoodsReceiptNote)
        self.ledger = StockLedgerRepository(db.stock_entries, db.stock_balances, self.sequences)

        logger.info(f"Connected to MongoDB ({settings.DB_NAME})")

    def close(self):
        """Close database connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
        """
        Session with an open multi-document transaction. Leaving the block
        with an exception aborts it. Yields None when transactions are
        disabled (standalone mongod in development).
        """
        if not settings.MONGODB_USE_TRANSACTIONS:
            logger.warning("Transactions disabled; stock posting is not atomic with the status change")
            yield None
            return
        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session

db = Database()
