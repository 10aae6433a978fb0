from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pymongo import ReturnDocument

class SequenceRepository:
    """Monotonic named counters used for document numbers (GRN, stock entries)."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def next_value(self, name: str, session: AsyncIOMotorClientSession = None) -> int:
        doc = await self.collection.find_one_and_update(
            {"_id": name},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session
        )
        return doc["value"]

def format_document_no(prefix: str, period: str, value: int) -> str:
    """e.g. GRN-202401-000042"""
    return f"{prefix}-{period}-{value:06d}"
