from typing import Generic, TypeVar, Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import OperationFailure, PyMongoError
from grn_service.models.base import MongoModel

T = TypeVar("T", bound=MongoModel)

def to_object_id(id: str) -> Optional[ObjectId]:
    """Parse an opaque id; None when it cannot be a document key."""
    try:
        return ObjectId(id)
    except (InvalidId, TypeError):
        return None

# Server error code for a write conflict inside a multi-document transaction
WRITE_CONFLICT = 112

def is_write_conflict(error: PyMongoError) -> bool:
    """True for errors that only mean another transaction touched the same document."""
    if isinstance(error, OperationFailure) and error.code == WRITE_CONFLICT:
        return True
    return error.has_error_label("TransientTransactionError")

class BaseRepository(Generic[T]):
    def __init__(self, collection: AsyncIOMotorCollection, model_cls: type[T]):
        self.collection = collection
        self.model_cls = model_cls

    async def get(self, id: str, session: AsyncIOMotorClientSession = None) -> Optional[T]:
        """Get a document by ID."""
        oid = to_object_id(id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid}, session=session)
        return self.model_cls.from_mongo(doc) if doc else None

    async def get_by_field(self, field: str, value: Any, session: AsyncIOMotorClientSession = None) -> Optional[T]:
        """Get a document by a specific field."""
        doc = await self.collection.find_one({field: value}, session=session)
        return self.model_cls.from_mongo(doc) if doc else None

    async def list(self, filter: Dict[str, Any] = None, skip: int = 0, limit: int = 100,
                   sort: List = None) -> List[T]:
        """List documents with optional filter and pagination."""
        cursor = self.collection.find(filter or {})
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self.model_cls.from_mongo(doc) for doc in docs]

    async def create(self, model: T, session: AsyncIOMotorClientSession = None) -> T:
        """Create a new document."""
        data = model.to_mongo()
        result = await self.collection.insert_one(data, session=session)
        model.id = str(result.inserted_id)
        return model
