import uuid
from typing import Annotated, Any, Dict, Optional, Type, TypeVar
from pydantic import BaseModel, BeforeValidator, Field, ConfigDict
from bson import ObjectId

# Document keys travel as hex strings outside the repository layer
DocumentId = Annotated[str, BeforeValidator(str)]

T = TypeVar("T", bound="MongoModel")

def new_line_id() -> str:
    """Short opaque id for embedded rows (items, log entries)."""
    return uuid.uuid4().hex[:12]

class MongoModel(BaseModel):
    """
    A top-level document. `id` maps to `_id`; an unsaved document has no id
    and gets one from the server on insert.
    """
    id: Optional[DocumentId] = Field(default=None, alias="_id")

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    @classmethod
    def from_mongo(cls: Type[T], doc: Optional[Dict[str, Any]]) -> Optional[T]:
        if not doc:
            return None
        fields = {k: v for k, v in doc.items() if k != "_id"}
        return cls(id=doc.get("_id"), **fields)

    def to_mongo(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        key = doc.pop("_id", None)
        if key is not None:
            doc["_id"] = ObjectId(key)
        return doc

class EmbeddedModel(BaseModel):
    """Row stored inside a parent document; carries its own string id."""
    id: str = Field(default_factory=new_line_id)

    model_config = ConfigDict(populate_by_name=True)
