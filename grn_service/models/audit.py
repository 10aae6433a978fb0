from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from grn_service.models.base import EmbeddedModel

class Actor(BaseModel):
    """Identity of whoever performed an operation, supplied by the caller."""
    id: str
    name: Optional[str] = None
    type: str = "USER" # USER, SYSTEM

    model_config = ConfigDict(frozen=True)

    @property
    def display_name(self) -> str:
        return self.name or self.id

class AuditEntry(EmbeddedModel):
    """
    One status transition of a GRN. Written once, never edited.
    """
    action: str = Field(..., description="Human label of the operation performed")
    status_from: str
    status_to: str
    reason: Optional[str] = None
    actor: Actor
    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "id": "3f9c1a2b7d10",
                "action": "Sent back to inspection",
                "status_from": "awaiting_inventory_approval",
                "status_to": "sent_back",
                "reason": "Batch labels do not match delivery note",
                "actor": {"id": "u-204", "name": "Store Keeper", "type": "USER"}
            }
        }
    )
