from typing import Optional
from fastapi import Header, HTTPException
from pydantic import BaseModel

from grn_service.models.audit import Actor

class User(BaseModel):
    """Caller identity as asserted by the upstream gateway; not authenticated here."""
    username: str
    full_name: Optional[str] = None
    role: str = "viewer"

    def to_actor(self) -> Actor:
        return Actor(id=self.username, name=self.full_name or self.username, type="USER")

async def get_current_active_user(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> User:
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail="Missing user identity",
            headers={"WWW-Authenticate": "X-User-Id"}
        )
    return User(username=x_user_id, full_name=x_user_name, role=x_user_role or "viewer")
