from pydantic import BaseModel
from datetime import datetime
from typing import Literal, Optional

Permission = Literal["view", "edit", "admin"]


class CollaboratorInvite(BaseModel):
    user_id: int
    permission: Permission = "view"


class InvitationReply(BaseModel):
    accept: bool = True


class CollaboratorResponse(BaseModel):
    id: int
    map_id: int
    user_id: int
    username: Optional[str] = None
    email: Optional[str] = None
    permission: Permission
    status: Literal["pending", "accepted"]
    created_at: Optional[datetime] = None
