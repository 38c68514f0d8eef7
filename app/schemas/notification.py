from typing import Optional
from pydantic import BaseModel
from datetime import datetime


class MemberNotification(BaseModel):
    id: int
    member_id: int
    notification_type: str
    title: str
    message: str
    related_id: Optional[int] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
