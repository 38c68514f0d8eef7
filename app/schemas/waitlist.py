from typing import Dict, Optional
from pydantic import BaseModel
from datetime import datetime

from app.models.waitlist import WaitlistStatus


class WaitlistEntry(BaseModel):
    id: int
    occurrence_id: int
    member_id: int
    queue_position: int
    status: WaitlistStatus
    joined_at: datetime
    notified_at: Optional[datetime] = None
    offer_expires_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WaitlistJoinResponse(WaitlistEntry):
    rank: int


class WaitlistStatusResponse(BaseModel):
    """Estado del miembro en la lista de espera; ``rank`` es la posición visible (1 = siguiente)"""
    entry_id: int
    occurrence_id: int
    status: WaitlistStatus
    rank: Optional[int] = None
    offer_expires_at: Optional[datetime] = None


class WaitlistCountResponse(BaseModel):
    occurrence_id: int
    waiting_count: int


class PromotionSummary(BaseModel):
    """Resultado informativo de una ronda de promoción"""
    occurrence_id: int
    notified_count: int = 0
    expired_count: int = 0
    channels_succeeded: Dict[str, int] = {}
    channels_queued: Dict[str, int] = {}
    offer_expires_at: Optional[datetime] = None
    failed: bool = False
