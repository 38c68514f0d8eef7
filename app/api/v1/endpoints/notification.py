from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session
from typing import List

from app.core.dependencies import get_current_member_id
from app.db.session import get_db
from app.schemas.notification import MemberNotification
from app.services.notification_service import member_notification_service


router = APIRouter()

@router.get("/me", response_model=List[MemberNotification])
async def read_my_notifications(
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id),
):
    """
    Obtiene las notificaciones in-app del miembro actual, las más recientes primero
    """
    return member_notification_service.get_member_notifications(
        db, member_id, unread_only=unread_only, skip=skip, limit=limit
    )

@router.post("/{notification_id}/read", response_model=MemberNotification)
async def mark_notification_read(
    notification_id: int = Path(..., description="ID de la notificación"),
    db: Session = Depends(get_db),
    member_id: int = Depends(get_current_member_id),
):
    """
    Marca una notificación del miembro actual como leída
    """
    return member_notification_service.mark_as_read(db, notification_id, member_id)
