from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Annotated

from .. import schemas, crud
from ..auth import get_current_user_id_from_token
from ..database import get_db

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=schemas.NotificationList)
def read_notifications(
        user_id: Annotated[int, Depends(get_current_user_id_from_token)],
        db: Session = Depends(get_db),
        limit: int = Query(default=20, ge=1, le=100)
):
    """
    The authenticated user's latest notifications, newest first.
    """
    return schemas.NotificationList(
        items=crud.get_notifications_for_user(db, user_id=user_id, limit=limit),
        unread_count=crud.count_unread_notifications(db, user_id=user_id),
    )


@router.post("/read-all", response_model=schemas.MarkAllReadResult)
def mark_all_read(
        user_id: Annotated[int, Depends(get_current_user_id_from_token)],
        db: Session = Depends(get_db)
):
    return {"updated": crud.mark_all_notifications_read(db, user_id=user_id)}


@router.post("/{notification_id}/read", response_model=schemas.NotificationRead)
def mark_read(
        notification_id: int,
        user_id: Annotated[int, Depends(get_current_user_id_from_token)],
        db: Session = Depends(get_db)
):
    db_notification = crud.mark_notification_read(db, notification_id=notification_id, user_id=user_id)
    if db_notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return db_notification
