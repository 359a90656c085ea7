"""routers/notifications.py - Notification inbox: list, mark read, delete."""

from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException

from db import SessionLocal
from models import Notification
from routers.users import require_user
from schemas.notifications import MarkReadPayload, NotificationOut

router = APIRouter()


@router.get("/notifications", response_model=List[NotificationOut])
def list_notifications(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    unread_only: bool = False,
    limit: int = 50,
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        query = db.query(Notification).filter(Notification.user_id == user.id)
        if unread_only:
            query = query.filter(Notification.read == False)  # noqa: E712

        limit = max(1, min(limit, 200))
        notifications = query.order_by(Notification.created_at.desc()).limit(limit).all()
        return [NotificationOut.model_validate(n) for n in notifications]
    finally:
        db.close()


@router.post("/notifications/mark-read")
def mark_notifications_read(
    payload: MarkReadPayload,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        query = db.query(Notification).filter(
            Notification.user_id == user.id,
            Notification.read == False,  # noqa: E712
        )
        if payload.ids is not None:
            query = query.filter(Notification.id.in_(payload.ids))

        updated = query.update({Notification.read: True}, synchronize_session=False)
        db.commit()

        return {"status": "ok", "updated": updated}
    finally:
        db.close()


@router.delete("/notifications/{notification_id}")
def delete_notification(notification_id: str, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        notification = (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user.id)
            .first()
        )
        if not notification:
            raise HTTPException(status_code=404, detail="Notification not found")

        db.delete(notification)
        db.commit()

        return {"status": "ok", "id": notification_id}
    finally:
        db.close()
