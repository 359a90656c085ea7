"""routers/users.py - User sync, profile and email preference endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from db import SessionLocal
from models import Notification, Rule, TrackedFlight, User
from schemas.users import ProfileResponse, UserPreferencesPayload, UserSyncPayload

logger = logging.getLogger(__name__)

router = APIRouter()


def require_user(db: Session, x_user_id: Optional[str]) -> User:
    """Resolve the X-User-Id header. 401 when missing, 403 when unknown."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")

    user = db.query(User).filter(User.external_id == x_user_id).first()
    if not user:
        raise HTTPException(status_code=403, detail="Unknown user")
    return user


@router.post("/user-sync")
def user_sync(payload: UserSyncPayload):
    canonical_external_id = (
        (payload.external_id or "").strip()
        or (payload.id or "").strip()
    )
    if not canonical_external_id:
        raise HTTPException(status_code=400, detail="Missing external_id")

    db = SessionLocal()
    try:
        # Primary lookup: external id
        user = db.query(User).filter(User.external_id == canonical_external_id).first()

        # Secondary lookup: same email, new external_id
        if user is None and payload.email:
            email_norm = payload.email.strip().lower()
            user = db.query(User).filter(func.lower(User.email) == email_norm).first()
            if user is not None:
                logger.info(f"[user-sync] relinking user {user.id} to external_id={canonical_external_id}")
                user.external_id = canonical_external_id

        if user is None:
            user = User(
                external_id=canonical_external_id,
                email=(payload.email.strip().lower() if payload.email else None),
                name=payload.name,
            )
            db.add(user)
        else:
            if payload.email:
                user.email = payload.email.strip().lower()
            if payload.name:
                user.name = payload.name

        if payload.email_alerts_enabled is not None:
            user.email_alerts_enabled = payload.email_alerts_enabled

        db.commit()
        db.refresh(user)
        logger.info(f"[user-sync] synced user {user.id} external_id={canonical_external_id}")
        return {"status": "ok", "id": user.id}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@router.get("/profile", response_model=ProfileResponse)
def get_profile(x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        tracked = db.query(TrackedFlight).filter(TrackedFlight.user_id == user.id).count()
        active_rules = (
            db.query(Rule)
            .filter(Rule.user_id == user.id, Rule.is_active == True)  # noqa: E712
            .count()
        )
        unread = (
            db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.read == False)  # noqa: E712
            .count()
        )

        return ProfileResponse(
            id=user.id,
            external_id=user.external_id,
            email=user.email,
            name=user.name,
            email_alerts_enabled=bool(user.email_alerts_enabled),
            tracked_flights=tracked,
            active_rules=active_rules,
            unread_notifications=unread,
            created_at=user.created_at,
        )
    finally:
        db.close()


@router.patch("/profile/preferences")
def update_preferences(
    payload: UserPreferencesPayload,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        user.email_alerts_enabled = payload.email_alerts_enabled
        db.commit()
        return {"status": "ok", "email_alerts_enabled": user.email_alerts_enabled}
    finally:
        db.close()
