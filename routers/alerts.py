"""routers/alerts.py - Direct alert CRUD: create, list, update, delete."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException

from db import SessionLocal
from models import Alert
from routers.tracked_flights import get_owned_flight
from routers.users import require_user
from schemas.alerts import AlertCreate, AlertOut, AlertUpdatePayload
from schemas.tracking import AlertType

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/alerts", response_model=AlertOut)
def create_alert(payload: AlertCreate, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        flight = get_owned_flight(db, user, payload.tracked_flight_id)

        alert = Alert(
            user_id=user.id,
            tracked_flight_id=flight.id,
            rule_id=None,
            type=payload.type.value,
            threshold=payload.threshold,
            is_active=True,
        )
        db.add(alert)
        db.commit()
        db.refresh(alert)

        logger.info(f"[alerts] created {alert.type} alert {alert.id} for flight {flight.flight_number}")
        return AlertOut.model_validate(alert)
    finally:
        db.close()


@router.get("/alerts", response_model=List[AlertOut])
def get_alerts(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    include_inactive: bool = False,
    tracked_flight_id: Optional[str] = None,
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        # Rule-gated alerts are listed with their rule
        query = db.query(Alert).filter(Alert.user_id == user.id, Alert.rule_id.is_(None))
        if not include_inactive:
            query = query.filter(Alert.is_active == True)  # noqa: E712
        if tracked_flight_id:
            query = query.filter(Alert.tracked_flight_id == tracked_flight_id)

        alerts = query.order_by(Alert.created_at.desc()).all()
        return [AlertOut.model_validate(a) for a in alerts]
    finally:
        db.close()


@router.patch("/alerts/{alert_id}", response_model=AlertOut)
def update_alert(
    alert_id: str,
    payload: AlertUpdatePayload,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        alert = db.query(Alert).filter(Alert.id == alert_id, Alert.user_id == user.id).first()
        if not alert:
            raise HTTPException(status_code=404, detail="Alert not found")

        if payload.threshold is not None and alert.type != AlertType.DELAY.value:
            raise HTTPException(status_code=422, detail="threshold is only supported for DELAY alerts")

        if payload.is_active is not None:
            alert.is_active = payload.is_active
        # An explicit null clears the threshold
        if "threshold" in payload.model_fields_set:
            alert.threshold = payload.threshold

        alert.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(alert)

        return AlertOut.model_validate(alert)
    finally:
        db.close()


@router.delete("/alerts/{alert_id}")
def delete_alert(alert_id: str, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        alert = db.query(Alert).filter(Alert.id == alert_id, Alert.user_id == user.id).first()
        if not alert:
            raise HTTPException(status_code=404, detail="Alert not found")

        db.delete(alert)
        db.commit()

        return {"status": "ok", "id": alert_id}
    finally:
        db.close()
