"""routers/tracked_flights.py - Tracked flight CRUD: create, list, get, delete."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException
from sqlalchemy.orm import Session

from db import SessionLocal
from models import RuleCondition, TrackedFlight, User
from routers.users import require_user
from schemas.flights import TrackedFlightCreate, TrackedFlightOut
from services.change_detector import to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter()


def get_owned_flight(db: Session, user: User, flight_id: str) -> TrackedFlight:
    flight = (
        db.query(TrackedFlight)
        .filter(TrackedFlight.id == flight_id, TrackedFlight.user_id == user.id)
        .first()
    )
    if not flight:
        raise HTTPException(status_code=404, detail="Tracked flight not found")
    return flight


@router.post("/tracked-flights", response_model=TrackedFlightOut)
def create_tracked_flight(
    payload: TrackedFlightCreate,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        flight = TrackedFlight(
            user_id=user.id,
            flight_number=payload.flight_number,
            departure_airport=payload.departure_airport,
            arrival_airport=payload.arrival_airport,
            departure_time=to_naive_utc(payload.departure_time),
            arrival_time=to_naive_utc(payload.arrival_time),
        )
        db.add(flight)
        db.commit()
        db.refresh(flight)

        logger.info(f"[flights] user {user.id} now tracking {flight.flight_number} ({flight.id})")
        return TrackedFlightOut.model_validate(flight)
    finally:
        db.close()


@router.get("/tracked-flights", response_model=List[TrackedFlightOut])
def list_tracked_flights(x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        flights = (
            db.query(TrackedFlight)
            .filter(TrackedFlight.user_id == user.id)
            .order_by(TrackedFlight.created_at.desc())
            .all()
        )
        return [TrackedFlightOut.model_validate(f) for f in flights]
    finally:
        db.close()


@router.get("/tracked-flights/{flight_id}", response_model=TrackedFlightOut)
def get_tracked_flight(flight_id: str, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        return TrackedFlightOut.model_validate(get_owned_flight(db, user, flight_id))
    finally:
        db.close()


@router.delete("/tracked-flights/{flight_id}")
def delete_tracked_flight(flight_id: str, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        flight = get_owned_flight(db, user, flight_id)

        # Conditions pointing at this flight can never be true again
        (
            db.query(RuleCondition)
            .filter(RuleCondition.tracked_flight_id == flight.id)
            .update({RuleCondition.tracked_flight_id: None}, synchronize_session=False)
        )
        db.delete(flight)
        db.commit()

        return {"status": "ok", "id": flight_id}
    finally:
        db.close()
