"""routers/rules.py - Rule CRUD: create (with conditions and alerts), list, get, update, delete."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from fastapi import APIRouter, Header, HTTPException
from sqlalchemy.orm import Session

from db import SessionLocal
from models import Alert, Rule, RuleCondition, TrackedFlight, User
from routers.users import require_user
from schemas.rules import RuleAlertIn, RuleConditionIn, RuleCreate, RuleOut, RuleUpdatePayload

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_owned_flights(db: Session, user: User, flight_ids: Iterable[str]) -> None:
    wanted = set(flight_ids)
    if not wanted:
        return
    owned = {
        row.id
        for row in db.query(TrackedFlight.id)
        .filter(TrackedFlight.id.in_(wanted), TrackedFlight.user_id == user.id)
        .all()
    }
    missing = wanted - owned
    if missing:
        raise HTTPException(status_code=404, detail=f"Tracked flight not found: {sorted(missing)[0]}")


def _build_conditions(conditions: List[RuleConditionIn]) -> List[RuleCondition]:
    return [
        RuleCondition(
            tracked_flight_id=c.tracked_flight_id,
            field=c.field.value,
            operator=c.operator.value,
            value=c.value,
            position=position,
        )
        for position, c in enumerate(conditions)
    ]


def _sync_rule_alerts(db: Session, user: User, rule: Rule, alerts: List[RuleAlertIn]) -> None:
    existing = {a.id: a for a in rule.alerts}
    keep = {a.id for a in alerts if a.id in existing}

    removed = [a for alert_id, a in existing.items() if alert_id not in keep]
    for alert in removed:
        db.delete(alert)

    created = 0
    for item in alerts:
        alert = existing.get(item.id) if item.id else None
        if alert is not None:
            alert.tracked_flight_id = item.tracked_flight_id
            alert.type = item.type.value
            alert.is_active = item.is_active
            alert.updated_at = datetime.utcnow()
        else:
            db.add(Alert(
                user_id=user.id,
                rule_id=rule.id,
                tracked_flight_id=item.tracked_flight_id,
                type=item.type.value,
                is_active=item.is_active,
            ))
            created += 1

    logger.info(
        f"[rules] rule {rule.id} alerts synced: created={created} "
        f"updated={len(keep)} deleted={len(removed)}"
    )


def _get_owned_rule(db: Session, user: User, rule_id: str) -> Rule:
    rule = db.query(Rule).filter(Rule.id == rule_id, Rule.user_id == user.id).first()
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.post("/rules", response_model=RuleOut)
def create_rule(payload: RuleCreate, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        _require_owned_flights(
            db,
            user,
            [c.tracked_flight_id for c in payload.conditions] + [a.tracked_flight_id for a in payload.alerts],
        )

        rule = Rule(
            user_id=user.id,
            name=payload.name.strip(),
            description=payload.description,
            operator=payload.operator.value,
            is_active=payload.is_active,
            schedule=payload.schedule,
        )
        rule.conditions = _build_conditions(payload.conditions)
        rule.alerts = [
            Alert(user_id=user.id, tracked_flight_id=a.tracked_flight_id, type=a.type.value, is_active=a.is_active)
            for a in payload.alerts
        ]

        db.add(rule)
        db.commit()
        db.refresh(rule)

        logger.info(
            f"[rules] created rule {rule.id} name={rule.name} "
            f"conditions={len(rule.conditions)} alerts={len(rule.alerts)}"
        )
        return RuleOut.model_validate(rule)
    finally:
        db.close()


@router.get("/rules", response_model=List[RuleOut])
def list_rules(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    include_inactive: bool = True,
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)

        query = db.query(Rule).filter(Rule.user_id == user.id)
        if not include_inactive:
            query = query.filter(Rule.is_active == True)  # noqa: E712

        rules = query.order_by(Rule.created_at.desc()).all()
        return [RuleOut.model_validate(r) for r in rules]
    finally:
        db.close()


@router.get("/rules/{rule_id}", response_model=RuleOut)
def get_rule(rule_id: str, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        return RuleOut.model_validate(_get_owned_rule(db, user, rule_id))
    finally:
        db.close()


@router.patch("/rules/{rule_id}", response_model=RuleOut)
def update_rule(
    rule_id: str,
    payload: RuleUpdatePayload,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        rule = _get_owned_rule(db, user, rule_id)

        if payload.name is not None:
            rule.name = payload.name.strip()
        if payload.description is not None:
            rule.description = payload.description
        if payload.operator is not None:
            rule.operator = payload.operator.value
        if payload.is_active is not None:
            rule.is_active = payload.is_active
        if payload.schedule is not None:
            rule.schedule = payload.schedule

        if payload.conditions is not None:
            _require_owned_flights(db, user, [c.tracked_flight_id for c in payload.conditions])
            rule.conditions = _build_conditions(payload.conditions)

        if payload.alerts is not None:
            _require_owned_flights(db, user, [a.tracked_flight_id for a in payload.alerts])
            _sync_rule_alerts(db, user, rule, payload.alerts)

        rule.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(rule)

        return RuleOut.model_validate(rule)
    finally:
        db.close()


@router.delete("/rules/{rule_id}")
def delete_rule(rule_id: str, x_user_id: Optional[str] = Header(None, alias="X-User-Id")):
    db = SessionLocal()
    try:
        user = require_user(db, x_user_id)
        rule = _get_owned_rule(db, user, rule_id)

        # Rule alerts have no meaning without the rule
        db.query(Alert).filter(Alert.rule_id == rule.id).delete(synchronize_session=False)
        db.delete(rule)
        db.commit()

        return {"status": "ok", "id": rule_id}
    finally:
        db.close()
