import os

# db.py refuses to import without a DATABASE_URL
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest

from alerts_email import EmailResult
from db import Base, RetryPolicy, SessionLocal, engine
from models import Alert, Rule, RuleCondition, TrackedFlight, User
from providers.base import ProviderError
from schemas.tracking import FlightSnapshot

NOW = datetime(2024, 5, 1, 8, 0)

NO_RETRY = RetryPolicy(max_attempts=1, backoff_seconds=0)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


class FakeProvider:
    name = "fake"

    def __init__(self, snapshots: Optional[Dict[str, FlightSnapshot]] = None, failing=()):
        self.snapshots = dict(snapshots or {})
        self.failing = set(failing)
        self.calls: List[str] = []

    def fetch_flight_snapshot(self, flight_number: str) -> Optional[FlightSnapshot]:
        self.calls.append(flight_number)
        if flight_number in self.failing:
            raise ProviderError(f"provider down for {flight_number}")
        return self.snapshots.get(flight_number)


class RecordingSender:
    def __init__(self, success: bool = True):
        self.success = success
        self.sent: List[dict] = []

    def __call__(self, to_email, subject, html_body, text_body) -> EmailResult:
        self.sent.append({"to": to_email, "subject": subject, "html": html_body, "text": text_body})
        if self.success:
            return EmailResult(success=True, message_id=f"<msg-{len(self.sent)}@test>")
        return EmailResult(success=False, error="mailbox unavailable")


@pytest.fixture
def make_user(db):
    def _make(external_id="user-1", email="traveler@example.com", name="Sam", email_alerts_enabled=True):
        user = User(external_id=external_id, email=email, name=name, email_alerts_enabled=email_alerts_enabled)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_flight(db):
    def _make(user, flight_number="BA117", status="scheduled", gate="A1",
              departure_time=NOW + timedelta(hours=2), arrival_time=NOW + timedelta(hours=9), terminal="5"):
        flight = TrackedFlight(
            user_id=user.id,
            flight_number=flight_number,
            status=status,
            gate=gate,
            terminal=terminal,
            departure_time=departure_time,
            arrival_time=arrival_time,
        )
        db.add(flight)
        db.commit()
        return flight
    return _make


@pytest.fixture
def make_alert(db):
    def _make(user, flight, type="STATUS_CHANGE", threshold=None, is_active=True, rule=None):
        alert = Alert(
            user_id=user.id,
            tracked_flight_id=flight.id,
            rule_id=rule.id if rule is not None else None,
            type=type,
            threshold=threshold,
            is_active=is_active,
        )
        db.add(alert)
        db.commit()
        return alert
    return _make


@pytest.fixture
def make_rule(db):
    def _make(user, name="Watch BA117", operator="AND", conditions=(), is_active=True):
        rule = Rule(user_id=user.id, name=name, operator=operator, is_active=is_active)
        rule.conditions = [
            RuleCondition(tracked_flight_id=flight.id, field=field, operator=op, value=value, position=i)
            for i, (flight, field, op, value) in enumerate(conditions)
        ]
        db.add(rule)
        db.commit()
        return rule
    return _make
