from datetime import timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from conftest import NO_RETRY, NOW, FakeProvider, RecordingSender
from db import RetryPolicy, with_retry
from models import Notification, TrackedFlight
from schemas.tracking import FlightSnapshot, TimeRange
from services.flight_processor import FlightProcessor

DEP = NOW + timedelta(hours=2)


def _snapshot(flight_number="BA117", **overrides):
    values = dict(
        flight_number=flight_number,
        status="scheduled",
        scheduled_departure=DEP.replace(tzinfo=timezone.utc),
        gate="A1",
    )
    values.update(overrides)
    return FlightSnapshot(**values)


def _processor(db, provider, sender=None):
    return FlightProcessor(
        db,
        provider,
        email_sender=sender or RecordingSender(),
        retry_policy=NO_RETRY,
        clock=lambda: NOW,
    )


def _notifications(db):
    return db.query(Notification).order_by(Notification.created_at).all()


# =====================================================================
# SECTION: DIRECT ALERTS
# =====================================================================

def test_status_change_creates_notification_and_email(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight, type="STATUS_CHANGE")
    provider = FakeProvider({"BA117": _snapshot(status="delayed")})
    sender = RecordingSender()

    summary = _processor(db, provider, sender).process_tracked_flights_with_alerts()

    notifications = _notifications(db)
    assert len(notifications) == 1
    assert notifications[0].title == "Flight Alert: BA117"
    assert notifications[0].message == "Flight BA117 status has changed from scheduled to delayed."
    assert notifications[0].type == "STATUS_CHANGE"
    assert notifications[0].rule_id is None
    assert notifications[0].read is False

    assert [s["subject"] for s in sender.sent] == ["Flight Alert: BA117 - STATUS_CHANGE"]
    assert sender.sent[0]["to"] == "traveler@example.com"

    assert db.get(TrackedFlight, flight.id).status == "delayed"
    assert summary.flights_checked == 1
    assert summary.flights_changed == 1
    assert summary.notifications_created == 1
    assert summary.emails_sent == 1
    assert summary.errors == 0


def test_unchanged_flight_creates_nothing(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight, type="STATUS_CHANGE")

    summary = _processor(db, FakeProvider({"BA117": _snapshot()})).process_tracked_flights_with_alerts()

    assert _notifications(db) == []
    assert summary.flights_checked == 1
    assert summary.flights_changed == 0


def test_delay_threshold_filters_alerts(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight, type="DELAY", threshold=60)
    make_alert(user, flight, type="DELAY", threshold=15)
    later = (DEP + timedelta(minutes=20)).replace(tzinfo=timezone.utc)

    _processor(db, FakeProvider({"BA117": _snapshot(scheduled_departure=later)})).process_tracked_flights_with_alerts()

    notifications = _notifications(db)
    assert len(notifications) == 1
    assert notifications[0].message == "Flight BA117 has been delayed by 20 minutes."
    assert db.get(TrackedFlight, flight.id).departure_time == DEP + timedelta(minutes=20)


def test_only_present_values_are_persisted(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user, gate="A1", terminal="5")
    make_alert(user, flight, type="STATUS_CHANGE")

    provider = FakeProvider({"BA117": _snapshot(status="boarding", gate=None, terminal=None)})
    _processor(db, provider).process_tracked_flights_with_alerts()

    stored = db.get(TrackedFlight, flight.id)
    assert stored.status == "boarding"
    assert stored.gate == "A1"
    assert stored.terminal == "5"


def test_unknown_flight_is_skipped(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight)

    summary = _processor(db, FakeProvider()).process_tracked_flights_with_alerts()

    assert _notifications(db) == []
    assert summary.flights_not_found == 1
    assert summary.errors == 0


def test_provider_failure_does_not_stop_other_flights(db, make_user, make_flight, make_alert):
    user = make_user()
    broken = make_flight(user, flight_number="AA100")
    working = make_flight(user, flight_number="BA117")
    make_alert(user, broken)
    make_alert(user, working)
    provider = FakeProvider({"BA117": _snapshot(status="delayed")}, failing={"AA100"})

    summary = _processor(db, provider).process_tracked_flights_with_alerts()

    notifications = _notifications(db)
    assert [n.tracked_flight_id for n in notifications] == [working.id]
    assert summary.errors == 1
    assert sorted(provider.calls) == ["AA100", "BA117"]


def test_email_failure_keeps_notification(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight, type="GATE_CHANGE")
    sender = RecordingSender(success=False)

    summary = _processor(db, FakeProvider({"BA117": _snapshot(gate="C7")}), sender).process_tracked_flights_with_alerts()

    assert len(_notifications(db)) == 1
    assert len(sender.sent) == 1
    assert summary.emails_failed == 1
    assert summary.emails_sent == 0
    assert summary.errors == 0


def test_sender_exception_is_counted_as_failed_email(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight, type="GATE_CHANGE")

    def exploding_sender(*args):
        raise RuntimeError("smtp exploded")

    summary = _processor(db, FakeProvider({"BA117": _snapshot(gate="C7")}), exploding_sender) \
        .process_tracked_flights_with_alerts()

    assert len(_notifications(db)) == 1
    assert summary.emails_failed == 1


def test_users_without_email_alerts_still_get_notifications(db, make_user, make_flight, make_alert):
    user = make_user(email_alerts_enabled=False)
    flight = make_flight(user)
    make_alert(user, flight)
    sender = RecordingSender()

    _processor(db, FakeProvider({"BA117": _snapshot(status="delayed")}), sender).process_tracked_flights_with_alerts()

    assert len(_notifications(db)) == 1
    assert sender.sent == []


def test_master_switch_disables_emails(db, make_user, make_flight, make_alert, monkeypatch):
    monkeypatch.setenv("ALERTS_ENABLED", "false")
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight)
    sender = RecordingSender()

    _processor(db, FakeProvider({"BA117": _snapshot(status="delayed")}), sender).process_tracked_flights_with_alerts()

    assert len(_notifications(db)) == 1
    assert sender.sent == []


def test_inactive_and_rule_alerts_do_not_fire_directly(db, make_user, make_flight, make_alert, make_rule):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight, is_active=False)
    rule = make_rule(user, conditions=[(flight, "status", "equals", "delayed")])
    make_alert(user, flight, rule=rule)
    provider = FakeProvider({"BA117": _snapshot(status="delayed")})

    _processor(db, provider).process_tracked_flights_with_alerts()

    assert provider.calls == []
    assert _notifications(db) == []


def test_landed_flights_are_not_polled(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user, status="landed")
    make_alert(user, flight)
    provider = FakeProvider({"BA117": _snapshot(status="landed")})

    _processor(db, provider).process_tracked_flights_with_alerts()

    assert provider.calls == []


def test_landing_ends_tracking(db, make_user, make_flight, make_alert):
    user = make_user()
    flight = make_flight(user, status="active")
    make_alert(user, flight, type="ARRIVAL")
    landed = _snapshot(status="landed")

    summary = _processor(db, FakeProvider({"BA117": landed})).process_tracked_flights_with_alerts()

    notifications = _notifications(db)
    assert [n.type for n in notifications] == ["ARRIVAL", "INFO"]
    assert notifications[1].title == "Flight Tracking Ended"
    assert notifications[1].message == "Tracking for BA117 has ended automatically as the flight has landed."
    assert summary.notifications_created == 2


def test_time_range_limits_the_batch(db, make_user, make_flight, make_alert):
    user = make_user()
    soon = make_flight(user, flight_number="BA117", departure_time=NOW + timedelta(hours=2))
    later = make_flight(user, flight_number="BA119", departure_time=NOW + timedelta(hours=30))
    make_alert(user, soon)
    make_alert(user, later)
    provider = FakeProvider()

    _processor(db, provider).process_tracked_flights_with_alerts(TimeRange.NEAR_TERM)
    assert provider.calls == ["BA117"]

    provider = FakeProvider()
    _processor(db, provider).process_tracked_flights_with_alerts(TimeRange.LONG_TERM)
    assert provider.calls == ["BA119"]


# =====================================================================
# SECTION: RULES
# =====================================================================

def test_satisfied_rule_notifies_its_alerts(db, make_user, make_flight, make_alert, make_rule):
    user = make_user()
    flight = make_flight(user)
    rule = make_rule(user, name="Gate watch", conditions=[(flight, "gate", "equals", "B12")])
    make_alert(user, flight, type="GATE_CHANGE", rule=rule)
    sender = RecordingSender()

    summary = _processor(db, FakeProvider({"BA117": _snapshot(gate="B12")}), sender).process_rules()

    notifications = _notifications(db)
    assert len(notifications) == 1
    assert notifications[0].rule_id == rule.id
    assert notifications[0].title == "Rule Alert: Gate watch"
    assert notifications[0].message == (
        'Rule "Gate watch" triggered: Flight BA117 gate has changed from A1 to B12.'
    )
    assert len(sender.sent) == 1
    assert summary.rules_evaluated == 1
    assert summary.rules_satisfied == 1
    assert db.get(TrackedFlight, flight.id).gate == "B12"


def test_unsatisfied_rule_creates_nothing(db, make_user, make_flight, make_alert, make_rule):
    user = make_user()
    flight = make_flight(user)
    rule = make_rule(user, conditions=[(flight, "status", "equals", "cancelled")])
    make_alert(user, flight, rule=rule)

    summary = _processor(db, FakeProvider({"BA117": _snapshot(status="delayed")})).process_rules()

    assert _notifications(db) == []
    assert summary.rules_evaluated == 1
    assert summary.rules_satisfied == 0


def test_rule_skips_flights_the_provider_cannot_find(db, make_user, make_flight, make_alert, make_rule):
    user = make_user()
    flight = make_flight(user, status="scheduled")
    rule = make_rule(user, name="Still scheduled", operator="OR",
                     conditions=[(flight, "status", "equals", "scheduled")])
    make_alert(user, flight, type="STATUS_CHANGE", rule=rule)

    first = _processor(db, FakeProvider()).process_rules()
    second = _processor(db, FakeProvider()).process_rules()

    assert _notifications(db) == []
    for summary in (first, second):
        assert summary.flights_not_found == 1
        assert summary.rules_evaluated == 1
        assert summary.rules_satisfied == 0
        assert summary.notifications_created == 0
        assert summary.emails_sent == 0


def test_broken_rule_does_not_stop_others(db, make_user, make_flight, make_alert, make_rule):
    user = make_user()
    flight = make_flight(user)
    broken = make_rule(user, name="Broken", operator="XOR", conditions=[(flight, "gate", "equals", "A1")])
    good = make_rule(user, name="Good", conditions=[(flight, "gate", "equals", "A1")])
    make_alert(user, flight, type="GATE_CHANGE", rule=broken)
    make_alert(user, flight, type="GATE_CHANGE", rule=good)

    summary = _processor(db, FakeProvider({"BA117": _snapshot()})).process_rules()

    assert [n.rule_id for n in _notifications(db)] == [good.id]
    assert summary.errors == 1


def test_inactive_rules_are_ignored(db, make_user, make_flight, make_alert, make_rule):
    user = make_user()
    flight = make_flight(user)
    rule = make_rule(user, is_active=False, conditions=[(flight, "gate", "equals", "A1")])
    make_alert(user, flight, rule=rule)
    provider = FakeProvider({"BA117": _snapshot()})

    summary = _processor(db, provider).process_rules()

    assert provider.calls == []
    assert summary.rules_evaluated == 0


def test_full_cycle_fetches_each_flight_once(db, make_user, make_flight, make_alert, make_rule):
    user = make_user()
    flight = make_flight(user)
    make_alert(user, flight, type="STATUS_CHANGE")
    rule = make_rule(user, name="Any change", conditions=[(flight, "status", "changed", "STATUS_CHANGE")])
    make_alert(user, flight, type="STATUS_CHANGE", rule=rule)
    provider = FakeProvider({"BA117": _snapshot(status="delayed")})

    summary = _processor(db, provider).run_cycle()

    assert provider.calls == ["BA117"]
    messages = [n.message for n in _notifications(db)]
    assert messages == [
        "Flight BA117 status has changed from scheduled to delayed.",
        'Rule "Any change" triggered: Flight BA117 status has changed from scheduled to delayed.',
    ]
    assert summary.notifications_created == 2
    assert summary.rules_satisfied == 1


# =====================================================================
# SECTION: RETRIES
# =====================================================================

def test_with_retry_retries_connection_errors():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("UPDATE tracked_flights", {}, Exception("connection pool timeout"))
        return "done"

    assert with_retry(flaky, RetryPolicy(max_attempts=3, backoff_seconds=0)) == "done"
    assert len(calls) == 3


def test_with_retry_gives_up_after_max_attempts():
    calls = []

    def always_down():
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))

    with pytest.raises(OperationalError):
        with_retry(always_down, RetryPolicy(max_attempts=2, backoff_seconds=0))
    assert len(calls) == 2


def test_with_retry_does_not_retry_other_errors():
    calls = []

    def bad():
        calls.append(1)
        raise ValueError("constraint violated")

    with pytest.raises(ValueError):
        with_retry(bad, RetryPolicy(max_attempts=3, backoff_seconds=0))
    assert len(calls) == 1
