"""
services/flight_processor.py

Processing pass invoked by the external scheduler:
- process_tracked_flights_with_alerts: direct alerts, one tracked flight at a time
- process_rules: active rules, evaluated over freshly refreshed flights
- run_processing_cycle: the cron entry point (called by routers/cron.py)

Everything runs sequentially. A failure is contained to the flight, rule or
alert it happened in and the pass carries on with the next one.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import and_, not_, or_
from sqlalchemy.orm import Session

from alerts_email import EmailResult, EmailSender, create_flight_alert_email, send_notification_email
from config import TRACKING_FINISHED_STATUSES, should_send_email
from db import DEFAULT_RETRY_POLICY, RetryPolicy, SessionLocal, with_retry
from models import Alert, Notification, Rule, TrackedFlight
from providers.base import FlightDataProvider
from providers.factory import get_flight_provider
from schemas.tracking import Change, ChangeType, FlightContext, FlightSnapshot, NotificationType, TimeRange
from services.alert_matcher import AlertMatch, match_alerts
from services.change_detector import (
    build_flight_context,
    detect_changes,
    flight_context_from_state,
    to_naive_utc,
)
from services.notification_composer import (
    TRACKING_ENDED_TITLE,
    compose_message,
    compose_rule_message,
    compose_tracking_ended_message,
    flight_alert_title,
    rule_alert_title,
)
from services.rule_engine import evaluate_rule, referenced_flight_ids

logger = logging.getLogger(__name__)


# =====================================================================
# SECTION: RESULT TYPES
# =====================================================================

@dataclass
class CycleSummary:
    flights_checked: int = 0
    flights_changed: int = 0
    flights_not_found: int = 0
    rules_evaluated: int = 0
    rules_satisfied: int = 0
    notifications_created: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class FlightRefresh:
    context: FlightContext
    snapshot: Optional[FlightSnapshot] = None
    changes: List[Change] = field(default_factory=list)


# =====================================================================
# SECTION: HELPERS
# =====================================================================

def _time_range_filter(time_range: TimeRange, now: datetime):
    """Departure-time bucket for the direct alert batch, relative to now (naive UTC)."""
    in_12h = now + timedelta(hours=12)
    in_24h = now + timedelta(hours=24)

    if time_range is TimeRange.NEAR_TERM:
        return and_(TrackedFlight.departure_time >= now, TrackedFlight.departure_time <= in_12h)
    if time_range is TimeRange.MID_TERM:
        return and_(TrackedFlight.departure_time > in_12h, TrackedFlight.departure_time <= in_24h)
    return TrackedFlight.departure_time > in_24h


def _tracking_finished(status: Optional[str]) -> bool:
    lowered = (status or "").lower()
    return any(s in lowered for s in TRACKING_FINISHED_STATUSES)


# =====================================================================
# SECTION: PROCESSOR
# =====================================================================

class FlightProcessor:
    """
    One processing pass over an explicit session, provider and email sender.

    Flights refreshed by the direct alert path are remembered for the rest of
    the pass, so the rule path sees the same changes instead of diffing the
    provider data against the row it just wrote.
    """

    def __init__(
        self,
        db: Session,
        provider: FlightDataProvider,
        email_sender: Optional[EmailSender] = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.provider = provider
        self.email_sender = email_sender or send_notification_email
        self.retry_policy = retry_policy
        self.clock = clock
        self.summary = CycleSummary()
        self._refreshed: Dict[str, FlightRefresh] = {}

    # ---- persistence ----

    def _write(self, operation):
        def attempt():
            try:
                return operation()
            except Exception:
                self.db.rollback()
                raise
        return with_retry(attempt, self.retry_policy)

    def _safe_rollback(self) -> None:
        try:
            self.db.rollback()
        except Exception as e:
            logger.error(f"[db] rollback failed: {e}")

    def _persist_snapshot(self, flight: TrackedFlight, snapshot: FlightSnapshot) -> None:
        """Only values the provider actually returned overwrite the stored ones."""
        def _apply():
            if snapshot.status:
                flight.status = snapshot.status
            if snapshot.scheduled_departure:
                flight.departure_time = to_naive_utc(snapshot.scheduled_departure)
            if snapshot.scheduled_arrival:
                flight.arrival_time = to_naive_utc(snapshot.scheduled_arrival)
            if snapshot.gate:
                flight.gate = snapshot.gate
            if snapshot.terminal:
                flight.terminal = snapshot.terminal
            flight.updated_at = self.clock()
            self.db.commit()

        self._write(_apply)

    def _create_notification(self, **values) -> Notification:
        notification = Notification(read=False, **values)

        def _insert():
            self.db.add(notification)
            self.db.commit()
            return notification

        created = self._write(_insert)
        self.summary.notifications_created += 1
        return created

    # ---- flight refresh ----

    def refresh_flight(self, flight: TrackedFlight) -> FlightRefresh:
        """
        Fetch the latest snapshot, diff it against the stored row and persist
        it when something changed. Provider and persistence errors propagate.
        """
        cached = self._refreshed.get(flight.id)
        if cached is not None:
            return cached

        flight_id = flight.id
        flight_number = flight.flight_number
        self.summary.flights_checked += 1

        snapshot = self.provider.fetch_flight_snapshot(flight_number)
        if snapshot is None:
            logger.info(f"[alerts] no flight information found for {flight_number}, skipping")
            self.summary.flights_not_found += 1
            refresh = FlightRefresh(context=flight_context_from_state(flight))
            self._refreshed[flight_id] = refresh
            return refresh

        changes = detect_changes(flight, snapshot)
        context = build_flight_context(flight, snapshot, changes)

        if changes:
            logger.info(
                f"[alerts] changes detected flight={flight_number} "
                f"types={[c.type.value for c in changes]}"
            )
            self._persist_snapshot(flight, snapshot)
            self.summary.flights_changed += 1
        else:
            logger.info(f"[alerts] no changes detected for flight {flight_number}")

        refresh = FlightRefresh(context=context, snapshot=snapshot, changes=changes)
        self._refreshed[flight_id] = refresh
        return refresh

    # ---- delivery ----

    def _send_email(self, user, flight_number: str, alert_type: str, message: str) -> None:
        if not should_send_email(user):
            logger.info(f"[email] skip user_id={getattr(user, 'id', None)} (no address or alerts disabled)")
            return

        email = create_flight_alert_email(getattr(user, "name", None), flight_number, alert_type, message)
        try:
            result = self.email_sender(user.email, email.subject, email.html, email.text)
        except Exception as e:
            result = EmailResult(success=False, error=str(e))

        if result.success:
            self.summary.emails_sent += 1
            logger.info(f"[email] notification sent to={user.email} flight={flight_number} message_id={result.message_id}")
        else:
            # The notification row stays, email delivery is best effort
            self.summary.emails_failed += 1
            logger.warning(f"[email] notification email to {user.email} failed: {result.error}")

    def _deliver(self, user, flight_id: str, flight_number: str, rule_id: Optional[str],
                 title: str, message: str, notification_type: str) -> None:
        notification = self._create_notification(
            user_id=user.id,
            tracked_flight_id=flight_id,
            rule_id=rule_id,
            title=title,
            message=message,
            type=notification_type,
        )
        logger.info(f"[alerts] notification {notification.id} created user_id={user.id} type={notification_type}")
        self._send_email(user, flight_number, notification_type, message)

    # =================================================================
    # SECTION: DIRECT ALERT PATH
    # =================================================================

    def _load_flights_with_direct_alerts(self, time_range: Optional[TimeRange]) -> List[TrackedFlight]:
        finished = or_(*[TrackedFlight.status.ilike(f"%{s}%") for s in TRACKING_FINISHED_STATUSES])
        query = (
            self.db.query(TrackedFlight)
            .filter(TrackedFlight.alerts.any(and_(Alert.is_active == True, Alert.rule_id.is_(None))))  # noqa: E712
            .filter(or_(TrackedFlight.status.is_(None), not_(finished)))
        )
        if time_range is not None:
            query = query.filter(_time_range_filter(time_range, self.clock()))
        return query.order_by(TrackedFlight.created_at).all()

    def _process_direct_flight(self, flight: TrackedFlight) -> None:
        flight_id = flight.id
        flight_number = flight.flight_number
        user = flight.user
        alerts = [a for a in flight.alerts if a.is_active and a.rule_id is None]

        refresh = self.refresh_flight(flight)
        if refresh.snapshot is None or not refresh.changes:
            return

        matches = match_alerts(refresh.changes, alerts)
        logger.info(f"[alerts] flight={flight_number} {len(matches)} alert matches")

        for match in matches:
            try:
                self._notify_direct(user, flight_id, flight_number, match)
            except Exception as e:
                self.summary.errors += 1
                logger.exception(f"[alerts] error creating notification for alert {match.alert.id}: {e}")
                self._safe_rollback()

        status_changed = any(c.type == ChangeType.STATUS_CHANGE for c in refresh.changes)
        if status_changed and _tracking_finished(refresh.snapshot.status):
            self._notify_tracking_ended(user, flight_id, flight_number, refresh.snapshot.status)

    def _notify_direct(self, user, flight_id: str, flight_number: str, match: AlertMatch) -> None:
        self._deliver(
            user,
            flight_id,
            flight_number,
            rule_id=None,
            title=flight_alert_title(flight_number),
            message=compose_message(flight_number, match.change),
            notification_type=match.change.type.value,
        )

    def _notify_tracking_ended(self, user, flight_id: str, flight_number: str, status: str) -> None:
        logger.info(f"[alerts] flight {flight_number} has {status}, tracking ended")
        try:
            self._create_notification(
                user_id=user.id,
                tracked_flight_id=flight_id,
                rule_id=None,
                title=TRACKING_ENDED_TITLE,
                message=compose_tracking_ended_message(flight_number, status),
                type=NotificationType.INFO.value,
            )
        except Exception as e:
            self.summary.errors += 1
            logger.exception(f"[alerts] error creating tracking-ended notification for {flight_number}: {e}")
            self._safe_rollback()

    def process_tracked_flights_with_alerts(self, time_range: Optional[TimeRange] = None) -> CycleSummary:
        flights = self._load_flights_with_direct_alerts(time_range)
        logger.info(
            f"[alerts] processing {len(flights)} tracked flights with direct alerts"
            f"{f' (time_range={time_range.value})' if time_range else ''}"
        )

        for flight in flights:
            flight_number = flight.flight_number
            try:
                self._process_direct_flight(flight)
            except Exception as e:
                self.summary.errors += 1
                logger.exception(f"[alerts] error processing flight {flight_number}: {e}")
                self._safe_rollback()

        return self.summary

    # =================================================================
    # SECTION: RULE PATH
    # =================================================================

    def _rule_flight_data(self, rule: Rule) -> Dict[str, FlightContext]:
        flight_ids = referenced_flight_ids(rule)
        if not flight_ids:
            logger.info(f"[rules] rule {rule.name} references no flights")
            return {}

        flights = {
            f.id: f
            for f in self.db.query(TrackedFlight).filter(TrackedFlight.id.in_(flight_ids)).all()
        }

        flight_data: Dict[str, FlightContext] = {}
        for flight_id in flight_ids:
            flight = flights.get(flight_id)
            if flight is None:
                logger.info(f"[rules] tracked flight {flight_id} not found, skipping")
                continue

            flight_number = flight.flight_number
            try:
                refresh = self.refresh_flight(flight)
            except Exception as e:
                self.summary.errors += 1
                logger.exception(f"[rules] error refreshing flight {flight_number}: {e}")
                self._safe_rollback()
                continue

            # Unconfirmed flights stay out, so their conditions evaluate false
            if refresh.snapshot is None:
                continue
            flight_data[flight_id] = refresh.context

        return flight_data

    def _process_rule(self, rule: Rule) -> None:
        rule_id = rule.id
        rule_name = rule.name
        alerts = [a for a in rule.alerts if a.is_active]

        flight_data = self._rule_flight_data(rule)
        evaluation = evaluate_rule(rule, flight_data)
        self.summary.rules_evaluated += 1

        if not evaluation.satisfied:
            logger.info(
                f"[rules] rule {rule_name} not satisfied "
                f"(matched {len(evaluation.matched_condition_ids)} conditions)"
            )
            return

        self.summary.rules_satisfied += 1
        logger.info(
            f"[rules] rule {rule_name} satisfied, matched_conditions={evaluation.matched_condition_ids} "
            f"alerts={len(alerts)}"
        )

        for alert in alerts:
            try:
                self._notify_rule_alert(rule_id, rule_name, alert, flight_data)
            except Exception as e:
                self.summary.errors += 1
                logger.exception(f"[rules] error creating notification for rule {rule_name} alert {alert.id}: {e}")
                self._safe_rollback()

    def _notify_rule_alert(self, rule_id: str, rule_name: str, alert: Alert,
                           flight_data: Dict[str, FlightContext]) -> None:
        flight_id = alert.tracked_flight_id
        context = flight_data.get(flight_id) if flight_id else None
        user = alert.user
        if context is None or user is None:
            logger.info(f"[rules] alert {alert.id} has no resolvable flight or user, skipping")
            return

        self._deliver(
            user,
            flight_id,
            context.flight_number,
            rule_id=rule_id,
            title=rule_alert_title(rule_name),
            message=compose_rule_message(rule_name, alert.type, context),
            notification_type=alert.type,
        )

    def process_rules(self) -> CycleSummary:
        rules = (
            self.db.query(Rule)
            .filter(Rule.is_active == True)  # noqa: E712
            .order_by(Rule.created_at)
            .all()
        )
        logger.info(f"[rules] processing {len(rules)} active rules")

        for rule in rules:
            rule_name = rule.name
            try:
                self._process_rule(rule)
            except Exception as e:
                self.summary.errors += 1
                logger.exception(f"[rules] error processing rule {rule_name}: {e}")
                self._safe_rollback()

        return self.summary

    # =================================================================
    # SECTION: FULL PASS
    # =================================================================

    def run_cycle(self, time_range: Optional[TimeRange] = None) -> CycleSummary:
        self.process_tracked_flights_with_alerts(time_range)
        self.process_rules()
        return self.summary


# =====================================================================
# SECTION: PROCESSING CYCLE (CRON ENTRY POINT)
# =====================================================================

def run_processing_cycle(
    time_range: Optional[TimeRange] = None,
    include_direct: bool = True,
    include_rules: bool = True,
) -> CycleSummary:
    provider = get_flight_provider()

    db = SessionLocal()
    try:
        processor = FlightProcessor(db, provider)
        if include_direct:
            processor.process_tracked_flights_with_alerts(time_range)
        if include_rules:
            processor.process_rules()

        logger.info(f"[cron] processing cycle finished {processor.summary.as_dict()}")
        return processor.summary
    finally:
        db.close()
