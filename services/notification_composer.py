"""
services/notification_composer.py

Human readable notification text for direct alerts, rule alerts and tracking-ended notices.
"""

import json
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from schemas.tracking import ChangeType, FlightContext
from services.change_detector import to_utc


def format_event_time(value: Optional[datetime]) -> str:
    """Locale time of day in UTC, 'recently' when the provider gave no time."""
    value = to_utc(value)
    if value is None:
        return "recently"
    return value.strftime("%X")


def _raw_payload(change: Any) -> str:
    if isinstance(change, BaseModel):
        return change.model_dump_json()
    if isinstance(change, dict):
        return json.dumps(change, default=str)
    return str(change)


# =====================================================================
# SECTION: TITLES
# =====================================================================

def flight_alert_title(flight_number: str) -> str:
    return f"Flight Alert: {flight_number}"


def rule_alert_title(rule_name: str) -> str:
    return f"Rule Alert: {rule_name}"


TRACKING_ENDED_TITLE = "Flight Tracking Ended"


# =====================================================================
# SECTION: MESSAGES
# =====================================================================

def compose_message(flight_number: str, change: Any) -> str:
    change_type = getattr(change, "type", None)

    if change_type == ChangeType.STATUS_CHANGE:
        return f"Flight {flight_number} status has changed from {change.old or 'unknown'} to {change.new}."

    if change_type == ChangeType.DELAY:
        return f"Flight {flight_number} has been delayed by {change.delay_minutes} minutes."

    if change_type == ChangeType.GATE_CHANGE:
        return f"Flight {flight_number} gate has changed from {change.old or 'unassigned'} to {change.new}."

    if change_type == ChangeType.DEPARTURE:
        return f"Flight {flight_number} has departed at {format_event_time(change.departure_time)}."

    if change_type == ChangeType.ARRIVAL:
        return f"Flight {flight_number} has arrived at {format_event_time(change.arrival_time)}."

    return f"Update for flight {flight_number}: {_raw_payload(change)}."


def compose_rule_message(rule_name: str, alert_type: Any, context: FlightContext) -> str:
    """
    Same per-type branching as compose_message, prefixed with the rule name.
    Without a change of the alert's type this cycle the current value is reported.
    """
    prefix = f'Rule "{rule_name}" triggered: '
    flight_number = context.flight_number

    try:
        change_type = ChangeType(alert_type)
    except ValueError:
        return f'Rule "{rule_name}" triggered for flight {flight_number}.'

    change = context.change_of_type(change_type)
    if change is not None:
        return prefix + compose_message(flight_number, change)

    if change_type is ChangeType.STATUS_CHANGE:
        return prefix + f"Flight {flight_number} status is now {context.status or 'unknown'}."
    if change_type is ChangeType.DELAY:
        return prefix + f"Flight {flight_number} has experienced a delay."
    if change_type is ChangeType.GATE_CHANGE:
        return prefix + f"Flight {flight_number} gate is now {context.gate or 'unassigned'}."
    if change_type is ChangeType.DEPARTURE:
        return prefix + f"Flight {flight_number} has departed."
    return prefix + f"Flight {flight_number} has arrived."


def compose_tracking_ended_message(flight_number: str, status: str) -> str:
    return f"Tracking for {flight_number} has ended automatically as the flight has {status}."
