"""
services/change_detector.py

Diffs the stored snapshot of a tracked flight against the latest provider snapshot.

- detect_changes: pure comparison, returns the typed changes in a fixed order
- build_flight_context / flight_context_from_state: evaluation context for rules
- to_utc / to_naive_utc: the database stores naive UTC, providers return aware times
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from schemas.tracking import (
    Arrival,
    Change,
    Delay,
    Departure,
    FlightContext,
    FlightSnapshot,
    GateChange,
    StatusChange,
)

# A departure moving by this much or less is noise, not a delay
DELAY_THRESHOLD = timedelta(minutes=10)

DEPARTED_STATUS = "active"
ARRIVED_STATUS = "landed"


# =====================================================================
# SECTION: TIME HELPERS
# =====================================================================

def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    value = to_utc(value)
    return value.replace(tzinfo=None) if value is not None else None


# =====================================================================
# SECTION: CHANGE DETECTION
# =====================================================================

def detect_changes(previous, latest: FlightSnapshot) -> List[Change]:
    """
    previous is anything with status / departure_time / gate attributes,
    normally the TrackedFlight row as last persisted.
    """
    changes: List[Change] = []

    old_status = getattr(previous, "status", None)
    old_gate = getattr(previous, "gate", None)

    if latest.status and latest.status != old_status:
        changes.append(StatusChange(old=old_status, new=latest.status))

    old_departure = to_utc(getattr(previous, "departure_time", None))
    new_departure = to_utc(latest.scheduled_departure)
    if old_departure is not None and new_departure is not None:
        shift = abs(new_departure - old_departure)
        if shift > DELAY_THRESHOLD:
            changes.append(
                Delay(
                    old_time=old_departure,
                    new_time=new_departure,
                    delay_minutes=shift // timedelta(minutes=1),
                )
            )

    if latest.gate and latest.gate != old_gate:
        changes.append(GateChange(old=old_gate, new=latest.gate))

    if latest.status == DEPARTED_STATUS and old_status != DEPARTED_STATUS:
        changes.append(
            Departure(departure_time=latest.actual_departure or latest.scheduled_departure)
        )

    if latest.status == ARRIVED_STATUS and old_status != ARRIVED_STATUS:
        changes.append(
            Arrival(arrival_time=latest.actual_arrival or latest.scheduled_arrival)
        )

    return changes


# =====================================================================
# SECTION: EVALUATION CONTEXT
# =====================================================================

def flight_context_from_state(previous, changes: Sequence[Change] = ()) -> FlightContext:
    return FlightContext(
        flight_number=getattr(previous, "flight_number", None),
        status=getattr(previous, "status", None),
        departure_time=to_utc(getattr(previous, "departure_time", None)),
        arrival_time=to_utc(getattr(previous, "arrival_time", None)),
        gate=getattr(previous, "gate", None),
        terminal=getattr(previous, "terminal", None),
        changes=list(changes),
    )


def build_flight_context(previous, latest: FlightSnapshot, changes: Sequence[Change]) -> FlightContext:
    """Latest provider values win where present, stored values fill the gaps."""
    context = flight_context_from_state(previous, changes)
    context.status = latest.status or context.status
    context.departure_time = to_utc(latest.scheduled_departure) or context.departure_time
    context.arrival_time = to_utc(latest.scheduled_arrival) or context.arrival_time
    context.gate = latest.gate or context.gate
    context.terminal = latest.terminal or context.terminal
    return context
