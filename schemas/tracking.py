"""schemas/tracking.py - Flight snapshots, detected changes and the closed rule vocabularies."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict


# =====================================================================
# SECTION: ENUMS
# =====================================================================

class ChangeType(str, Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    DELAY = "DELAY"
    GATE_CHANGE = "GATE_CHANGE"
    DEPARTURE = "DEPARTURE"
    ARRIVAL = "ARRIVAL"


# Alerts subscribe to exactly one kind of change
AlertType = ChangeType


class NotificationType(str, Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    DELAY = "DELAY"
    GATE_CHANGE = "GATE_CHANGE"
    DEPARTURE = "DEPARTURE"
    ARRIVAL = "ARRIVAL"
    INFO = "INFO"


class RuleOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_THAN_OR_EQUAL = "greaterThanOrEqual"
    LESS_THAN_OR_EQUAL = "lessThanOrEqual"
    BETWEEN = "between"
    CHANGED = "changed"


class ConditionField(str, Enum):
    STATUS = "status"
    DEPARTURE_TIME = "departureTime"
    ARRIVAL_TIME = "arrivalTime"
    GATE = "gate"
    TERMINAL = "terminal"
    FLIGHT_NUMBER = "flightNumber"


class TimeRange(str, Enum):
    NEAR_TERM = "near-term"  # departs within 12h
    MID_TERM = "mid-term"  # 12h to 24h out
    LONG_TERM = "long-term"  # more than 24h out


# =====================================================================
# SECTION: FLIGHT SNAPSHOT
# =====================================================================

class FlightSnapshot(BaseModel):
    """Point-in-time view of a flight as reported by the data provider."""

    model_config = ConfigDict(frozen=True)

    flight_number: str
    status: Optional[str] = None

    scheduled_departure: Optional[datetime] = None
    actual_departure: Optional[datetime] = None
    scheduled_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None

    gate: Optional[str] = None
    terminal: Optional[str] = None


# =====================================================================
# SECTION: CHANGES
# =====================================================================

class StatusChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ChangeType.STATUS_CHANGE] = ChangeType.STATUS_CHANGE
    old: Optional[str] = None
    new: str


class Delay(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ChangeType.DELAY] = ChangeType.DELAY
    old_time: datetime
    new_time: datetime
    delay_minutes: int


class GateChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ChangeType.GATE_CHANGE] = ChangeType.GATE_CHANGE
    old: Optional[str] = None
    new: str


class Departure(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ChangeType.DEPARTURE] = ChangeType.DEPARTURE
    departure_time: Optional[datetime] = None


class Arrival(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ChangeType.ARRIVAL] = ChangeType.ARRIVAL
    arrival_time: Optional[datetime] = None


Change = Union[StatusChange, Delay, GateChange, Departure, Arrival]


# =====================================================================
# SECTION: EVALUATION CONTEXT
# =====================================================================

@dataclass
class FlightContext:
    """Current field values of one flight plus the changes seen this cycle."""

    flight_number: Optional[str] = None
    status: Optional[str] = None
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    gate: Optional[str] = None
    terminal: Optional[str] = None
    changes: List[Change] = field(default_factory=list)

    def change_of_type(self, change_type: ChangeType) -> Optional[Change]:
        for change in self.changes:
            if change.type == change_type:
                return change
        return None
