"""
services/rule_engine.py

Condition and rule evaluation. Pure functions, no database access.

Conditions and rules are read by attribute, so ORM rows and plain
objects evaluate the same way.
"""

import operator as _op
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from schemas.tracking import (
    ConditionField,
    ConditionOperator,
    FlightContext,
    RuleOperator,
)
from services.change_detector import to_utc


# =====================================================================
# SECTION: FIELD ACCESS
# =====================================================================

FIELD_ACCESSORS: Dict[ConditionField, Callable[[FlightContext], Any]] = {
    ConditionField.STATUS: lambda ctx: ctx.status,
    ConditionField.DEPARTURE_TIME: lambda ctx: ctx.departure_time,
    ConditionField.ARRIVAL_TIME: lambda ctx: ctx.arrival_time,
    ConditionField.GATE: lambda ctx: ctx.gate,
    ConditionField.TERMINAL: lambda ctx: ctx.terminal,
    ConditionField.FLIGHT_NUMBER: lambda ctx: ctx.flight_number,
}


def read_field(field_name: Any, context: FlightContext) -> Optional[Any]:
    """Value of a condition field, None when the field is unknown or unset."""
    try:
        key = ConditionField(field_name)
    except ValueError:
        return None
    return FIELD_ACCESSORS[key](context)


def _stringify(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    ISO 8601 string or datetime to an aware UTC datetime.
    Date-only strings are midnight UTC. Anything else is None.
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        return to_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


# =====================================================================
# SECTION: CONDITION EVALUATION
# =====================================================================

_RELATIONAL: Dict[ConditionOperator, Callable[[datetime, datetime], bool]] = {
    ConditionOperator.GREATER_THAN: _op.gt,
    ConditionOperator.LESS_THAN: _op.lt,
    ConditionOperator.GREATER_THAN_OR_EQUAL: _op.ge,
    ConditionOperator.LESS_THAN_OR_EQUAL: _op.le,
}


def _compare_dates(field_value: Any, value: str, compare: Callable[[datetime, datetime], bool]) -> bool:
    left = parse_timestamp(field_value)
    right = parse_timestamp(value)
    if left is None or right is None:
        return False
    return compare(left, right)


def _between(field_value: Any, value: str) -> bool:
    low_raw, _, high_raw = value.partition(",")
    current = parse_timestamp(field_value)
    low = parse_timestamp(low_raw)
    high = parse_timestamp(high_raw)
    if current is None or low is None or high is None:
        return False
    return low <= current <= high


def evaluate_condition(condition: Any, context: FlightContext) -> bool:
    """
    Evaluate one (field, operator, value) condition against a flight.

    Missing field values fail closed for every operator, "changed" included.
    Relational operators and "between" compare as timestamps.
    """
    field_value = read_field(getattr(condition, "field", None), context)
    if field_value is None:
        return False

    try:
        operator = ConditionOperator(getattr(condition, "operator", None))
    except ValueError:
        return False

    raw_value = getattr(condition, "value", None)
    value = "" if raw_value is None else str(raw_value)

    if operator is ConditionOperator.EQUALS:
        return _stringify(field_value) == value
    if operator is ConditionOperator.NOT_EQUALS:
        return _stringify(field_value) != value
    if operator is ConditionOperator.CONTAINS:
        return value in _stringify(field_value)
    if operator is ConditionOperator.NOT_CONTAINS:
        return value not in _stringify(field_value)
    if operator in _RELATIONAL:
        return _compare_dates(field_value, value, _RELATIONAL[operator])
    if operator is ConditionOperator.BETWEEN:
        return _between(field_value, value)
    if operator is ConditionOperator.CHANGED:
        return any(change.type == value for change in context.changes)
    return False


# =====================================================================
# SECTION: RULE EVALUATION
# =====================================================================

@dataclass
class RuleEvaluation:
    satisfied: bool
    matched_condition_ids: List[str] = field(default_factory=list)


def evaluate_rule(rule: Any, flight_data_by_flight_id: Mapping[str, FlightContext]) -> RuleEvaluation:
    """
    Combine the rule's conditions with its AND / OR operator.

    A rule without conditions is never satisfied. matched_condition_ids lists
    every condition that held on its own, whatever the combined result.
    Raises ValueError for an operator outside RuleOperator.
    """
    conditions = list(getattr(rule, "conditions", None) or [])
    if not conditions:
        return RuleEvaluation(satisfied=False)

    rule_operator = RuleOperator(getattr(rule, "operator", None))

    results: List[bool] = []
    matched: List[str] = []
    for condition in conditions:
        context = flight_data_by_flight_id.get(getattr(condition, "tracked_flight_id", None))
        result = context is not None and evaluate_condition(condition, context)
        results.append(result)
        if result:
            matched.append(getattr(condition, "id", None))

    if rule_operator is RuleOperator.AND:
        satisfied = all(results)
    else:
        satisfied = any(results)

    return RuleEvaluation(satisfied=satisfied, matched_condition_ids=matched)


def referenced_flight_ids(rule: Any) -> List[str]:
    """Distinct tracked flight ids used by the rule's conditions, then its alerts."""
    seen: List[str] = []
    for item in list(getattr(rule, "conditions", None) or []) + list(getattr(rule, "alerts", None) or []):
        flight_id = getattr(item, "tracked_flight_id", None)
        if flight_id and flight_id not in seen:
            seen.append(flight_id)
    return seen
