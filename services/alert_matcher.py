"""services/alert_matcher.py - Picks the direct (rule-less) alerts that fire for a set of changes."""

from dataclasses import dataclass
from typing import Any, List, Sequence

from schemas.tracking import Change, ChangeType


@dataclass
class AlertMatch:
    alert: Any
    change: Change


def alert_matches_change(alert: Any, change: Change) -> bool:
    alert_type = getattr(alert, "type", None)

    if alert_type == ChangeType.DELAY and change.type == ChangeType.DELAY:
        threshold = getattr(alert, "threshold", None) or 0
        return change.delay_minutes >= threshold

    return alert_type == change.type


def match_alerts(changes: Sequence[Change], alerts: Sequence[Any]) -> List[AlertMatch]:
    """
    One AlertMatch per (change, alert) pair that fires, ordered by change.
    Inactive alerts and alerts owned by a rule never match here.
    """
    candidates = [
        a for a in alerts
        if getattr(a, "is_active", False) and getattr(a, "rule_id", None) is None
    ]

    matches: List[AlertMatch] = []
    for change in changes:
        for alert in candidates:
            if alert_matches_change(alert, change):
                matches.append(AlertMatch(alert=alert, change=change))
    return matches
