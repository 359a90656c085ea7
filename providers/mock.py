"""
providers/mock.py

In-memory provider for local runs and demos (FLIGHT_PROVIDER=mock).
Unknown flights walk through scheduled -> active -> landed, one step per fetch.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional

from schemas.tracking import FlightSnapshot

_STATUS_CYCLE = ("scheduled", "active", "landed")


class MockFlightProvider:
    name = "mock"

    def __init__(self, snapshots: Optional[Dict[str, FlightSnapshot]] = None):
        self.snapshots: Dict[str, FlightSnapshot] = dict(snapshots or {})
        self._steps: Dict[str, int] = {}
        self._base_time = datetime.utcnow().replace(second=0, microsecond=0) + timedelta(hours=2)

    def set_snapshot(self, snapshot: FlightSnapshot) -> None:
        self.snapshots[snapshot.flight_number.upper()] = snapshot

    def fetch_flight_snapshot(self, flight_number: str) -> Optional[FlightSnapshot]:
        key = flight_number.strip().upper()
        if key in self.snapshots:
            return self.snapshots[key]

        step = self._steps.get(key, 0)
        self._steps[key] = min(step + 1, len(_STATUS_CYCLE) - 1)
        status = _STATUS_CYCLE[step]

        departure = self._base_time
        arrival = departure + timedelta(hours=3)
        return FlightSnapshot(
            flight_number=key,
            status=status,
            scheduled_departure=departure,
            actual_departure=departure if status != "scheduled" else None,
            scheduled_arrival=arrival,
            actual_arrival=arrival if status == "landed" else None,
            gate="A1",
            terminal="1",
        )
