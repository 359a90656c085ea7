from typing import Optional, Protocol

from schemas.tracking import FlightSnapshot


class ProviderError(Exception):
    """The flight data provider could not be reached or answered with an error."""


class FlightDataProvider(Protocol):
    name: str

    def fetch_flight_snapshot(self, flight_number: str) -> Optional[FlightSnapshot]:
        """Latest snapshot for the flight, None when the provider does not know it."""
        ...
