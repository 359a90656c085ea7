"""
providers/aeroapi.py

FlightAware AeroAPI integration (flight status only).
- GET /flights/{ident}, newest matching flight first
- Auth header: x-apikey
- Switch on with: FLIGHT_PROVIDER=aeroapi (default)
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from config import AEROAPI_BASE_URL, AEROAPI_KEY, PROVIDER_TIMEOUT_SECONDS
from providers.base import ProviderError
from schemas.tracking import FlightSnapshot

logger = logging.getLogger(__name__)


# AeroAPI free-text statuses, matched by prefix, mapped to the tracker vocabulary
_STATUS_PREFIXES = (
    ("scheduled", "scheduled"),
    ("en route", "active"),
    ("departed", "active"),
    ("taxiing", "active"),
    ("landed", "landed"),
    ("arrived", "landed"),
    ("cancelled", "cancelled"),
    ("diverted", "diverted"),
)


def normalize_status(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    lowered = raw.strip().lower()
    for prefix, status in _STATUS_PREFIXES:
        if lowered.startswith(prefix):
            return status
    return lowered


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def map_aeroapi_flight(flight_number: str, data: Dict[str, Any]) -> FlightSnapshot:
    return FlightSnapshot(
        flight_number=flight_number,
        status=normalize_status(data.get("status")),
        scheduled_departure=_parse_dt(data.get("scheduled_out") or data.get("scheduled_off")),
        actual_departure=_parse_dt(data.get("actual_out") or data.get("actual_off")),
        scheduled_arrival=_parse_dt(data.get("scheduled_in") or data.get("scheduled_on")),
        actual_arrival=_parse_dt(data.get("actual_in") or data.get("actual_on")),
        gate=data.get("gate_origin") or None,
        terminal=data.get("terminal_origin") or None,
    )


class AeroApiProvider:
    name = "aeroapi"

    def __init__(
        self,
        api_key: str = AEROAPI_KEY,
        base_url: str = AEROAPI_BASE_URL,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ProviderError("AEROAPI_KEY is not configured")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_flight_snapshot(self, flight_number: str) -> Optional[FlightSnapshot]:
        ident = flight_number.strip().upper()
        url = f"{self.base_url}/flights/{ident}"

        try:
            resp = self.session.get(
                url,
                headers={"x-apikey": self.api_key, "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderError(f"AeroAPI request for {ident} failed: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise ProviderError(f"AeroAPI {resp.status_code} for {ident}: {resp.text[:300]}")

        try:
            flights = (resp.json() or {}).get("flights") or []
        except ValueError as e:
            raise ProviderError(f"AeroAPI returned invalid JSON for {ident}") from e

        if not flights:
            return None

        logger.debug(f"[provider] aeroapi {ident}: {len(flights)} flights, using first")
        return map_aeroapi_flight(ident, flights[0])
