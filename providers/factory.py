"""
providers/factory.py

Routes flight status lookups to the correct provider based on FLIGHT_PROVIDER env var.

Currently supported values:
  aeroapi: FlightAware AeroAPI (default, production)
  mock:    deterministic in-memory data, no network

To switch providers without code changes:
  FLIGHT_PROVIDER=mock
"""

from typing import Optional

from config import FLIGHT_PROVIDER
from providers.base import FlightDataProvider


def get_flight_provider(provider: Optional[str] = None) -> FlightDataProvider:
    """
    Canonical entry point for building the flight data provider.
    Raises ProviderError when the selected provider is not configured.
    """
    provider = (provider or FLIGHT_PROVIDER).lower().strip()

    if provider == "mock":
        from providers.mock import MockFlightProvider
        return MockFlightProvider()

    if provider != "aeroapi":
        raise ValueError(f"Unknown FLIGHT_PROVIDER: {provider}")

    from providers.aeroapi import AeroApiProvider
    return AeroApiProvider()
