"""schemas/flights.py - Pydantic models for tracked flight CRUD."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TrackedFlightCreate(BaseModel):
    flight_number: str = Field(min_length=2, max_length=20)
    departure_airport: Optional[str] = Field(None, max_length=10)
    arrival_airport: Optional[str] = Field(None, max_length=10)

    # Optional initial schedule, refreshed by the processing cycle anyway
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None

    @field_validator("flight_number")
    @classmethod
    def _normalize_flight_number(cls, v: str) -> str:
        v = v.replace(" ", "").upper()
        if not v.isalnum():
            raise ValueError("flight_number must be alphanumeric")
        return v

    @field_validator("departure_airport", "arrival_airport")
    @classmethod
    def _normalize_airport(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip().upper() or None


class TrackedFlightOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    flight_number: str
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None

    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    status: Optional[str] = None
    gate: Optional[str] = None
    terminal: Optional[str] = None

    created_at: datetime
    updated_at: datetime
