"""schemas/alerts.py - Pydantic models for alert CRUD."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.tracking import AlertType


class AlertCreate(BaseModel):
    tracked_flight_id: str
    type: AlertType

    # Minutes, DELAY alerts only
    threshold: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def _threshold_only_for_delay(self):
        if self.threshold is not None and self.type is not AlertType.DELAY:
            raise ValueError("threshold is only supported for DELAY alerts")
        return self


class AlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tracked_flight_id: Optional[str] = None
    rule_id: Optional[str] = None

    type: str
    threshold: Optional[int] = None
    is_active: bool

    created_at: datetime
    updated_at: datetime


class AlertUpdatePayload(BaseModel):
    is_active: Optional[bool] = None
    threshold: Optional[int] = Field(None, ge=0)
