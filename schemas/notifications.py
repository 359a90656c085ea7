"""schemas/notifications.py - Pydantic models for the notification inbox."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tracked_flight_id: Optional[str] = None
    rule_id: Optional[str] = None

    title: str
    message: str
    type: str
    read: bool

    created_at: datetime


class MarkReadPayload(BaseModel):
    # None marks every notification of the user as read
    ids: Optional[List[str]] = None
