"""schemas/users.py - Pydantic models for user sync and profile endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserSyncPayload(BaseModel):
    # Identity: accept either, canonicalised in /user-sync
    external_id: Optional[str] = None
    id: Optional[str] = None

    email: Optional[str] = None
    name: Optional[str] = None
    email_alerts_enabled: Optional[bool] = None


class UserPreferencesPayload(BaseModel):
    email_alerts_enabled: bool


class ProfileResponse(BaseModel):
    id: str
    external_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    email_alerts_enabled: bool

    tracked_flights: int = 0
    active_rules: int = 0
    unread_notifications: int = 0

    created_at: Optional[datetime] = None
