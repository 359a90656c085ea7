"""schemas/rules.py - Pydantic models for rule CRUD.

Field names, operators and alert types are closed enums here, so a rule that
reaches the database can always be evaluated.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schemas.alerts import AlertOut
from schemas.tracking import AlertType, ChangeType, ConditionField, ConditionOperator, RuleOperator


class RuleConditionIn(BaseModel):
    tracked_flight_id: str
    field: ConditionField
    operator: ConditionOperator
    value: str = Field(max_length=255)

    @model_validator(mode="after")
    def _check_value(self):
        if self.operator is ConditionOperator.BETWEEN:
            low, sep, high = self.value.partition(",")
            if not sep or not low.strip() or not high.strip() or "," in high:
                raise ValueError("between expects a value of the form 'min,max'")
        elif self.operator is ConditionOperator.CHANGED:
            if self.value not in {t.value for t in ChangeType}:
                raise ValueError(f"changed expects one of {[t.value for t in ChangeType]}")
        return self


class RuleAlertIn(BaseModel):
    # Set on update to edit an existing rule alert in place
    id: Optional[str] = None
    tracked_flight_id: str
    type: AlertType
    is_active: bool = True


class RuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    operator: RuleOperator = RuleOperator.AND
    is_active: bool = True
    schedule: Optional[str] = Field(None, max_length=100)

    conditions: List[RuleConditionIn] = Field(min_length=1)
    alerts: List[RuleAlertIn] = Field(default_factory=list)


class RuleUpdatePayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    operator: Optional[RuleOperator] = None
    is_active: Optional[bool] = None
    schedule: Optional[str] = Field(None, max_length=100)

    # Replaces the whole condition list when present
    conditions: Optional[List[RuleConditionIn]] = None
    # Alerts left out of the list are deleted, entries without an id are created
    alerts: Optional[List[RuleAlertIn]] = None

    @field_validator("conditions")
    @classmethod
    def _non_empty(cls, v):
        if v is not None and not v:
            raise ValueError("a rule needs at least one condition")
        return v


class RuleConditionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tracked_flight_id: Optional[str] = None
    field: str
    operator: str
    value: str
    position: int


class RuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    operator: str
    is_active: bool
    schedule: Optional[str] = None

    conditions: List[RuleConditionOut] = Field(default_factory=list)
    alerts: List[AlertOut] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
