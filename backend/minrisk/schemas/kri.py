import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from minrisk.models.kri import AlertStatus, ThresholdDirection


class KRIDefinitionBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    unit: Optional[str] = Field(default=None, max_length=50)
    frequency: str = Field(default="monthly", min_length=1, max_length=20)
    lower_threshold: Optional[float] = None
    upper_threshold: Optional[float] = None
    threshold_direction: ThresholdDirection = ThresholdDirection.above
    linked_risk_id: Optional[uuid.UUID] = None


class KRIDefinitionCreate(KRIDefinitionBase):
    kri_code: Optional[str] = Field(default=None, min_length=1, max_length=32)

    @model_validator(mode="after")
    def check_thresholds(self) -> "KRIDefinitionCreate":
        if (
            self.lower_threshold is not None
            and self.upper_threshold is not None
            and self.lower_threshold > self.upper_threshold
        ):
            raise ValueError("lower_threshold must not exceed upper_threshold")
        return self


class KRIDefinitionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    unit: Optional[str] = Field(default=None, max_length=50)
    frequency: Optional[str] = Field(default=None, min_length=1, max_length=20)
    lower_threshold: Optional[float] = None
    upper_threshold: Optional[float] = None
    threshold_direction: Optional[ThresholdDirection] = None
    linked_risk_id: Optional[uuid.UUID] = None


class KRIDefinitionRead(KRIDefinitionBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    kri_code: str
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class KRIDataEntryCreate(BaseModel):
    value: float
    measurement_date: date
    notes: Optional[str] = None


class KRIDataEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kri_id: uuid.UUID
    value: float
    measurement_date: date
    alert_status: AlertStatus
    notes: Optional[str] = None
    entered_by: Optional[uuid.UUID] = None
    created_at: datetime
