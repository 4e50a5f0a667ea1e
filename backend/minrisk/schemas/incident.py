import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from minrisk.models.incident import IncidentStatus


class IncidentBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    incident_date: date
    division: Optional[str] = Field(default=None, max_length=255)
    department: Optional[str] = Field(default=None, max_length=255)
    incident_type: Optional[str] = Field(default=None, max_length=255)
    severity: Optional[int] = Field(default=None, ge=1, le=5)
    financial_impact: Optional[float] = Field(default=None, ge=0)
    status: IncidentStatus = IncidentStatus.reported
    root_cause: Optional[str] = None
    corrective_actions: Optional[str] = None


class IncidentCreate(IncidentBase):
    # Generated as INC-YYYY-NNN from the incident date when omitted.
    incident_code: Optional[str] = Field(default=None, min_length=1, max_length=32)


class IncidentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    incident_date: Optional[date] = None
    division: Optional[str] = Field(default=None, max_length=255)
    department: Optional[str] = Field(default=None, max_length=255)
    incident_type: Optional[str] = Field(default=None, max_length=255)
    severity: Optional[int] = Field(default=None, ge=1, le=5)
    financial_impact: Optional[float] = Field(default=None, ge=0)
    status: Optional[IncidentStatus] = None
    root_cause: Optional[str] = None
    corrective_actions: Optional[str] = None

    @model_validator(mode="after")
    def required_fields_not_null(self) -> "IncidentUpdate":
        for name in ("title", "incident_date", "status"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class IncidentRead(IncidentBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    incident_code: str
    created_at: datetime
    updated_at: datetime


class IncidentRiskLinkCreate(BaseModel):
    risk_id: uuid.UUID
    link_type: str = Field(default="related", min_length=1, max_length=50)
    notes: Optional[str] = None


class IncidentRiskLinkRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    incident_id: uuid.UUID
    risk_id: uuid.UUID
    link_type: str
    notes: Optional[str] = None
    linked_by: Optional[uuid.UUID] = None
    linked_at: datetime
