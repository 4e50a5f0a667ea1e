import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from minrisk.models.control import ControlTarget
from minrisk.models.risk import RiskStatus


class RiskBase(BaseModel):
    risk_title: str = Field(..., min_length=1, max_length=255)
    risk_description: Optional[str] = None
    division: str = Field(..., min_length=1, max_length=255)
    department: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=255)
    owner: str = Field(..., min_length=1, max_length=255)
    likelihood_inherent: int = Field(ge=1, le=6)
    impact_inherent: int = Field(ge=1, le=6)
    residual_likelihood: Optional[int] = Field(default=None, ge=1, le=6)
    residual_impact: Optional[int] = Field(default=None, ge=1, le=6)
    status: RiskStatus = RiskStatus.open
    is_priority: bool = False

    @field_validator("risk_title", "division", "department", "category", "owner")
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty")
        return v


class RiskCreate(RiskBase):
    # Generated as DIV-CAT-NNN when omitted.
    risk_code: Optional[str] = Field(default=None, min_length=1, max_length=32)
    owner_id: Optional[uuid.UUID] = None


class RiskUpdate(BaseModel):
    risk_title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    risk_description: Optional[str] = None
    division: Optional[str] = Field(default=None, min_length=1, max_length=255)
    department: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = Field(default=None, min_length=1, max_length=255)
    owner: Optional[str] = Field(default=None, min_length=1, max_length=255)
    likelihood_inherent: Optional[int] = Field(default=None, ge=1, le=6)
    impact_inherent: Optional[int] = Field(default=None, ge=1, le=6)
    residual_likelihood: Optional[int] = Field(default=None, ge=1, le=6)
    residual_impact: Optional[int] = Field(default=None, ge=1, le=6)
    status: Optional[RiskStatus] = None
    is_priority: Optional[bool] = None

    @model_validator(mode="after")
    def required_fields_not_null(self) -> "RiskUpdate":
        for name in (
            "risk_title",
            "division",
            "department",
            "category",
            "owner",
            "likelihood_inherent",
            "impact_inherent",
            "status",
            "is_priority",
        ):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class RiskRead(RiskBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    user_id: uuid.UUID
    owner_id: Optional[uuid.UUID] = None
    risk_code: str
    linked_incident_count: int = 0
    last_incident_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def inherent_score(self) -> int:
        return self.likelihood_inherent * self.impact_inherent

    @computed_field
    @property
    def residual_score(self) -> Optional[int]:
        if self.residual_likelihood is None or self.residual_impact is None:
            return None
        return self.residual_likelihood * self.residual_impact


class RiskOwnerTransfer(BaseModel):
    new_owner_id: uuid.UUID
    reason: Optional[str] = Field(default=None, max_length=1000)


class RiskOwnerHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    risk_id: uuid.UUID
    risk_code: str
    previous_owner_id: Optional[uuid.UUID] = None
    new_owner_id: Optional[uuid.UUID] = None
    transferred_by: uuid.UUID
    reason: Optional[str] = None
    transferred_at: datetime


class ControlCreate(BaseModel):
    control_code: Optional[str] = Field(default=None, min_length=1, max_length=32)
    description: str = Field(..., min_length=1)
    target: ControlTarget
    design: int = Field(default=0, ge=0, le=3)
    implementation: int = Field(default=0, ge=0, le=3)
    monitoring: int = Field(default=0, ge=0, le=3)
    effectiveness_evaluation: int = Field(default=0, ge=0, le=3)


class ControlUpdate(BaseModel):
    description: Optional[str] = Field(default=None, min_length=1)
    target: Optional[ControlTarget] = None
    design: Optional[int] = Field(default=None, ge=0, le=3)
    implementation: Optional[int] = Field(default=None, ge=0, le=3)
    monitoring: Optional[int] = Field(default=None, ge=0, le=3)
    effectiveness_evaluation: Optional[int] = Field(default=None, ge=0, le=3)

    @model_validator(mode="after")
    def fields_not_null(self) -> "ControlUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ControlRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    risk_id: uuid.UUID
    control_code: str
    description: str
    target: ControlTarget
    design: int
    implementation: int
    monitoring: int
    effectiveness_evaluation: int
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
