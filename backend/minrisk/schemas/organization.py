import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from minrisk.models.organization import OrganizationStatus


class OrganizationBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name")
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name cannot be empty")
        return v


class OrganizationCreate(OrganizationBase):
    pass


class OrganizationUpdate(OrganizationBase):
    pass


class OrganizationRead(OrganizationBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    status: OrganizationStatus
    suspended_at: Optional[datetime] = None
    suspended_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class OrganizationSuspend(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class OrganizationStatusChange(BaseModel):
    organization: OrganizationRead
    users_affected: int
