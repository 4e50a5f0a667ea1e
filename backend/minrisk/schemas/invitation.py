import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from minrisk.models.invitation import InvitationStatus
from minrisk.models.user_profile import UserRole


class InvitationCreate(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.user
    expires_in_days: Optional[int] = Field(default=None, ge=1, le=90)
    notes: Optional[str] = Field(default=None, max_length=1000)


class InvitationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    invite_code: str
    email: str
    organization_id: uuid.UUID
    role: UserRole
    status: InvitationStatus
    expires_at: datetime
    created_by: uuid.UUID
    created_at: datetime
    used_by: Optional[uuid.UUID] = None
    used_at: Optional[datetime] = None
    revoked_by: Optional[uuid.UUID] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    notes: Optional[str] = None


class InvitationValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    email: EmailStr


class InvitationValidateResponse(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    role: Optional[UserRole] = None
    expires_at: Optional[datetime] = None


class InvitationRevoke(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class InvitationCleanupResponse(BaseModel):
    expired: int
