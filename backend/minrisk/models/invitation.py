import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, Text
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from minrisk.models.user_profile import UserRole


class InvitationStatus(str, Enum):
    pending = "pending"
    used = "used"
    revoked = "revoked"
    expired = "expired"


# Roles an invitation may grant. super_admin and viewer are never invited.
INVITABLE_ROLES = frozenset({UserRole.user, UserRole.secondary_admin, UserRole.primary_admin})


class UserInvitation(SQLModel, table=True):
    __tablename__ = "user_invitations"
    __table_args__ = (
        CheckConstraint("expires_at > created_at", name="ck_user_invitations_valid_expiry"),
        CheckConstraint(
            "(status = 'used' AND used_at IS NOT NULL) "
            "OR (status <> 'used' AND used_by IS NULL AND used_at IS NULL)",
            name="ck_user_invitations_used_fields",
        ),
        CheckConstraint(
            "(status = 'revoked' AND revoked_by IS NOT NULL AND revoked_at IS NOT NULL) "
            "OR status <> 'revoked'",
            name="ck_user_invitations_revoked_fields",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    invite_code: str = Field(index=True, unique=True, nullable=False, max_length=8)
    email: str = Field(index=True, nullable=False, max_length=255)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    role: UserRole = Field(
        sa_column=Column(SQLEnum(UserRole, name="user_role", create_type=False), nullable=False),
    )
    status: InvitationStatus = Field(
        default=InvitationStatus.pending,
        sa_column=Column(
            SQLEnum(InvitationStatus, name="invitation_status"),
            nullable=False,
            server_default=InvitationStatus.pending.value,
        ),
    )
    used_by: Optional[uuid.UUID] = Field(
        default=None, foreign_key="user_profiles.id", nullable=True, ondelete="SET NULL"
    )
    used_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    created_by: uuid.UUID = Field(foreign_key="user_profiles.id", nullable=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    revoked_by: Optional[uuid.UUID] = Field(default=None, foreign_key="user_profiles.id", nullable=True)
    revoked_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    revoke_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
