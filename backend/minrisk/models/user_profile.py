import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Integer
from sqlmodel import Enum as SQLEnum, Field, SQLModel


class UserRole(str, Enum):
    super_admin = "super_admin"
    primary_admin = "primary_admin"
    secondary_admin = "secondary_admin"
    user = "user"
    viewer = "viewer"


class UserStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    suspended = "suspended"


# Higher number = more privilege. Managing another profile requires a strictly
# higher level than the target's.
ROLE_LEVELS: dict[UserRole, int] = {
    UserRole.super_admin: 4,
    UserRole.primary_admin: 3,
    UserRole.secondary_admin: 2,
    UserRole.user: 1,
    UserRole.viewer: 0,
}

ADMIN_ROLES = frozenset({UserRole.super_admin, UserRole.primary_admin, UserRole.secondary_admin})


class UserProfile(SQLModel, table=True):
    __tablename__ = "user_profiles"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="organizations.id",
        nullable=True,
        index=True,
    )
    email: str = Field(index=True, unique=True, nullable=False, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)
    hashed_password: str = Field(nullable=False)
    role: UserRole = Field(
        default=UserRole.user,
        sa_column=Column(SQLEnum(UserRole, name="user_role"), nullable=False, server_default=UserRole.user.value),
    )
    status: UserStatus = Field(
        default=UserStatus.pending,
        sa_column=Column(
            SQLEnum(UserStatus, name="user_status"),
            nullable=False,
            server_default=UserStatus.pending.value,
        ),
    )
    approved_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    approved_by: Optional[uuid.UUID] = Field(default=None, nullable=True)
    token_version: int = Field(
        default=1,
        sa_column=Column(Integer, nullable=False, server_default="1"),
    )
    last_login_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.super_admin

    @property
    def is_approved(self) -> bool:
        return self.status == UserStatus.approved
