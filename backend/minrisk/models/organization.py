import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Enum as SQLEnum, Field, SQLModel


class OrganizationStatus(str, Enum):
    active = "active"
    suspended = "suspended"


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(nullable=False, max_length=255)
    status: OrganizationStatus = Field(
        default=OrganizationStatus.active,
        sa_column=Column(
            SQLEnum(OrganizationStatus, name="organization_status"),
            nullable=False,
            server_default=OrganizationStatus.active.value,
            index=True,
        ),
    )
    suspended_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    # Plain UUID: profiles reference organizations, so no FK back.
    suspended_by: Optional[uuid.UUID] = Field(default=None, nullable=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def is_suspended(self) -> bool:
        return self.status == OrganizationStatus.suspended
