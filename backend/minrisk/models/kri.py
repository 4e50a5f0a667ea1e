import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Date, DateTime, Float, Text, UniqueConstraint
from sqlmodel import Enum as SQLEnum, Field, SQLModel


class ThresholdDirection(str, Enum):
    above = "above"
    below = "below"
    between = "between"


class AlertStatus(str, Enum):
    green = "green"
    yellow = "yellow"
    red = "red"


class KRIDefinition(SQLModel, table=True):
    __tablename__ = "kri_definitions"
    __table_args__ = (
        UniqueConstraint("organization_id", "kri_code", name="uq_kri_definitions_org_code"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    kri_code: str = Field(nullable=False, max_length=32)
    name: str = Field(nullable=False)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    unit: Optional[str] = Field(default=None, max_length=50)
    frequency: str = Field(default="monthly", nullable=False, max_length=20)
    lower_threshold: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    upper_threshold: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))
    threshold_direction: ThresholdDirection = Field(
        default=ThresholdDirection.above,
        sa_column=Column(
            SQLEnum(ThresholdDirection, name="kri_threshold_direction"),
            nullable=False,
            server_default=ThresholdDirection.above.value,
        ),
    )
    linked_risk_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="risks.id",
        nullable=True,
        ondelete="SET NULL",
    )
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="user_profiles.id", nullable=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class KRIDataEntry(SQLModel, table=True):
    __tablename__ = "kri_data_entries"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    kri_id: uuid.UUID = Field(foreign_key="kri_definitions.id", nullable=False, index=True, ondelete="CASCADE")
    value: float = Field(sa_column=Column(Float, nullable=False))
    measurement_date: date = Field(sa_column=Column(Date, nullable=False))
    alert_status: AlertStatus = Field(
        default=AlertStatus.green,
        sa_column=Column(
            SQLEnum(AlertStatus, name="kri_alert_status"),
            nullable=False,
            server_default=AlertStatus.green.value,
        ),
    )
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    entered_by: Optional[uuid.UUID] = Field(default=None, foreign_key="user_profiles.id", nullable=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
