import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Numeric, Text, UniqueConstraint
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from minrisk.models.risk import _enum_values


class IncidentStatus(str, Enum):
    reported = "Reported"
    under_investigation = "Under Investigation"
    resolved = "Resolved"
    closed = "Closed"


class Incident(SQLModel, table=True):
    __tablename__ = "incidents"
    __table_args__ = (
        UniqueConstraint("organization_id", "incident_code", name="uq_incidents_org_code"),
        CheckConstraint("severity IS NULL OR severity BETWEEN 1 AND 5", name="ck_incidents_severity"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    # Reporter
    user_id: uuid.UUID = Field(foreign_key="user_profiles.id", nullable=False, index=True)
    incident_code: str = Field(nullable=False, max_length=32)
    title: str = Field(nullable=False)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    incident_date: date = Field(sa_column=Column(Date, nullable=False))
    division: Optional[str] = Field(default=None)
    department: Optional[str] = Field(default=None)
    incident_type: Optional[str] = Field(default=None)
    severity: Optional[int] = Field(default=None, nullable=True)
    financial_impact: Optional[float] = Field(
        default=None,
        sa_column=Column(Numeric(18, 2, asdecimal=False), nullable=True),
    )
    status: IncidentStatus = Field(
        default=IncidentStatus.reported,
        sa_column=Column(
            SQLEnum(IncidentStatus, name="incident_status", values_callable=_enum_values),
            nullable=False,
            server_default=IncidentStatus.reported.value,
        ),
    )
    root_cause: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    corrective_actions: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class IncidentRiskLink(SQLModel, table=True):
    __tablename__ = "incident_risk_links"
    __table_args__ = (
        UniqueConstraint("incident_id", "risk_id", name="uq_incident_risk_links_pair"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    incident_id: uuid.UUID = Field(foreign_key="incidents.id", nullable=False, index=True, ondelete="CASCADE")
    risk_id: uuid.UUID = Field(foreign_key="risks.id", nullable=False, index=True, ondelete="CASCADE")
    link_type: str = Field(default="related", nullable=False, max_length=50)
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    linked_by: Optional[uuid.UUID] = Field(default=None, foreign_key="user_profiles.id", nullable=True)
    linked_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
