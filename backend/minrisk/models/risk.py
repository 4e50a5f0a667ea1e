import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, Text, UniqueConstraint
from sqlmodel import Enum as SQLEnum, Field, SQLModel


class RiskStatus(str, Enum):
    open = "Open"
    in_progress = "In Progress"
    closed = "Closed"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Risk(SQLModel, table=True):
    __tablename__ = "risks"
    __table_args__ = (
        UniqueConstraint("organization_id", "risk_code", name="uq_risks_org_code"),
        CheckConstraint("likelihood_inherent BETWEEN 1 AND 6", name="ck_risks_likelihood_inherent"),
        CheckConstraint("impact_inherent BETWEEN 1 AND 6", name="ck_risks_impact_inherent"),
        CheckConstraint(
            "residual_likelihood IS NULL OR residual_likelihood BETWEEN 1 AND 6",
            name="ck_risks_residual_likelihood",
        ),
        CheckConstraint(
            "residual_impact IS NULL OR residual_impact BETWEEN 1 AND 6",
            name="ck_risks_residual_impact",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    # Creator. Ownership policies key on this column.
    user_id: uuid.UUID = Field(foreign_key="user_profiles.id", nullable=False, index=True)
    # Accountable owner, transferable.
    owner_id: Optional[uuid.UUID] = Field(default=None, foreign_key="user_profiles.id", nullable=True)
    risk_code: str = Field(nullable=False, max_length=32)
    risk_title: str = Field(nullable=False)
    risk_description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    division: str = Field(nullable=False)
    department: str = Field(nullable=False)
    category: str = Field(nullable=False)
    owner: str = Field(nullable=False)
    likelihood_inherent: int = Field(sa_column=Column(Integer, nullable=False))
    impact_inherent: int = Field(sa_column=Column(Integer, nullable=False))
    residual_likelihood: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    residual_impact: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    status: RiskStatus = Field(
        default=RiskStatus.open,
        sa_column=Column(
            SQLEnum(RiskStatus, name="risk_status", values_callable=_enum_values),
            nullable=False,
            server_default=RiskStatus.open.value,
        ),
    )
    is_priority: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default="false"),
    )
    linked_incident_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    last_incident_date: Optional[datetime] = Field(
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
    def inherent_score(self) -> int:
        return self.likelihood_inherent * self.impact_inherent

    @property
    def residual_score(self) -> Optional[int]:
        if self.residual_likelihood is None or self.residual_impact is None:
            return None
        return self.residual_likelihood * self.residual_impact


class RiskOwnerHistory(SQLModel, table=True):
    __tablename__ = "risk_owner_history"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    risk_id: uuid.UUID = Field(foreign_key="risks.id", nullable=False, index=True, ondelete="CASCADE")
    risk_code: str = Field(nullable=False)
    previous_owner_id: Optional[uuid.UUID] = Field(default=None, nullable=True)
    new_owner_id: Optional[uuid.UUID] = Field(default=None, nullable=True)
    transferred_by: uuid.UUID = Field(nullable=False)
    reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    transferred_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
