import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Text, UniqueConstraint
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from minrisk.models.risk import _enum_values


class ControlTarget(str, Enum):
    likelihood = "Likelihood"
    impact = "Impact"


DIME_FIELDS = ("design", "implementation", "monitoring", "effectiveness_evaluation")


class Control(SQLModel, table=True):
    """A mitigating control attached to a risk.

    ``organization_id`` is copied from the parent risk so the row-level
    policies can scope controls without a join.
    """

    __tablename__ = "controls"
    __table_args__ = (
        UniqueConstraint("organization_id", "control_code", name="uq_controls_org_code"),
        *(CheckConstraint(f"{name} BETWEEN 0 AND 3", name=f"ck_controls_{name}") for name in DIME_FIELDS),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    risk_id: uuid.UUID = Field(foreign_key="risks.id", nullable=False, index=True, ondelete="CASCADE")
    control_code: str = Field(nullable=False, max_length=32)
    description: str = Field(sa_column=Column(Text, nullable=False))
    target: ControlTarget = Field(
        sa_column=Column(
            SQLEnum(ControlTarget, name="control_target", values_callable=_enum_values),
            nullable=False,
        ),
    )
    design: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    implementation: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    monitoring: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    effectiveness_evaluation: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
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

    @property
    def dime_average(self) -> float:
        return sum(getattr(self, name) for name in DIME_FIELDS) / len(DIME_FIELDS)
