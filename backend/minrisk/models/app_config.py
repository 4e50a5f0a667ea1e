import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

DEFAULT_MATRIX_SIZE = 5
DEFAULT_LIKELIHOOD_LABELS = ["Rare", "Unlikely", "Possible", "Likely", "Almost certain"]
DEFAULT_IMPACT_LABELS = ["Minimal", "Low", "Moderate", "High", "Severe"]
DEFAULT_DIVISIONS = ["Clearing", "Operations", "Finance"]
DEFAULT_DEPARTMENTS = ["Risk Management", "IT Ops", "Quant/Risk", "Treasury", "Trading"]
DEFAULT_CATEGORIES = [
    "Strategic",
    "Credit",
    "Market",
    "Liquidity",
    "Operational",
    "Legal/Compliance",
    "Technology",
    "ESG",
    "Reputational",
]


class AppConfig(SQLModel, table=True):
    """Per-user risk matrix configuration. Rows are private to their owner."""

    __tablename__ = "app_configs"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_app_configs_user_id"),
        CheckConstraint("matrix_size IN (5, 6)", name="ck_app_configs_matrix_size"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="user_profiles.id", nullable=False)
    matrix_size: int = Field(
        default=DEFAULT_MATRIX_SIZE,
        sa_column=Column(Integer, nullable=False, server_default=str(DEFAULT_MATRIX_SIZE)),
    )
    likelihood_labels: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LIKELIHOOD_LABELS),
        sa_column=Column(JSONB, nullable=False),
    )
    impact_labels: List[str] = Field(
        default_factory=lambda: list(DEFAULT_IMPACT_LABELS),
        sa_column=Column(JSONB, nullable=False),
    )
    divisions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_DIVISIONS),
        sa_column=Column(JSONB, nullable=False),
    )
    departments: List[str] = Field(
        default_factory=lambda: list(DEFAULT_DEPARTMENTS),
        sa_column=Column(JSONB, nullable=False),
    )
    categories: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORIES),
        sa_column=Column(JSONB, nullable=False),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
