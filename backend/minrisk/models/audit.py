import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


class AuditEntry(SQLModel, table=True):
    """Append-only record of a mutation. There are no UPDATE or DELETE policies."""

    __tablename__ = "audit_trail"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="user_profiles.id", nullable=True, index=True, ondelete="SET NULL"
    )
    action_type: str = Field(nullable=False, index=True, max_length=50)
    entity_type: str = Field(nullable=False, index=True, max_length=50)
    entity_id: Optional[uuid.UUID] = Field(default=None, nullable=True)
    entity_code: Optional[str] = Field(default=None, nullable=True, index=True)
    old_values: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSONB, nullable=True))
    new_values: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSONB, nullable=True))
    metadata_: Optional[dict[str, Any]] = Field(
        default=None,
        sa_column=Column("metadata", JSONB, nullable=True),
    )
    ip_address: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None)
    performed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
