"""Import all models for Alembic or metadata creation."""

from minrisk.models.organization import Organization
from minrisk.models.user_profile import UserProfile
from minrisk.models.app_config import AppConfig
from minrisk.models.risk import Risk, RiskOwnerHistory
from minrisk.models.control import Control
from minrisk.models.incident import Incident, IncidentRiskLink
from minrisk.models.kri import KRIDataEntry, KRIDefinition
from minrisk.models.invitation import UserInvitation
from minrisk.models.audit import AuditEntry

__all__ = [
    "Organization",
    "UserProfile",
    "AppConfig",
    "Risk",
    "RiskOwnerHistory",
    "Control",
    "Incident",
    "IncidentRiskLink",
    "KRIDefinition",
    "KRIDataEntry",
    "UserInvitation",
    "AuditEntry",
]
