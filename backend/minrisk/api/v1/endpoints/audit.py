from typing import List, Optional
import uuid

from fastapi import APIRouter, Query

from minrisk.api.deps import CurrentUser, UserSessionDep
from minrisk.models.audit import AuditEntry
from minrisk.schemas.audit import AuditEntryRead
from minrisk.services import audit as audit_service

router = APIRouter()


@router.get("/", response_model=List[AuditEntryRead])
async def list_audit_entries(
    session: UserSessionDep,
    current_user: CurrentUser,
    entity_type: Optional[str] = None,
    entity_id: Optional[uuid.UUID] = None,
    action_type: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None,
    organization_id: Optional[uuid.UUID] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> List[AuditEntry]:
    """The caller's organization trail; super admins may read any organization's."""
    return await audit_service.list_events(
        session,
        organization_id=organization_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=action_type,
        user_id=user_id,
        limit=limit,
        offset=offset,
    )
