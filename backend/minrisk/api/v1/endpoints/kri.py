from typing import List, Optional
import uuid

from fastapi import APIRouter, status

from minrisk.api.deps import CurrentUser, RequestMetaDep, UserSessionDep
from minrisk.models.kri import KRIDataEntry, KRIDefinition
from minrisk.schemas.kri import (
    KRIDataEntryCreate,
    KRIDataEntryRead,
    KRIDefinitionCreate,
    KRIDefinitionRead,
    KRIDefinitionUpdate,
)
from minrisk.services import kri as kri_service

router = APIRouter()


@router.get("/", response_model=List[KRIDefinitionRead])
async def list_definitions(
    session: UserSessionDep,
    current_user: CurrentUser,
    linked_risk_id: Optional[uuid.UUID] = None,
) -> List[KRIDefinition]:
    return await kri_service.list_definitions(session, linked_risk_id=linked_risk_id)


@router.post("/", response_model=KRIDefinitionRead, status_code=status.HTTP_201_CREATED)
async def create_definition(
    kri_in: KRIDefinitionCreate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> KRIDefinition:
    definition = await kri_service.create_definition(
        session, actor=current_user, data=kri_in.model_dump(exclude_unset=True), meta=meta
    )
    await session.commit()
    return definition


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(entry_id: uuid.UUID, session: UserSessionDep, current_user: CurrentUser) -> None:
    await kri_service.delete_entry(session, actor=current_user, entry_id=entry_id)
    await session.commit()


@router.get("/{kri_id}", response_model=KRIDefinitionRead)
async def read_definition(kri_id: uuid.UUID, session: UserSessionDep, current_user: CurrentUser) -> KRIDefinition:
    return await kri_service.get_definition(session, kri_id)


@router.patch("/{kri_id}", response_model=KRIDefinitionRead)
async def update_definition(
    kri_id: uuid.UUID,
    kri_in: KRIDefinitionUpdate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> KRIDefinition:
    definition = await kri_service.update_definition(
        session,
        actor=current_user,
        kri_id=kri_id,
        data=kri_in.model_dump(exclude_unset=True),
        meta=meta,
    )
    await session.commit()
    return definition


@router.delete("/{kri_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_definition(
    kri_id: uuid.UUID,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> None:
    await kri_service.delete_definition(session, actor=current_user, kri_id=kri_id, meta=meta)
    await session.commit()


@router.get("/{kri_id}/entries", response_model=List[KRIDataEntryRead])
async def list_entries(kri_id: uuid.UUID, session: UserSessionDep, current_user: CurrentUser) -> List[KRIDataEntry]:
    return await kri_service.list_entries(session, kri_id)


@router.post("/{kri_id}/entries", response_model=KRIDataEntryRead, status_code=status.HTTP_201_CREATED)
async def record_entry(
    kri_id: uuid.UUID,
    entry_in: KRIDataEntryCreate,
    session: UserSessionDep,
    current_user: CurrentUser,
    meta: RequestMetaDep,
) -> KRIDataEntry:
    entry = await kri_service.record_entry(
        session, actor=current_user, kri_id=kri_id, data=entry_in.model_dump(), meta=meta
    )
    await session.commit()
    return entry
