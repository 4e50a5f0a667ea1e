"""Key risk indicators: definitions, measurements and threshold alerts."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import uuid
from typing import Any, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import KRIMessages
from minrisk.models.kri import AlertStatus, KRIDataEntry, KRIDefinition, ThresholdDirection
from minrisk.models.user_profile import UserProfile
from minrisk.services import audit as audit_service
from minrisk.services import codes
from minrisk.services import risks as risks_service
from minrisk.services.errors import NotFoundError, ServiceError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import principal_for, require_editor

logger = logging.getLogger(__name__)

KRI_PREFIX = "KRI"
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "unit",
        "frequency",
        "lower_threshold",
        "upper_threshold",
        "threshold_direction",
        "linked_risk_id",
    }
)


def classify_value(
    value: float,
    *,
    lower: Optional[float],
    upper: Optional[float],
    direction: ThresholdDirection | str,
) -> AlertStatus:
    """Classify a measurement against a definition's thresholds.

    ``above``: strictly above ``upper`` is red, strictly above ``lower`` is yellow.
    ``below``: strictly below ``lower`` is red, strictly below ``upper`` is yellow.
    ``between``: outside ``[lower, upper]`` is red.
    A threshold left unset is skipped.
    """
    direction = ThresholdDirection(direction)
    if direction == ThresholdDirection.above:
        if upper is not None and value > upper:
            return AlertStatus.red
        if lower is not None and value > lower:
            return AlertStatus.yellow
    elif direction == ThresholdDirection.below:
        if lower is not None and value < lower:
            return AlertStatus.red
        if upper is not None and value < upper:
            return AlertStatus.yellow
    else:
        if (lower is not None and value < lower) or (upper is not None and value > upper):
            return AlertStatus.red
    return AlertStatus.green


def validate_thresholds(lower: Optional[float], upper: Optional[float]) -> None:
    if lower is not None and upper is not None and lower > upper:
        raise ServiceError(KRIMessages.INVALID_THRESHOLDS)


async def generate_next_kri_code(session: AsyncSession, organization_id: uuid.UUID) -> str:
    return await codes.next_code(session, KRIDefinition.kri_code, organization_id, KRI_PREFIX)


async def get_definition(session: AsyncSession, kri_id: uuid.UUID) -> KRIDefinition:
    result = await session.exec(select(KRIDefinition).where(KRIDefinition.id == kri_id))
    definition = result.one_or_none()
    if definition is None:
        raise NotFoundError(KRIMessages.NOT_FOUND)
    return definition


async def list_definitions(session: AsyncSession, *, linked_risk_id: uuid.UUID | None = None) -> list[KRIDefinition]:
    stmt = select(KRIDefinition)
    if linked_risk_id is not None:
        stmt = stmt.where(KRIDefinition.linked_risk_id == linked_risk_id)
    result = await session.exec(stmt.order_by(KRIDefinition.kri_code))
    return list(result.all())


async def create_definition(
    session: AsyncSession,
    *,
    actor: UserProfile,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> KRIDefinition:
    require_editor(actor)
    values = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    validate_thresholds(values.get("lower_threshold"), values.get("upper_threshold"))
    if values.get("linked_risk_id") is not None:
        await risks_service.get_risk(session, values["linked_risk_id"])
    kri_code = (data.get("kri_code") or "").strip().upper()
    definition = KRIDefinition(
        organization_id=actor.organization_id,
        kri_code=kri_code,
        created_by=actor.id,
        **values,
    )
    authorize(principal_for(actor), "kri_definitions", Operation.insert, definition)
    await codes.insert_with_code(
        session,
        definition,
        "kri_code",
        generate=None if kri_code else lambda: generate_next_kri_code(session, actor.organization_id),
        conflict_detail=KRIMessages.CODE_EXISTS,
    )
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="create",
        entity_type="kri",
        entity_id=definition.id,
        entity_code=definition.kri_code,
        new_values=audit_service.snapshot(definition, sorted(EDITABLE_FIELDS)),
        meta=meta,
    )
    return definition


async def update_definition(
    session: AsyncSession,
    *,
    actor: UserProfile,
    kri_id: uuid.UUID,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> KRIDefinition:
    require_editor(actor)
    definition = await get_definition(session, kri_id)
    changes = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    if not changes:
        return definition
    validate_thresholds(
        changes.get("lower_threshold", definition.lower_threshold),
        changes.get("upper_threshold", definition.upper_threshold),
    )
    if changes.get("linked_risk_id") is not None:
        await risks_service.get_risk(session, changes["linked_risk_id"])
    authorize(
        principal_for(actor),
        "kri_definitions",
        Operation.update,
        definition,
        with_changes(definition, changes),
    )
    before = audit_service.snapshot(definition, changes.keys())
    for field, value in changes.items():
        setattr(definition, field, value)
    definition.updated_at = datetime.now(timezone.utc)
    session.add(definition)
    await session.flush()
    old_values, new_values = audit_service.diff(before, audit_service.snapshot(definition, changes.keys()))
    if new_values:
        await audit_service.record_event(
            session,
            actor=actor,
            action_type="update",
            entity_type="kri",
            entity_id=definition.id,
            entity_code=definition.kri_code,
            old_values=old_values,
            new_values=new_values,
            meta=meta,
        )
    return definition


async def delete_definition(
    session: AsyncSession,
    *,
    actor: UserProfile,
    kri_id: uuid.UUID,
    meta: audit_service.RequestMeta | None = None,
) -> None:
    require_editor(actor)
    definition = await get_definition(session, kri_id)
    authorize(principal_for(actor), "kri_definitions", Operation.delete, definition)
    code = definition.kri_code
    await session.delete(definition)
    await session.flush()
    await audit_service.record_event(
        session,
        actor=actor,
        action_type="delete",
        entity_type="kri",
        entity_id=kri_id,
        entity_code=code,
        meta=meta,
    )


async def list_entries(session: AsyncSession, kri_id: uuid.UUID) -> list[KRIDataEntry]:
    await get_definition(session, kri_id)
    result = await session.exec(
        select(KRIDataEntry)
        .where(KRIDataEntry.kri_id == kri_id)
        .order_by(KRIDataEntry.measurement_date.desc())
    )
    return list(result.all())


async def record_entry(
    session: AsyncSession,
    *,
    actor: UserProfile,
    kri_id: uuid.UUID,
    data: dict[str, Any],
    meta: audit_service.RequestMeta | None = None,
) -> KRIDataEntry:
    """Store a measurement, classified against the definition's current thresholds."""
    require_editor(actor)
    definition = await get_definition(session, kri_id)
    value = data["value"]
    entry = KRIDataEntry(
        organization_id=definition.organization_id,
        kri_id=definition.id,
        value=value,
        measurement_date=data["measurement_date"],
        notes=data.get("notes"),
        entered_by=actor.id,
        alert_status=classify_value(
            value,
            lower=definition.lower_threshold,
            upper=definition.upper_threshold,
            direction=definition.threshold_direction,
        ),
    )
    authorize(principal_for(actor), "kri_data_entries", Operation.insert, entry)
    session.add(entry)
    await session.flush()
    if entry.alert_status != AlertStatus.green:
        logger.info("KRI %s breached: %s is %s", definition.kri_code, value, entry.alert_status.value)
        await audit_service.record_event(
            session,
            actor=actor,
            action_type="kri_alert",
            entity_type="kri",
            entity_id=definition.id,
            entity_code=definition.kri_code,
            new_values={"value": value, "alert_status": entry.alert_status.value},
            meta=meta,
        )
    return entry


async def delete_entry(
    session: AsyncSession,
    *,
    actor: UserProfile,
    entry_id: uuid.UUID,
) -> None:
    require_editor(actor)
    result = await session.exec(select(KRIDataEntry).where(KRIDataEntry.id == entry_id))
    entry = result.one_or_none()
    if entry is None:
        raise NotFoundError(KRIMessages.ENTRY_NOT_FOUND)
    authorize(principal_for(actor), "kri_data_entries", Operation.delete, entry)
    await session.delete(entry)
    await session.flush()
