from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any, Mapping

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.messages import SettingsMessages
from minrisk.models.app_config import AppConfig
from minrisk.models.user_profile import UserProfile
from minrisk.services.errors import ServiceError
from minrisk.services.policies import Operation, authorize, with_changes
from minrisk.services.rls import principal_for

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {"matrix_size", "likelihood_labels", "impact_labels", "divisions", "departments", "categories"}
)


def labels_fit(config: Mapping[str, Any]) -> bool:
    """Both axes need one label per matrix step."""
    size = config["matrix_size"]
    return len(config["likelihood_labels"]) == size and len(config["impact_labels"]) == size


def default_config(user: UserProfile) -> AppConfig:
    """An unsaved configuration holding the defaults."""
    return AppConfig(user_id=user.id, organization_id=user.organization_id)


async def get_config(session: AsyncSession, user: UserProfile) -> AppConfig | None:
    result = await session.exec(select(AppConfig).where(AppConfig.user_id == user.id))
    return result.one_or_none()


async def get_or_create(session: AsyncSession, user: UserProfile) -> AppConfig:
    config = await get_config(session, user)
    if config is not None:
        return config
    config = default_config(user)
    authorize(principal_for(user), "app_configs", Operation.insert, config)
    session.add(config)
    await session.flush()
    logger.debug("Created default app config for %s", user.id)
    return config


async def update_config(session: AsyncSession, user: UserProfile, data: dict[str, Any]) -> AppConfig:
    config = await get_or_create(session, user)
    changes = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
    if not changes:
        return config
    authorize(principal_for(user), "app_configs", Operation.update, config, with_changes(config, changes))
    merged = with_changes(config, changes)
    if not labels_fit(merged):
        raise ServiceError(SettingsMessages.LABELS_MISMATCH)
    for field, value in changes.items():
        setattr(config, field, list(value) if isinstance(value, (list, tuple)) else value)
    config.updated_at = datetime.now(timezone.utc)
    session.add(config)
    await session.flush()
    return config
