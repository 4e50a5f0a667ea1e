"""Engines, sessions and the per-transaction row-level-security identity.

Two engines exist. ``engine`` connects as the non-superuser ``app_user`` role,
so every statement it runs is filtered by the RLS policies. ``admin_engine``
connects as ``app_admin`` (BYPASSRLS) and is reserved for flows that run before
an identity exists (signup, login, invitation redemption) or that are
platform-wide by nature (super admin organization management).

Policies read the caller's identity from the transaction-local setting
``app.current_user_id``. Because ``set_config(..., true)`` only lasts until the
end of the transaction, code that commits and keeps using the session must call
``reapply_rls_context``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.config import settings
from minrisk.db import base  # noqa: F401  # ensure models are imported for metadata

logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parents[2]

RLS_CONTEXT_KEY = "rls_context"
CURRENT_USER_SETTING = "app.current_user_id"

engine = create_async_engine(settings.app_database_url, echo=False, future=True, pool_pre_ping=True)
admin_engine = create_async_engine(settings.admin_database_url, echo=False, future=True, pool_pre_ping=True)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)

AdminSessionLocal = sessionmaker(
    bind=admin_engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def get_admin_session() -> AsyncGenerator[AsyncSession, None]:
    async with AdminSessionLocal() as session:
        yield session


async def _apply_rls_setting(session: AsyncSession, user_id: uuid.UUID | None) -> None:
    # An empty string reads back as NULL through NULLIF in current_profile_id().
    value = str(user_id) if user_id is not None else ""
    await session.execute(
        text("SELECT set_config(:name, :value, true)"),
        {"name": CURRENT_USER_SETTING, "value": value},
    )


async def set_rls_context(session: AsyncSession, *, user_id: uuid.UUID | None) -> None:
    """Bind the acting profile to the session's current transaction.

    The organization and role are not passed in: the database derives them
    from ``user_profiles`` so a caller cannot claim another tenant.
    """
    session.info[RLS_CONTEXT_KEY] = {"user_id": user_id}
    await _apply_rls_setting(session, user_id)


async def reapply_rls_context(session: AsyncSession) -> None:
    """Re-issue the identity after a commit started a new transaction."""
    context = session.info.get(RLS_CONTEXT_KEY)
    if not context:
        return
    await _apply_rls_setting(session, context.get("user_id"))


async def clear_rls_context(session: AsyncSession) -> None:
    session.info.pop(RLS_CONTEXT_KEY, None)
    await _apply_rls_setting(session, None)


async def commit_and_reapply(session: AsyncSession) -> None:
    await session.commit()
    await reapply_rls_context(session)


def _get_alembic_config():
    from alembic.config import Config

    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    config.attributes["url_configured"] = True
    config.attributes["configure_logger"] = False
    return config


def _upgrade_head() -> None:
    from alembic import command

    command.upgrade(_get_alembic_config(), "head")


async def run_migrations() -> None:
    """Upgrade the schema to head. Alembic's env runs its own event loop, so use a thread."""
    logger.info("Running database migrations")
    await asyncio.to_thread(_upgrade_head)
    logger.info("Database migrations complete")
