"""Alembic environment for the MinRisk schema.

Tables come from the SQLModel metadata. Row-level security (roles, helper
functions, policies, triggers) is not visible to autogenerate and lives in
hand-written revisions.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from logging.config import fileConfig
from pathlib import Path
import re
import sys

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from sqlmodel import SQLModel

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from minrisk.core.config import settings  # noqa: E402
from minrisk.db import base  # noqa: F401,E402  # register every table on the metadata

config = context.config

if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)

# run_migrations() and the test suite configure the URL themselves.
if not config.attributes.get("url_configured"):
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

target_metadata = SQLModel.metadata

REVISION_FILE = re.compile(r"^(?P<date>\d{8})_(?P<seq>\d{4})_")


def _process_revision_directives(context, revision, directives):
    """Name new revisions YYYYMMDD_NNNN, numbering within the day."""
    if not directives:
        return
    date_prefix = datetime.now(timezone.utc).strftime("%Y%m%d")

    versions_dir = Path(__file__).parent / "versions"
    seqs = [
        int(match.group("seq"))
        for match in (REVISION_FILE.match(path.name) for path in versions_dir.glob("*.py"))
        if match and match.group("date") == date_prefix
    ]
    directives[0].rev_id = f"{date_prefix}_{max(seqs, default=0) + 1:04d}"


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        process_revision_directives=_process_revision_directives,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    # One transaction per revision so enum types created earlier are usable later.
    _configure(connection=connection, transaction_per_migration=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
