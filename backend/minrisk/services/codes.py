"""Human-readable record codes (``FIN-OPE-003``, ``CTRL-012``, ``INC-2026-004``).

Codes are sequential per organization and prefix. The next number is the
highest existing suffix plus one, so gaps left by deletions are not reused.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Awaitable, Callable, Iterable

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.services.errors import ConflictError

logger = logging.getLogger(__name__)

SEQUENCE_WIDTH = 3
GENERATION_ATTEMPTS = 3
_SUFFIX = re.compile(r"^(\d+)$")


def abbreviate(value: str, length: int = 3) -> str:
    """First ``length`` non-space characters, upper-cased: ``"Finance"`` -> ``"FIN"``, ``"IT Ops"`` -> ``"ITO"``."""
    return "".join(value.split())[:length].upper()


def risk_code_prefix(division: str, category: str) -> str:
    return f"{abbreviate(division)}-{abbreviate(category)}"


def format_code(prefix: str, number: int) -> str:
    return f"{prefix}-{number:0{SEQUENCE_WIDTH}d}"


def next_number(codes: Iterable[str], prefix: str) -> int:
    """One past the highest numeric suffix among ``codes`` that start with ``prefix-``."""
    head = f"{prefix}-"
    highest = 0
    for code in codes:
        if not code or not code.startswith(head):
            continue
        match = _SUFFIX.match(code[len(head):])
        if match:
            highest = max(highest, int(match.group(1)))
    return highest + 1


async def next_code(session: AsyncSession, column: Any, organization_id: Any, prefix: str) -> str:
    """
    Next free code for ``prefix`` among the rows of ``column``'s table in one organization.

    Takes a transaction-scoped advisory lock on the organization and prefix
    first, so concurrent writers drawing from the same sequence queue up
    until the holder commits and then read its code.
    """
    table = column.class_
    key = f"{table.__tablename__}:{organization_id}:{prefix}"
    await session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
    result = await session.exec(
        select(column).where(
            table.organization_id == organization_id,
            column.like(f"{prefix}-%"),
        )
    )
    return format_code(prefix, next_number(result.all(), prefix))


async def insert_with_code(
    session: AsyncSession,
    row: Any,
    field: str,
    *,
    generate: Callable[[], Awaitable[str]] | None,
    conflict_detail: str,
) -> None:
    """
    Insert ``row`` inside a savepoint.

    Without ``generate`` the code on ``row`` was chosen by the caller and a
    unique violation is a conflict. With it, the code is drawn here and drawn
    again when another writer claimed it first.
    """
    attempts = GENERATION_ATTEMPTS if generate is not None else 1
    for attempt in range(1, attempts + 1):
        if generate is not None:
            setattr(row, field, await generate())
        try:
            async with session.begin_nested():
                session.add(row)
                await session.flush()
            return
        except IntegrityError as exc:
            if attempt == attempts:
                raise ConflictError(conflict_detail) from exc
            logger.warning("Code %s already taken, drawing another", getattr(row, field))
