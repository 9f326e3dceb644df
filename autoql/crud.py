"""Generic implementations behind every synthesized operation.

Each function takes the entity class first, so one implementation serves every
entity. Queries return un-executed ``Select`` statements; the serving layer
applies filtering, sorting, paging and projection before executing them.
Mutations run one-shot against the caller's ``AsyncSession``.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence

from sqlalchemy import func, inspect as sa_inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from .errors import AmbiguousResultError, EntityNotFoundError, IdentifierMismatchError
from .merge import apply_field_changes, copy_shared_fields
from .optional import Absent, Present

_logger = logging.getLogger("autoql")


def identifier_column(entity: type) -> Any:
    """Instrumented attribute of ``entity``'s single primary key."""
    mapper = sa_inspect(entity)
    prop = mapper.get_property_by_column(mapper.primary_key[0])
    return getattr(entity, prop.key)


def collection(entity: type, session: Optional[AsyncSession] = None) -> Select:
    return select(entity)


def where_id(entity: type, id: Any, session: Optional[AsyncSession] = None) -> Select:  # noqa: A002
    return select(entity).where(identifier_column(entity) == id)


async def single_or_default(session: AsyncSession, stmt: Select, entity: type, id: Any) -> Any:  # noqa: A002
    """Execute ``stmt``; return its only row, ``None`` for no rows.

    Raises:
        AmbiguousResultError: more than one row matched.
    """
    async with _rollback_on_cancel(session):
        rows: Sequence[Any] = (await session.execute(stmt.limit(2))).scalars().all()
    if len(rows) > 1:
        raise AmbiguousResultError(entity, id, len(rows))
    return rows[0] if rows else None


async def add(entity: type, new: Any, session: AsyncSession) -> Any:
    """Create a default-initialised ``entity``, copy ``new`` onto it and commit."""
    instance = entity()
    copy_shared_fields(new, instance)
    async with _rollback_on_cancel(session):
        session.add(instance)
        await session.commit()
        await session.refresh(instance)
    _logger.debug("autoql.crud: added %s id=%r", entity.__name__, identifier_value(instance))
    return instance


async def update(entity: type, id: Any, update: Any, session: AsyncSession) -> Any:  # noqa: A002
    """Load the entity with identifier ``id``, merge ``update`` into it and commit.

    Raises:
        IdentifierMismatchError: the payload carries a different identifier.
        EntityNotFoundError: nothing matches ``id``.
        AmbiguousResultError: more than one row matches ``id``.
        NullAssignmentError: explicit null for a non-nullable field.
    """
    ident = identifier_column(entity)
    supplied = getattr(update, ident.key, None)
    if isinstance(supplied, Present):
        supplied = supplied.value
    if supplied is not None and not isinstance(supplied, Absent) and supplied != id:
        raise IdentifierMismatchError(id, supplied)
    async with _rollback_on_cancel(session):
        rows = (await session.execute(where_id(entity, id))).scalars().all()
        if not rows:
            raise EntityNotFoundError(entity, id)
        if len(rows) > 1:
            raise AmbiguousResultError(entity, id, len(rows))
        instance = rows[0]
        apply_field_changes(update, instance)
        await session.commit()
        await session.refresh(instance)
    _logger.debug("autoql.crud: updated %s id=%r", entity.__name__, id)
    return instance


async def fetch_all(session: AsyncSession, stmt: Select) -> List[Any]:
    async with _rollback_on_cancel(session):
        return list((await session.execute(stmt)).scalars().all())


async def count_rows(session: AsyncSession, stmt: Select) -> int:
    """Row count of ``stmt`` ignoring its ordering and paging."""
    counted = select(func.count()).select_from(stmt.order_by(None).limit(None).offset(None).subquery())
    async with _rollback_on_cancel(session):
        return int((await session.execute(counted)).scalar_one())


async def load_attribute(session: AsyncSession, instance: Any, name: str) -> None:
    """Load a not-yet-loaded attribute (typically a relationship) of ``instance``."""
    async with _rollback_on_cancel(session):
        await session.refresh(instance, [name])


def identifier_value(instance: Any) -> Any:
    return getattr(instance, identifier_column(type(instance)).key, None)


@asynccontextmanager
async def _rollback_on_cancel(session: AsyncSession) -> AsyncIterator[None]:
    try:
        yield
    except asyncio.CancelledError:
        _logger.info("autoql.crud: cancelled, rolling back")
        await session.rollback()
        raise


__all__ = [
    'identifier_column', 'identifier_value', 'collection', 'where_id',
    'single_or_default', 'fetch_all', 'count_rows', 'load_attribute', 'add', 'update',
]
