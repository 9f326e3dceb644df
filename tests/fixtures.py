"""Database fixtures for AutoQL tests (shared)."""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Thing, OtherThing, Gadget, GadgetKind

BASE_DATE = datetime(2024, 1, 1, 12, 0, 0)


async def create_sample_things(session: AsyncSession):
    """Create and commit the two sample things used across tests and demos."""
    things = [
        Thing(name="Thing 1", description="Description 1", count=1),
        Thing(name="Thing 2", description="Description 2", count=2),
    ]
    session.add_all(things)
    await session.flush()
    await session.commit()
    return things


@pytest.fixture(scope="function")
async def sample_things(db_session: AsyncSession):
    return await create_sample_things(db_session)


async def create_sample_other_things(session: AsyncSession, things):
    """Three other things: two for the first thing, one for the second."""
    thing1, thing2 = things
    others = [
        OtherThing(creation_date=BASE_DATE, thing_id=thing1.id),
        OtherThing(creation_date=BASE_DATE + timedelta(days=1), thing_id=thing1.id),
        OtherThing(creation_date=BASE_DATE + timedelta(days=2), thing_id=thing2.id),
    ]
    session.add_all(others)
    await session.flush()
    await session.commit()
    return others


@pytest.fixture(scope="function")
async def sample_other_things(db_session: AsyncSession, sample_things):
    return await create_sample_other_things(db_session, sample_things)


async def create_sample_gadgets(session: AsyncSession):
    gadgets = [
        Gadget(label="Hammer", kind=GadgetKind.TOOL, price=Decimal("9.99"), extra={"weight": 2}),
        Gadget(label="Yo-yo", kind=GadgetKind.TOY, price=None, extra=None, made_at=BASE_DATE),
    ]
    session.add_all(gadgets)
    await session.flush()
    await session.commit()
    return gadgets


async def seed_populated_db(session: AsyncSession):
    """Seed things, other things and gadgets and return them keyed by table."""
    things = await create_sample_things(session)
    others = await create_sample_other_things(session, things)
    gadgets = await create_sample_gadgets(session)
    return {
        'things': things,
        'other_things': others,
        'gadgets': gadgets,
    }


@pytest.fixture(scope="function")
async def populated_db(db_session: AsyncSession):
    return await seed_populated_db(db_session)
