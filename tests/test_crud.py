import asyncio

import pytest
from sqlalchemy import inspect as sa_inspect, select

from autoql import AmbiguousResultError, EntityNotFoundError, IdentifierMismatchError, NullAssignmentError, Present
from autoql import crud
from autoql.introspection import identifier_field
from autoql.shapes import synthesize_update_shape
from tests.models import EntityBase, OtherThing, Thing


def _update_payload(**values):
    return synthesize_update_shape(Thing, identifier_field(EntityBase)).build(**values)


class CancellingSession:
    """Stands in for an AsyncSession whose statement gets cancelled mid-flight."""

    def __init__(self):
        self.rolled_back = False

    async def execute(self, stmt):
        raise asyncio.CancelledError()

    async def rollback(self):
        self.rolled_back = True


async def test_where_id_and_single_or_default(db_session, sample_things):
    thing = await crud.single_or_default(db_session, crud.where_id(Thing, sample_things[0].id), Thing, 1)
    assert thing.name == 'Thing 1'
    missing = await crud.single_or_default(db_session, crud.where_id(Thing, 999), Thing, 999)
    assert missing is None


async def test_single_or_default_rejects_many_rows(db_session, sample_things):
    with pytest.raises(AmbiguousResultError) as exc:
        await crud.single_or_default(db_session, crud.collection(Thing), Thing, None)
    assert exc.value.count == 2


async def test_count_rows_ignores_paging(db_session, sample_things):
    stmt = crud.collection(Thing).order_by(Thing.name).limit(1).offset(1)
    assert await crud.count_rows(db_session, stmt) == 2


async def test_update_unknown_identifier(db_session, sample_things):
    with pytest.raises(EntityNotFoundError) as exc:
        await crud.update(Thing, 999, _update_payload(id=999, name=Present('x')), db_session)
    assert exc.value.code == 'NOT_FOUND'


async def test_update_identifier_mismatch(db_session, sample_things):
    target = sample_things[0].id
    with pytest.raises(IdentifierMismatchError):
        await crud.update(Thing, target, _update_payload(id=target + 1, name=Present('x')), db_session)


async def test_update_null_for_required_field_leaves_row_intact(db_session, sample_things):
    target = sample_things[0].id
    with pytest.raises(NullAssignmentError):
        await crud.update(Thing, target, _update_payload(id=target, name=Present(None)), db_session)
    await db_session.rollback()
    row = (await db_session.execute(select(Thing).where(Thing.id == target))).scalar_one()
    assert row.name == 'Thing 1'


async def test_update_partial(db_session, sample_things):
    target = sample_things[1].id
    thing = await crud.update(Thing, target, _update_payload(id=target, description=Present(None)), db_session)
    assert thing.description is None
    assert thing.name == 'Thing 2'
    assert thing.count == 2


async def test_load_attribute_fetches_relationship(db_session, sample_other_things):
    db_session.expire_all()
    thing = (await db_session.execute(select(Thing).where(Thing.name == 'Thing 1'))).scalar_one()
    assert 'other_things' in sa_inspect(thing).unloaded
    await crud.load_attribute(db_session, thing, 'other_things')
    assert len(thing.other_things) == 2
    assert all(isinstance(o, OtherThing) for o in thing.other_things)


async def test_cancellation_rolls_back():
    session = CancellingSession()
    with pytest.raises(asyncio.CancelledError):
        await crud.fetch_all(session, crud.collection(Thing))
    assert session.rolled_back is True


def test_identifier_helpers():
    assert crud.identifier_column(Thing).key == 'id'
    assert crud.identifier_value(Thing(id=5)) == 5
