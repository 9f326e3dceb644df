import asyncio
from types import SimpleNamespace

import pytest

from autoql.utils import get_context_lock, get_db_session, selected_names


def test_get_db_session_from_dict_and_object():
    session = object()
    assert get_db_session({'db': session}) is session
    assert get_db_session(SimpleNamespace(context={'async_session': session})) is session
    assert get_db_session(SimpleNamespace(context=SimpleNamespace(session=session))) is session
    assert get_db_session({}) is None
    assert get_db_session(None) is None


def test_context_lock_is_shared_per_request():
    ctx = {}
    lock = get_context_lock(SimpleNamespace(context=ctx))
    assert isinstance(lock, asyncio.Lock)
    assert get_context_lock(ctx) is lock
    assert get_context_lock({}) is not lock


def test_context_lock_needs_a_context_that_can_hold_it():
    with pytest.raises(TypeError):
        get_context_lock(SimpleNamespace(context=object()))


def test_selected_names_maps_back_to_attributes():
    leaf = SimpleNamespace(name='totalCount', selections=[])
    plain = SimpleNamespace(name='total_count', selections=[])
    info = SimpleNamespace(selected_fields=[SimpleNamespace(name='ThingSet', selections=[leaf, plain])])
    assert selected_names(info) == {'total_count'}
