import dataclasses
from typing import Optional

import pytest

from autoql import ABSENT, AutoQLSettings, Maybe, NameCollisionError, Present
from autoql.introspection import identifier_field
from autoql.shapes import CREATE, UPDATE, synthesize_create_shape, synthesize_shapes, synthesize_update_shape
from tests.models import EntityBase, OtherThing, Thing


def test_create_shape_mirrors_mutable_fields():
    shape = synthesize_create_shape(Thing)
    assert shape.name == 'AddThingInput'
    assert shape.kind == CREATE
    assert [f.name for f in shape.fields] == ['name', 'description', 'count']
    assert shape.field('description').annotation == Optional[str]
    assert shape.field('name').annotation is str
    assert shape.identifier is None
    assert shape.meta['description'] == 'Things exposed through the API'


def test_create_shape_requires_every_field():
    shape = synthesize_create_shape(Thing)
    with pytest.raises(TypeError):
        shape.build(name='x')
    payload = shape.build(name='x', description=None, count=0)
    assert dataclasses.asdict(payload) == {'name': 'x', 'description': None, 'count': 0}


def test_update_shape_wraps_value_fields():
    shape = synthesize_update_shape(Thing, identifier_field(EntityBase))
    assert shape.name == 'UpdateThingInput'
    assert shape.kind == UPDATE
    assert shape.fields[0].name == 'id' and shape.fields[0].identifier
    assert shape.fields[0].annotation is int
    assert [f.name for f in shape.value_fields] == ['name', 'description', 'count']
    assert all(f.wrapped for f in shape.value_fields)
    assert shape.field('description').annotation == Maybe[Optional[str]]


def test_update_payload_defaults_to_absent():
    shape = synthesize_update_shape(Thing, identifier_field(EntityBase))
    payload = shape.build(id=1, name=Present('new'))
    assert payload.id == 1
    assert payload.name == Present('new')
    assert payload.description is ABSENT
    assert payload.count is ABSENT


def test_input_suffix_setting():
    shape = synthesize_create_shape(OtherThing, AutoQLSettings(input_suffix='Payload'))
    assert shape.name == 'AddOtherThingPayload'


def test_synthesize_shapes_keys_by_name():
    shapes = synthesize_shapes([Thing, OtherThing], identifier_field(EntityBase))
    assert list(shapes) == ['AddThingInput', 'UpdateThingInput', 'AddOtherThingInput', 'UpdateOtherThingInput']


def test_synthesize_shapes_detects_collisions():
    # A second class named Thing yields the same shape names
    impostor = type('Thing', (), {'__annotations__': {'name': str}})
    with pytest.raises(NameCollisionError):
        synthesize_shapes([Thing, impostor], identifier_field(EntityBase))
