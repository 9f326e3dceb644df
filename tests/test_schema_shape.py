import dataclasses
from typing import List

import pytest

from autoql import AutoQLSettings, AutoSchema, SynthesisError
from autoql.schema import _StrawberryBuilder, decode_identifier
from autoql.errors import IdentifierDecodeError
from tests.models import EntityBase, OtherThing, Thing
from tests.schema import schema


def _fields(s, type_name):
    return {f.name: f for f in s.get_type_by_name(type_name).fields}


def test_root_operations():
    assert set(_fields(schema, 'Query')) == {
        'ThingSet', 'ThingById', 'OtherThingSet', 'OtherThingById', 'GadgetSet', 'GadgetById',
    }
    assert set(_fields(schema, 'Mutation')) == {
        'AddThing', 'UpdateThing', 'AddOtherThing', 'UpdateOtherThing', 'AddGadget', 'UpdateGadget',
    }


def test_sdl_contains_synthesized_types():
    sdl = schema.as_str()
    for fragment in (
        'type ThingCollectionSegment',
        'type CollectionSegmentInfo',
        'input AddThingInput',
        'input UpdateThingInput',
        'input ThingFilterInput',
        'input OtherThingListFilterInput',
        'input ThingSortInput',
        'input StringOperationFilterInput',
        'enum SortEnumType',
        'enum GadgetKind',
    ):
        assert fragment in sdl, fragment


def test_input_nullability():
    add = _fields(schema, 'AddThingInput')
    assert set(add) == {'name', 'description', 'count'}
    update = _fields(schema, 'UpdateThingInput')
    assert set(update) == {'id', 'name', 'description', 'count'}
    sdl = schema.as_str()
    add_block = sdl.split('input AddThingInput {', 1)[1].split('}', 1)[0]
    assert 'name: String!' in add_block
    update_block = sdl.split('input UpdateThingInput {', 1)[1].split('}', 1)[0]
    assert 'id: ID!' in update_block
    assert 'name: String!' not in update_block


def test_without_total_count():
    s = AutoSchema(EntityBase, settings=AutoQLSettings(include_total_count=False)).to_strawberry()
    assert 'total_count' not in _fields(s, 'ThingCollectionSegment')
    assert 'total_count' in _fields(schema, 'ThingCollectionSegment')


def test_explicit_entity_list_infers_marker():
    auto = AutoSchema(entities=[Thing, OtherThing])
    assert auto.marker is EntityBase
    s = auto.to_strawberry()
    assert 'GadgetSet' not in _fields(s, 'Query')


def test_plan_is_memoized():
    auto = AutoSchema(EntityBase)
    assert auto.plan() is auto.plan()


def test_needs_marker_or_entities():
    with pytest.raises(SynthesisError):
        AutoSchema()


def test_decode_identifier():
    assert decode_identifier('12', int) == 12
    assert decode_identifier(12, int) == 12
    with pytest.raises(IdentifierDecodeError):
        decode_identifier('x', int)


def test_create_input_carries_entity_description():
    assert schema.get_type_by_name('AddThingInput').description == 'Things exposed through the API'


def test_identifier_arguments_follow_id_encoding():
    sdl = schema.as_str()
    assert 'ThingById(id: ID!): Thing' in sdl
    assert 'UpdateThing(id: ID!, update: UpdateThingInput!): Thing!' in sdl


def test_native_identifier_and_list_result_without_tags():
    plan = AutoSchema(EntityBase).plan()
    by_id = plan.operation('ThingById')
    untagged = dataclasses.replace(
        by_id, capabilities=dataclasses.replace(by_id.capabilities, id_encoding=False, single_result=False),
    )
    builder = _StrawberryBuilder(plan)
    builder.build()
    resolver, ret = builder._root_field(untagged)
    assert resolver.__annotations__['id'] is int
    assert ret == List[builder.object_types[Thing]]
