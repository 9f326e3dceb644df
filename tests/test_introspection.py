import dataclasses
from datetime import datetime
from decimal import Decimal
from typing import Optional

import pytest

from autoql import IdentifierError, Maybe, describe
from autoql.introspection import identifier_field, mutable_fields, readable_fields, strip_annotation
from tests.models import EntityBase, Gadget, GadgetKind, OtherThing, Thing


def _by_name(fields):
    return {f.name: f for f in fields}


def test_mutable_fields_exclude_identifier_and_computed():
    names = [f.name for f in mutable_fields(Thing)]
    assert names == ['name', 'description', 'count']


def test_nullability_follows_annotation_and_column():
    fields = _by_name(mutable_fields(Thing))
    assert fields['name'].nullable is False
    assert fields['description'].nullable is True
    assert fields['count'].type is int


def test_classic_columns_are_described():
    fields = _by_name(mutable_fields(OtherThing))
    assert set(fields) == {'creation_date', 'thing_id'}
    assert fields['creation_date'].type is datetime
    assert fields['creation_date'].nullable is False


def test_readable_fields_include_inherited_relations_and_computed():
    fields = _by_name(readable_fields(Thing))
    assert 'id' in fields and fields['id'].primary_key
    assert fields['name_length'].writable is False
    rel = fields['other_things']
    assert rel.is_relation and rel.many and rel.type is OtherThing
    assert rel.info.get('filtering') is True
    single = _by_name(readable_fields(OtherThing))['thing']
    assert single.is_relation and not single.many and single.type is Thing


def test_less_common_scalar_types():
    fields = _by_name(mutable_fields(Gadget))
    assert fields['kind'].type is GadgetKind
    assert fields['price'].type is Decimal and fields['price'].nullable
    assert fields['extra'].type is dict


def test_identifier_on_marker():
    ident = identifier_field(EntityBase)
    assert ident.name == 'id'
    assert ident.type is int


def test_identifier_rejects_marker_without_field():
    class NoIdentifier:
        pass

    with pytest.raises(IdentifierError):
        identifier_field(NoIdentifier)


def test_identifier_rejects_unsupported_type():
    class FloatIdentifier:
        key: float

    with pytest.raises(IdentifierError):
        identifier_field(FloatIdentifier)


def test_dataclass_and_property_access():
    @dataclasses.dataclass
    class Payload:
        title: str
        note: Optional[str]
        rating: Maybe[int]

    class WithProperties:
        @property
        def read_only(self) -> int:
            return 1

        def _get(self) -> str:
            return ''

        def _set(self, value) -> None:
            pass

        read_only: int
        both: str
        both = property(_get, _set)

    payload = _by_name(describe(Payload, declared_only=False, writable_only=False))
    assert payload['note'].nullable and not payload['title'].nullable
    assert payload['rating'].wrapped and payload['rating'].type is int

    props = _by_name(describe(WithProperties, declared_only=False, writable_only=False))
    assert props['read_only'].readable and not props['read_only'].writable
    assert props['both'].writable
    assert [f.name for f in describe(WithProperties)] == ['both']


def test_strip_annotation():
    assert strip_annotation(Optional[int]) == (int, True, False)
    assert strip_annotation(Maybe[Optional[str]]) == (str, True, True)
    assert strip_annotation(int | None) == (int, True, False)
