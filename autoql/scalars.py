"""Python type -> Strawberry annotation mapping."""
from __future__ import annotations
import uuid as _py_uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, NewType

import strawberry
from strawberry.scalars import JSON as ST_JSON, Base64

from .introspection import is_enum_type

# Types Strawberry serializes natively
NATIVE_SCALARS = (str, int, float, bool, datetime, date, time, Decimal, _py_uuid.UUID)

TimeSpan = strawberry.scalar(
    NewType("TimeSpan", timedelta),
    serialize=lambda v: v.total_seconds(),
    parse_value=lambda v: timedelta(seconds=float(v)),
    description="Duration in seconds",
)

_ENUMS: Dict[type, Any] = {}


def graphql_enum(enum_cls: type) -> Any:
    """Strawberry enum for a Python ``Enum``, created once per class."""
    st_enum = _ENUMS.get(enum_cls)
    if st_enum is None:
        if hasattr(enum_cls, '__strawberry_definition__') or hasattr(enum_cls, '_enum_definition'):
            st_enum = enum_cls
        else:
            st_enum = strawberry.enum(enum_cls, name=enum_cls.__name__)  # type: ignore
        _ENUMS[enum_cls] = st_enum
    return st_enum


def graphql_type(py_type: Any) -> Any:
    """Annotation to use in a Strawberry type for a field of ``py_type``."""
    if isinstance(py_type, type):
        if is_enum_type(py_type):
            return graphql_enum(py_type)
        if py_type in NATIVE_SCALARS:
            return py_type
        if issubclass(py_type, timedelta):
            return TimeSpan
        if issubclass(py_type, (bytes, bytearray)):
            return Base64
    # dict, list, Any and unknown types
    return ST_JSON


__all__ = ['NATIVE_SCALARS', 'TimeSpan', 'graphql_enum', 'graphql_type']
