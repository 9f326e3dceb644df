from __future__ import annotations
import dataclasses
import inspect
import logging
import sys
import types
import uuid as _py_uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Union, get_args, get_origin, Annotated

from sqlalchemy import Column, inspect as sa_inspect
from sqlalchemy.orm import ColumnProperty, Mapped, Mapper, RelationshipProperty
from sqlalchemy.orm.properties import MappedColumn
from sqlalchemy.sql.sqltypes import (
    JSON as SA_JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    Integer,
    Interval,
    LargeBinary,
    Numeric,
    String,
    Time,
    Uuid as SA_Uuid,
)
from sqlalchemy import Enum as SAEnumType
from sqlalchemy.types import TypeDecorator as _SATypeDecorator

from .errors import IdentifierError, IntrospectionError
from .optional import unwrap_maybe_annotation

_logger = logging.getLogger("autoql")

COLUMN = 'column'
RELATION = 'relation'

# Python types accepted for the identifier field
IDENTIFIER_TYPES: Tuple[type, ...] = (int, str, _py_uuid.UUID)


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    """Introspected view of one field of a type.

    Attributes:
        name: Attribute name on the class.
        type: Underlying Python type with every wrapper stripped
            (``Mapped``, ``Maybe``, ``Optional``). For relations, the target class.
        nullable: Whether the field may legally hold ``None``.
        kind: ``'column'`` for scalars, ``'relation'`` for relationships.
        many: True for collection relations.
        readable: The value can be read from outside the class.
        writable: The value can be assigned from outside the class.
        wrapped: The declared annotation is the tri-state ``Maybe[...]`` wrapper.
        info: Declarative metadata attached to the column/relationship.
    """

    name: str
    type: Any
    nullable: bool
    kind: str = COLUMN
    many: bool = False
    readable: bool = True
    writable: bool = True
    wrapped: bool = False
    primary_key: bool = False
    info: Mapping[str, Any] = dataclasses.field(default_factory=dict, compare=False, hash=False)

    @property
    def is_relation(self) -> bool:
        return self.kind == RELATION


def describe(cls: type, *, declared_only: bool = True, writable_only: bool = True) -> Tuple[FieldDescriptor, ...]:
    """Return the ordered public fields of ``cls``.

    ``declared_only`` drops fields declared on a base class (so the identifier,
    declared on the entity marker, is not part of an entity's own fields).
    ``writable_only`` keeps only fields that are both readable and writable.
    Results are memoized per class.
    """
    if not isinstance(cls, type):
        raise IntrospectionError(cls, "not a class")
    return _describe(cls, declared_only, writable_only)


@lru_cache(maxsize=None)
def _describe(cls: type, declared_only: bool, writable_only: bool) -> Tuple[FieldDescriptor, ...]:
    try:
        if _mapper_of(cls) is not None:
            fields = _describe_mapped(cls)
        else:
            fields = _describe_annotated(cls)
    except IntrospectionError:
        raise
    except Exception as exc:
        raise IntrospectionError(cls, str(exc)) from exc
    if declared_only:
        inherited = _inherited_names(cls)
        fields = [f for f in fields if f.name not in inherited]
    if writable_only:
        fields = [f for f in fields if f.readable and f.writable]
    _logger.debug("autoql.introspection: %s -> %s", cls.__name__, [f.name for f in fields])
    return tuple(fields)


def mutable_fields(cls: type) -> Tuple[FieldDescriptor, ...]:
    """Scalar fields declared on ``cls`` that callers may set."""
    return tuple(f for f in describe(cls) if f.kind == COLUMN)


def readable_fields(cls: type) -> Tuple[FieldDescriptor, ...]:
    """Every public readable field, inherited ones included (used for output types)."""
    return tuple(f for f in describe(cls, declared_only=False, writable_only=False) if f.readable)


def identifier_field(marker: type) -> FieldDescriptor:
    """Return the identifier field declared on the entity marker.

    Raises:
        IdentifierError: no candidate field, several candidates, or a type that
            cannot be used as an identifier.
    """
    try:
        candidates = [f for f in describe(marker, writable_only=False) if f.kind == COLUMN]
    except IntrospectionError as exc:
        raise IdentifierError(f"Cannot resolve identifier on {marker.__name__}: {exc}") from exc
    if len(candidates) > 1:
        keyed = [f for f in candidates if f.primary_key]
        if len(keyed) != 1:
            raise IdentifierError(
                f"{marker.__name__} declares {len(candidates)} fields; mark exactly one as primary key"
            )
        candidates = keyed
    if not candidates:
        raise IdentifierError(f"{marker.__name__} does not declare an identifier field")
    ident = candidates[0]
    if not (isinstance(ident.type, type) and issubclass(ident.type, IDENTIFIER_TYPES)):
        raise IdentifierError(
            f"Identifier {marker.__name__}.{ident.name} has unsupported type {ident.type!r}"
        )
    if ident.nullable and not ident.primary_key:
        raise IdentifierError(f"Identifier {marker.__name__}.{ident.name} must not be nullable")
    return ident


# --- Mapped classes ---------------------------------------------------------------

def _mapper_of(cls: type) -> Optional[Mapper]:
    insp = sa_inspect(cls, raiseerr=False)
    return insp if isinstance(insp, Mapper) else None


def _describe_mapped(cls: type) -> List[FieldDescriptor]:
    mapper = _mapper_of(cls)
    assert mapper is not None
    hints = _class_hints(cls)
    out: List[FieldDescriptor] = []
    for prop in mapper.attrs:
        name = prop.key
        if name.startswith('_'):
            continue
        hint = hints.get(name)
        if isinstance(prop, ColumnProperty):
            col = prop.columns[0]
            is_table_column = isinstance(col, Column) and getattr(col, 'computed', None) is None
            underlying, hinted_null, wrapped = strip_annotation(hint)
            if not _usable_type(underlying):
                underlying = python_type_for(col.type)
            col_null = bool(getattr(col, 'nullable', True)) if is_table_column else True
            info = dict(getattr(col, 'info', None) or {})
            info.update(prop.info or {})
            out.append(FieldDescriptor(
                name=name,
                type=underlying,
                nullable=hinted_null or col_null,
                kind=COLUMN,
                writable=is_table_column,
                wrapped=wrapped,
                primary_key=bool(getattr(col, 'primary_key', False)),
                info=info,
            ))
        elif isinstance(prop, RelationshipProperty):
            _, hinted_null, _ = strip_annotation(hint)
            many = bool(prop.uselist)
            out.append(FieldDescriptor(
                name=name,
                type=prop.mapper.class_,
                nullable=hinted_null or not many,
                kind=RELATION,
                many=many,
                writable=not prop.viewonly,
                info=dict(prop.info or {}),
            ))
    return out


# --- Annotated classes (dataclasses, shapes, abstract markers) ------------------------

def _describe_annotated(cls: type) -> List[FieldDescriptor]:
    out: List[FieldDescriptor] = []
    hints = _class_hints(cls)
    # Classic ``Column`` attributes without an annotation (e.g. on abstract markers)
    for klass in reversed(cls.__mro__):
        if _skip_class(klass):
            continue
        for name, value in vars(klass).items():
            if name not in hints and _column_of(value) is not None:
                hints[name] = None
    for name, hint in hints.items():
        if name.startswith('_'):
            continue
        if hint is None and _column_of(inspect.getattr_static(cls, name, None)) is None:
            continue
        if hint is ClassVar or get_origin(hint) is ClassVar:
            continue
        underlying, hinted_null, wrapped = strip_annotation(hint)
        static = inspect.getattr_static(cls, name, None)
        readable = True
        writable = True
        col_null = False
        primary_key = False
        info: Dict[str, Any] = {}
        if isinstance(static, property):
            readable = static.fget is not None
            writable = static.fset is not None
        col = _column_of(static)
        if col is not None:
            col_null = bool(col.nullable) and not col.primary_key
            primary_key = bool(col.primary_key)
            info = dict(col.info or {})
            if not _usable_type(underlying):
                underlying = python_type_for(col.type)
        if dataclasses.is_dataclass(cls) and getattr(getattr(cls, '__dataclass_params__', None), 'frozen', False):
            writable = False
        out.append(FieldDescriptor(
            name=name,
            type=underlying,
            nullable=hinted_null or col_null,
            kind=COLUMN,
            readable=readable,
            writable=writable,
            wrapped=wrapped,
            primary_key=primary_key,
            info=info,
        ))
    return out


def _column_of(static: Any) -> Optional[Column]:
    if isinstance(static, MappedColumn):
        return static.column
    if isinstance(static, Column):
        return static
    return None


# --- Annotation helpers ------------------------------------------------------------------

_NONE_TYPE = type(None)


def strip_annotation(annotation: Any) -> Tuple[Any, bool, bool]:
    """Return ``(underlying, nullable, wrapped)`` for a field annotation.

    Strips ``Annotated``, ``Mapped``, the tri-state ``Maybe`` and the
    may-be-absent ``Optional`` / ``X | None`` wrappers.
    """
    if annotation is None:
        return None, False, False
    ann = annotation
    if get_origin(ann) is Annotated:
        ann = get_args(ann)[0]
    if get_origin(ann) is Mapped:
        args = get_args(ann)
        ann = args[0] if args else Any
    wrapped, ann = unwrap_maybe_annotation(ann)
    nullable = False
    origin = get_origin(ann)
    if origin is Union or origin is types.UnionType:
        args = get_args(ann)
        if _NONE_TYPE in args:
            nullable = True
            rest = tuple(a for a in args if a is not _NONE_TYPE)
            ann = rest[0] if len(rest) == 1 else Union[rest]  # type: ignore[valid-type]
    return ann, nullable, wrapped


def _usable_type(tp: Any) -> bool:
    if tp is None or isinstance(tp, (str, type(None))):
        return False
    try:
        from typing import ForwardRef
        if isinstance(tp, ForwardRef):
            return False
    except Exception:  # pragma: no cover
        pass
    return True


def _class_hints(cls: type) -> Dict[str, Any]:
    """Resolve annotations along the MRO, one name at a time.

    Unresolvable annotations map to ``None`` so mapper/column information can
    take over instead of failing the whole class.
    """
    hints: Dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if _skip_class(klass):
            continue
        module = sys.modules.get(klass.__module__)
        globalns = dict(vars(module)) if module is not None else {}
        localns = dict(vars(klass))
        for name, ann in _own_annotations(klass).items():
            if isinstance(ann, str):
                try:
                    ann = eval(ann, globalns, localns)  # noqa: S307 - same resolution as typing.get_type_hints
                except Exception:
                    _logger.debug("autoql.introspection: unresolved annotation %s.%s=%r", klass.__name__, name, ann)
                    ann = None
            hints[name] = ann
    return hints


def _skip_class(klass: type) -> bool:
    return klass is object or (getattr(klass, '__module__', '') or '').startswith('sqlalchemy')


def _own_annotations(klass: type) -> Dict[str, Any]:
    try:
        return dict(inspect.get_annotations(klass))
    except Exception:
        return {}


def _inherited_names(cls: type) -> set:
    names: set = set()
    for base in cls.__mro__[1:]:
        if base is object:
            continue
        names.update(_own_annotations(base).keys())
        names.update(k for k, v in vars(base).items() if _column_of(v) is not None or isinstance(v, property))
    return names


# --- SQLAlchemy column type -> Python type -------------------------------------------------

def python_type_for(sqlatype: Any) -> Any:
    """Map a SQLAlchemy column type to a Python type.

    Checks ``Enum`` before ``String`` since the former subclasses the latter.
    Defaults to ``str`` for unknown types.
    """
    if isinstance(sqlatype, Interval):
        return timedelta
    if isinstance(sqlatype, _SATypeDecorator):
        inner = getattr(sqlatype, 'impl', None)
        if inner is not None and inner is not sqlatype:
            return python_type_for(inner)
    if isinstance(sqlatype, SAEnumType):
        enum_cls = getattr(sqlatype, 'enum_class', None)
        if enum_cls is not None:
            return enum_cls
        return str
    if isinstance(sqlatype, Boolean):
        return bool
    if isinstance(sqlatype, Integer):
        return int
    if isinstance(sqlatype, DateTime):
        return datetime
    if isinstance(sqlatype, Date):
        return date
    if isinstance(sqlatype, Time):
        return time
    if isinstance(sqlatype, Float):
        return float
    if isinstance(sqlatype, Numeric):
        return Decimal if getattr(sqlatype, 'asdecimal', True) else float
    if isinstance(sqlatype, SA_Uuid):
        return _py_uuid.UUID if getattr(sqlatype, 'as_uuid', True) else str
    if isinstance(sqlatype, String):
        return str
    if isinstance(sqlatype, LargeBinary):
        return bytes
    if isinstance(sqlatype, SA_JSON):
        return dict
    try:
        return sqlatype.python_type
    except (AttributeError, NotImplementedError):
        return str


def is_enum_type(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, Enum)


__all__ = [
    'FieldDescriptor', 'COLUMN', 'RELATION', 'IDENTIFIER_TYPES',
    'describe', 'mutable_fields', 'readable_fields', 'identifier_field',
    'strip_annotation', 'python_type_for', 'is_enum_type',
]
