"""Filter and sort inputs plus their SQL interpretation.

Every filterable scalar type gets an ``<Type>OperationFilterInput`` with the
comparison operators that make sense for it. Each entity gets:

* ``<E>FilterInput``      one field per readable scalar/relation plus ``and``/``or``
* ``<E>ListFilterInput``  ``some``/``none``/``all``/``any`` over a to-many relation
* ``<E>SortInput``        one ``SortEnumType`` field per sortable scalar

``build_where_clause`` and ``build_order_by`` turn instances of those inputs
into SQLAlchemy clauses.
"""
from __future__ import annotations
import dataclasses
import logging
import uuid as _py_uuid
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import strawberry
from strawberry import UNSET
from sqlalchemy import and_, not_, or_
from sqlalchemy.orm import RelationshipProperty

from .introspection import is_enum_type, readable_fields
from .naming import filter_input_name, list_filter_input_name, snake_to_camel, sort_input_name
from .scalars import graphql_enum

_logger = logging.getLogger("autoql")


@strawberry.enum
class SortEnumType(Enum):
    ASC = 'ASC'
    DESC = 'DESC'


# Global operator registry (extensible)
OPERATOR_REGISTRY: Dict[str, Callable[[Any, Any], Any]] = {
    'eq': lambda col, v: col == v,
    'neq': lambda col, v: col != v,
    'in': lambda col, v: col.in_(list(v)),
    'nin': lambda col, v: ~col.in_(list(v)),
    'gt': lambda col, v: col > v,
    'gte': lambda col, v: col >= v,
    'lt': lambda col, v: col < v,
    'lte': lambda col, v: col <= v,
    'contains': lambda col, v: col.contains(v, autoescape=True),
    'starts_with': lambda col, v: col.startswith(v, autoescape=True),
    'ends_with': lambda col, v: col.endswith(v, autoescape=True),
}

# Operators whose explicit null is meaningful (IS NULL / IS NOT NULL)
NULL_OPERATORS = frozenset({'eq', 'neq'})

STRING_OPS = ('eq', 'neq', 'in', 'nin', 'contains', 'starts_with', 'ends_with')
COMPARABLE_OPS = ('eq', 'neq', 'in', 'nin', 'gt', 'gte', 'lt', 'lte')
EQUALITY_OPS = ('eq', 'neq', 'in', 'nin')
BOOLEAN_OPS = ('eq', 'neq')

_OPERATION_INPUTS: Dict[Any, Any] = {}


def register_operator(name: str, fn: Callable[[Any, Any], Any]) -> None:
    """Register (or replace) the SQL builder for operator ``name``."""
    OPERATOR_REGISTRY[name] = fn


def _operation_spec(py_type: Any) -> Optional[Tuple[str, Any, Tuple[str, ...]]]:
    if not isinstance(py_type, type):
        return None
    # Order matters: bool subclasses int, datetime subclasses date, enums may subclass str
    if is_enum_type(py_type):
        return f"{py_type.__name__}OperationFilterInput", graphql_enum(py_type), EQUALITY_OPS
    if issubclass(py_type, bool):
        return "BooleanOperationFilterInput", bool, BOOLEAN_OPS
    if issubclass(py_type, int):
        return "IntOperationFilterInput", int, COMPARABLE_OPS
    if issubclass(py_type, float):
        return "FloatOperationFilterInput", float, COMPARABLE_OPS
    if issubclass(py_type, Decimal):
        return "DecimalOperationFilterInput", Decimal, COMPARABLE_OPS
    if issubclass(py_type, datetime):
        return "DateTimeOperationFilterInput", datetime, COMPARABLE_OPS
    if issubclass(py_type, date):
        return "DateOperationFilterInput", date, COMPARABLE_OPS
    if issubclass(py_type, time):
        return "TimeOperationFilterInput", time, COMPARABLE_OPS
    if issubclass(py_type, _py_uuid.UUID):
        return "UUIDOperationFilterInput", _py_uuid.UUID, EQUALITY_OPS
    if issubclass(py_type, str):
        return "StringOperationFilterInput", str, STRING_OPS
    return None


def operation_input_for(py_type: Any) -> Optional[Any]:
    """Strawberry input with the comparison operators for ``py_type``; None if not filterable."""
    spec = _operation_spec(py_type)
    if spec is None:
        return None
    name, st_type, ops = spec
    cached = _OPERATION_INPUTS.get(name)
    if cached is not None:
        return cached
    cls = type(name, (), {'__doc__': f"Comparison operators for {name[:-len('OperationFilterInput')]} fields"})
    anns: Dict[str, Any] = {
        'and_': Optional[List[cls]],  # type: ignore[valid-type]
        'or_': Optional[List[cls]],  # type: ignore[valid-type]
    }
    setattr(cls, 'and_', strawberry.field(name='and', default=UNSET))
    setattr(cls, 'or_', strawberry.field(name='or', default=UNSET))
    for op in ops:
        attr = _op_attr(op)
        anns[attr] = Optional[List[st_type]] if op in ('in', 'nin') else Optional[st_type]
        setattr(cls, attr, strawberry.field(name=snake_to_camel(op), default=UNSET))
    cls.__annotations__ = anns
    st_cls = strawberry.input(cls, name=name)  # type: ignore[arg-type]
    _OPERATION_INPUTS[name] = st_cls
    return st_cls


def is_filterable(py_type: Any) -> bool:
    return _operation_spec(py_type) is not None


def _op_attr(op: str) -> str:
    return 'in_' if op == 'in' else op


def _op_key(attr: str) -> str:
    return attr[:-1] if attr.endswith('_') else attr


# --- Entity-level inputs ---------------------------------------------------------------

def build_filter_inputs(entities: Sequence[type]) -> Tuple[Dict[type, Any], Dict[type, Any]]:
    """Create ``<E>FilterInput`` and ``<E>ListFilterInput`` for every entity.

    Classes are created bare first so that mutually referencing entities can
    point at each other, then decorated in one pass.
    """
    filters = {e: type(filter_input_name(e.__name__), (), {'__doc__': f"Filter for {e.__name__}"}) for e in entities}
    lists = {
        e: type(list_filter_input_name(e.__name__), (), {'__doc__': f"Filter over a list of {e.__name__}"})
        for e in entities
    }
    for entity, cls in filters.items():
        anns: Dict[str, Any] = {
            'and_': Optional[List[cls]],  # type: ignore[valid-type]
            'or_': Optional[List[cls]],  # type: ignore[valid-type]
        }
        setattr(cls, 'and_', strawberry.field(name='and', default=UNSET))
        setattr(cls, 'or_', strawberry.field(name='or', default=UNSET))
        for f in readable_fields(entity):
            if f.is_relation:
                if f.type not in filters:
                    continue
                anns[f.name] = Optional[lists[f.type] if f.many else filters[f.type]]
            else:
                op_input = operation_input_for(f.type)
                if op_input is None:
                    continue
                anns[f.name] = Optional[op_input]
            setattr(cls, f.name, UNSET)
        cls.__annotations__ = anns
    for entity, cls in lists.items():
        target = filters[entity]
        cls.__annotations__ = {
            'all': Optional[target],
            'none': Optional[target],
            'some': Optional[target],
            'any': Optional[bool],
        }
        for attr in ('all', 'none', 'some', 'any'):
            setattr(cls, attr, UNSET)
    out_filters = {e: strawberry.input(c, name=c.__name__) for e, c in filters.items()}  # type: ignore[arg-type]
    out_lists = {e: strawberry.input(c, name=c.__name__) for e, c in lists.items()}  # type: ignore[arg-type]
    _logger.debug("autoql.filters: built %s", [c.__name__ for c in filters.values()])
    return out_filters, out_lists


def build_sort_inputs(entities: Sequence[type]) -> Dict[type, Any]:
    """Create ``<E>SortInput`` for every entity with at least one sortable scalar."""
    out: Dict[type, Any] = {}
    for entity in entities:
        name = sort_input_name(entity.__name__)
        anns = {
            f.name: Optional[SortEnumType]
            for f in readable_fields(entity)
            if not f.is_relation and is_filterable(f.type)
        }
        if not anns:
            continue
        ns: Dict[str, Any] = {'__doc__': f"Sort order for {entity.__name__}", '__annotations__': anns}
        ns.update({k: UNSET for k in anns})
        out[entity] = strawberry.input(type(name, (), ns), name=name)  # type: ignore[arg-type]
    return out


# --- Interpretation -------------------------------------------------------------------------

def _supplied(obj: Any) -> Iterator[Tuple[str, Any]]:
    for f in dataclasses.fields(obj):
        value = getattr(obj, f.name, UNSET)
        if value is UNSET:
            continue
        yield f.name, value


def _is_empty(value: Any) -> bool:
    return value is None or value is UNSET


def build_where_clause(entity: type, where: Any) -> Optional[Any]:
    """Translate an ``<E>FilterInput`` instance into a SQLAlchemy boolean clause.

    Returns None when the filter does not constrain anything.
    """
    if _is_empty(where):
        return None
    clauses: List[Any] = []
    for name, value in _supplied(where):
        if value is None:
            continue
        if name in ('and_', 'or_'):
            parts = [build_where_clause(entity, w) for w in value]
            combined = _combine(name, parts)
            if combined is not None:
                clauses.append(combined)
            continue
        attr = getattr(entity, name)
        prop = attr.property
        if isinstance(prop, RelationshipProperty):
            target = prop.mapper.class_
            if prop.uselist:
                clauses.extend(_list_clauses(attr, target, value))
            else:
                inner = build_where_clause(target, value)
                clauses.append(attr.has(inner) if inner is not None else attr.has())
        else:
            clauses.extend(_operation_clauses(attr, value))
    if not clauses:
        return None
    return and_(*clauses) if len(clauses) > 1 else clauses[0]


def _combine(name: str, parts: List[Optional[Any]]) -> Optional[Any]:
    if not parts:
        return None
    if name == 'and_':
        kept = [p for p in parts if p is not None]
        return and_(*kept) if kept else None
    # An unconstrained branch makes the whole disjunction unconstrained
    if any(p is None for p in parts):
        return None
    return or_(*parts)


def _operation_clauses(col: Any, ops: Any) -> List[Any]:
    out: List[Any] = []
    for attr, value in _supplied(ops):
        if attr in ('and_', 'or_'):
            if value is None:
                continue
            parts = []
            for sub in value:
                sub_clauses = _operation_clauses(col, sub)
                parts.append(and_(*sub_clauses) if sub_clauses else None)
            combined = _combine(attr, parts)
            if combined is not None:
                out.append(combined)
            continue
        key = _op_key(attr)
        if value is None and key not in NULL_OPERATORS:
            continue
        fn = OPERATOR_REGISTRY.get(key)
        if fn is None:
            raise ValueError(f"Unknown filter operator: {key}")
        out.append(fn(col, value))
    return out


def _list_clauses(attr: Any, target: type, value: Any) -> List[Any]:
    out: List[Any] = []
    for name, sub in _supplied(value):
        if sub is None:
            continue
        if name == 'any':
            out.append(attr.any() if sub else ~attr.any())
            continue
        inner = build_where_clause(target, sub)
        if name == 'some':
            out.append(attr.any(inner))
        elif name == 'none':
            out.append(~attr.any(inner))
        elif name == 'all' and inner is not None:
            out.append(~attr.any(not_(inner)))
    return out


def build_order_by(entity: type, order: Any) -> List[Any]:
    """Translate a list of ``<E>SortInput`` instances into ORDER BY clauses."""
    out: List[Any] = []
    if _is_empty(order):
        return out
    for item in order:
        if item is None:
            continue
        for name, direction in _supplied(item):
            if direction is None:
                continue
            col = getattr(entity, name)
            out.append(col.desc() if _direction(direction) == 'DESC' else col.asc())
    return out


def _direction(value: Any) -> str:
    return str(getattr(value, 'value', value)).upper()


__all__ = [
    'SortEnumType', 'OPERATOR_REGISTRY', 'register_operator', 'operation_input_for', 'is_filterable',
    'build_filter_inputs', 'build_sort_inputs', 'build_where_clause', 'build_order_by',
]
