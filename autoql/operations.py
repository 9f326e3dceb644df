"""Operation synthesis and dispatch.

Every entity yields four operations:

* ``<E>Set``      query,    kind ``COLLECTION``
* ``<E>ById``     query,    kind ``BY_ID``
* ``Add<E>``      mutation, kind ``ADD``
* ``Update<E>``   mutation, kind ``UPDATE``

Operations are plain descriptors. Their behaviour lives in :mod:`autoql.crud`
and is reached through :data:`DISPATCH`, keyed by operation kind. Query/filter
capabilities are declared on the descriptor as :class:`Capabilities` and
interpreted by the serving layer (:mod:`autoql.schema`).
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from . import crud
from .config import AutoQLSettings
from .errors import NameCollisionError
from .introspection import FieldDescriptor
from .naming import (
    add_operation_name,
    by_id_operation_name,
    collection_operation_name,
    filter_input_name,
    list_filter_input_name,
    segment_name,
    sort_input_name,
    update_operation_name,
)
from .registry import EntityRegistry
from .shapes import CREATE, UPDATE, InputShape, synthesize_shapes

_logger = logging.getLogger("autoql")

QUERY = 'Query'
MUTATION = 'Mutation'

# Parameter roles
IDENTIFIER = 'identifier'
PAYLOAD = 'payload'
CONTEXT = 'context'

# Type names the serving layer always defines
RESERVED_TYPE_NAMES = frozenset({
    QUERY, MUTATION, 'CollectionSegmentInfo', 'SortEnumType', 'JSON', 'Base64', 'TimeSpan',
})


class OperationKind(str, Enum):
    COLLECTION = 'collection'
    BY_ID = 'by_id'
    ADD = 'add'
    UPDATE = 'update'


@dataclass(frozen=True)
class PaginationTag:
    default_page_size: int = 100
    max_page_size: int = 1_000
    include_total_count: bool = True


@dataclass(frozen=True)
class Capabilities:
    """Declarative capability tags carried by a query operation."""

    pagination: Optional[PaginationTag] = None
    projection: bool = False
    filtering: bool = False
    sorting: bool = False
    single_result: bool = False
    id_encoding: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Parameter:
    name: str
    role: str
    type: Any = None
    shape: Optional[InputShape] = None


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    container: str
    kind: OperationKind
    entity: type
    input_shape: Optional[InputShape] = None
    parameters: Tuple[Parameter, ...] = ()
    capabilities: Capabilities = field(default_factory=Capabilities)

    def parameter(self, name: str) -> Parameter:
        for p in self.parameters:
            if p.name == name:
                return p
        raise KeyError(name)

    @property
    def argument_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.parameters if p.role != CONTEXT)


@dataclass(frozen=True)
class SchemaPlan:
    """Everything synthesized from a registry, immutable once built."""

    registry: EntityRegistry
    identifier: FieldDescriptor
    shapes: Mapping[str, InputShape]
    queries: Tuple[OperationDescriptor, ...]
    mutations: Tuple[OperationDescriptor, ...]
    settings: AutoQLSettings

    @property
    def operations(self) -> Tuple[OperationDescriptor, ...]:
        return self.queries + self.mutations

    def operation(self, name: str) -> OperationDescriptor:
        for op in self.operations:
            if op.name == name:
                return op
        raise KeyError(name)

    def shape_for(self, entity: type, kind: str) -> InputShape:
        return _shape_of(self.shapes, entity, kind)


def synthesize_entity_operations(
    entity: type,
    create_shape: InputShape,
    update_shape: InputShape,
    identifier: FieldDescriptor,
    settings: Optional[AutoQLSettings] = None,
) -> Tuple[Tuple[OperationDescriptor, ...], Tuple[OperationDescriptor, ...]]:
    """Return ``(queries, mutations)`` for one entity."""
    settings = settings or AutoQLSettings()
    name = entity.__name__
    session = Parameter('session', CONTEXT)
    ident = Parameter('id', IDENTIFIER, identifier.type)
    queries = (
        OperationDescriptor(
            name=collection_operation_name(name),
            container=QUERY,
            kind=OperationKind.COLLECTION,
            entity=entity,
            parameters=(session,),
            capabilities=Capabilities(
                pagination=PaginationTag(
                    default_page_size=settings.default_page_size,
                    max_page_size=settings.max_page_size,
                    include_total_count=settings.include_total_count,
                ),
                projection=True,
                filtering=True,
                sorting=True,
            ),
        ),
        OperationDescriptor(
            name=by_id_operation_name(name),
            container=QUERY,
            kind=OperationKind.BY_ID,
            entity=entity,
            parameters=(ident, session),
            capabilities=Capabilities(single_result=True, projection=True, id_encoding=True),
        ),
    )
    mutations = (
        OperationDescriptor(
            name=add_operation_name(name),
            container=MUTATION,
            kind=OperationKind.ADD,
            entity=entity,
            input_shape=create_shape,
            parameters=(Parameter('new', PAYLOAD, create_shape.model, create_shape), session),
        ),
        OperationDescriptor(
            name=update_operation_name(name),
            container=MUTATION,
            kind=OperationKind.UPDATE,
            entity=entity,
            input_shape=update_shape,
            parameters=(ident, Parameter('update', PAYLOAD, update_shape.model, update_shape), session),
            capabilities=Capabilities(id_encoding=True),
        ),
    )
    return queries, mutations


def synthesize_plan(registry: EntityRegistry, settings: Optional[AutoQLSettings] = None) -> SchemaPlan:
    """Derive shapes and operations for every registered entity.

    Raises:
        IdentifierError: the marker's identifier is unusable.
        NameCollisionError: two synthesized names (types or operations) clash.
    """
    settings = settings or AutoQLSettings()
    identifier = registry.identifier
    shapes = synthesize_shapes(registry.enumerate(), identifier, settings)

    type_names: Dict[str, Any] = {n: n for n in RESERVED_TYPE_NAMES}
    for entity in registry:
        ename = entity.__name__
        for tname in (
            ename, filter_input_name(ename), list_filter_input_name(ename),
            sort_input_name(ename), segment_name(ename),
        ):
            _claim(type_names, tname, entity)
    for sname, shape in shapes.items():
        _claim(type_names, sname, shape.entity)

    queries = []
    mutations = []
    seen: Dict[Tuple[str, str], type] = {}
    for entity in registry:
        create_shape = _shape_of(shapes, entity, CREATE)
        update_shape = _shape_of(shapes, entity, UPDATE)
        qs, ms = synthesize_entity_operations(entity, create_shape, update_shape, identifier, settings)
        for op in qs + ms:
            key = (op.container, op.name)
            if key in seen:
                raise NameCollisionError(op.name, seen[key], entity)
            seen[key] = entity
            _logger.debug(
                "autoql.operations: %s.%s kind=%s capabilities=%s",
                op.container, op.name, op.kind.value, op.capabilities.as_dict(),
            )
        queries.extend(qs)
        mutations.extend(ms)

    plan = SchemaPlan(
        registry=registry,
        identifier=identifier,
        shapes=shapes,
        queries=tuple(queries),
        mutations=tuple(mutations),
        settings=settings,
    )
    _logger.info(
        "autoql: synthesized %d entities, %d shapes, %d queries, %d mutations",
        len(registry), len(shapes), len(plan.queries), len(plan.mutations),
    )
    return plan


def _claim(names: Dict[str, Any], name: str, owner: Any) -> None:
    prev = names.get(name)
    if prev is not None:
        raise NameCollisionError(name, prev, owner)
    names[name] = owner


def _shape_of(shapes: Mapping[str, InputShape], entity: type, kind: str) -> InputShape:
    for shape in shapes.values():
        if shape.entity is entity and shape.kind == kind:
            return shape
    raise KeyError((entity, kind))


DISPATCH: Mapping[OperationKind, Callable[..., Any]] = MappingProxyType({
    OperationKind.COLLECTION: crud.collection,
    OperationKind.BY_ID: crud.where_id,
    OperationKind.ADD: crud.add,
    OperationKind.UPDATE: crud.update,
})


async def invoke(descriptor: OperationDescriptor, **arguments: Any) -> Any:
    """Forward ``arguments`` unmodified to the generic implementation for ``descriptor``.

    Example:
        thing = await invoke(plan.operation("AddThing"), new=payload, session=session)
    """
    impl = DISPATCH[descriptor.kind]
    result = impl(descriptor.entity, **arguments)
    if inspect.isawaitable(result):
        result = await result
    return result


def operations_for(plan: SchemaPlan, entity: type) -> Iterable[OperationDescriptor]:
    return tuple(op for op in plan.operations if op.entity is entity)


__all__ = [
    'QUERY', 'MUTATION', 'OperationKind', 'PaginationTag', 'Capabilities', 'Parameter',
    'OperationDescriptor', 'SchemaPlan', 'synthesize_entity_operations', 'synthesize_plan',
    'DISPATCH', 'invoke', 'operations_for',
]
