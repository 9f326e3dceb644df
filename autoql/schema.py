"""Strawberry serving layer for a synthesized :class:`SchemaPlan`.

Usage:
    from autoql import AutoSchema

    schema = AutoSchema(EntityBase).to_strawberry()
    await schema.execute("{ ThingSet { items { name } } }", context_value={"db_session": session})
"""
from __future__ import annotations
import logging
import uuid as _py_uuid
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import strawberry
from strawberry import UNSET
from strawberry.extensions import SchemaExtension
from strawberry.schema.config import StrawberryConfig
from graphql import GraphQLError
from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.orm import RelationshipProperty, selectinload, with_parent

from . import crud
from .config import AutoQLSettings
from .errors import AutoQLError, IdentifierDecodeError, InputValidationError, PageSizeError, SynthesisError
from .filters import SortEnumType, build_filter_inputs, build_order_by, build_sort_inputs, build_where_clause
from .introspection import FieldDescriptor, readable_fields
from .naming import camel_to_snake, segment_name
from .operations import OperationDescriptor, OperationKind, SchemaPlan, invoke, synthesize_plan
from .optional import from_transport
from .registry import EntityRegistry
from .scalars import graphql_type
from .shapes import InputShape
from .utils import get_context_lock, get_db_session, iter_fields, selected_children, selected_names

_logger = logging.getLogger("autoql")

# Error codes surfaced to GraphQL clients; everything else stays internal
CLIENT_ERROR_CODES = frozenset({'BAD_REQUEST', 'NOT_FOUND'})


@strawberry.type
class CollectionSegmentInfo:
    has_next_page: bool
    has_previous_page: bool


class ErrorCodeExtension(SchemaExtension):
    """Adds ``extensions.code`` to errors raised from validation or lookup failures."""

    def on_operation(self):
        yield
        result = self.execution_context.result
        if not result or not result.errors:
            return
        result.errors = [_with_code(e) for e in result.errors]


def _with_code(error: GraphQLError) -> GraphQLError:
    original = error.original_error
    while isinstance(original, GraphQLError) and original.original_error is not None:
        original = original.original_error
    code = getattr(original, 'code', None) if isinstance(original, AutoQLError) else None
    if code not in CLIENT_ERROR_CODES:
        return error
    return GraphQLError(
        error.message,
        nodes=error.nodes,
        source=error.source,
        positions=error.positions,
        path=error.path,
        original_error=error.original_error,
        extensions={**(error.extensions or {}), 'code': code},
    )


def decode_identifier(raw: Any, target: type) -> Any:
    """Decode a transport identifier (GraphQL ``ID``) into the identifier's Python type."""
    if isinstance(raw, target) and not isinstance(raw, bool):
        return raw
    try:
        if target is int:
            if isinstance(raw, bool):
                raise TypeError("bool is not an identifier")
            return int(str(raw).strip())
        if issubclass(target, _py_uuid.UUID):
            return _py_uuid.UUID(str(raw))
        return target(raw)
    except (TypeError, ValueError) as exc:
        raise IdentifierDecodeError(raw, target) from exc


def _require_session(info: Any) -> Any:
    session = get_db_session(info)
    if session is None:
        raise ValueError("No db_session in context")
    return session


class AutoSchema:
    """Derives a complete query/mutation schema from entity classes.

    Args:
        marker: Base class shared by every entity; it declares the identifier.
        entities: Explicit entity list. When omitted, subclasses of ``marker``
            are discovered.
        settings: Synthesis settings; defaults to ``AutoQLSettings.from_env()``.
    """

    def __init__(
        self,
        marker: Optional[type] = None,
        *,
        entities: Optional[Iterable[type]] = None,
        settings: Optional[AutoQLSettings] = None,
    ):
        if marker is None and entities is None:
            raise SynthesisError("AutoSchema needs an entity marker or an explicit entity list")
        entity_list = list(entities) if entities is not None else None
        if marker is None:
            marker = _common_marker(entity_list or [])
        self.marker = marker
        self.entities = entity_list
        self.settings = settings or AutoQLSettings.from_env()
        self._plan: Optional[SchemaPlan] = None

    def plan(self) -> SchemaPlan:
        if self._plan is None:
            registry = EntityRegistry(self.marker, self.entities)
            self._plan = synthesize_plan(registry, self.settings)
        return self._plan

    def to_strawberry(self, *, strawberry_config: Optional[StrawberryConfig] = None) -> strawberry.Schema:
        plan = self.plan()
        builder = _StrawberryBuilder(plan)
        query, mutation = builder.build()
        return strawberry.Schema(
            query=query,
            mutation=mutation,
            config=strawberry_config or StrawberryConfig(),
            extensions=[ErrorCodeExtension],
        )


def _common_marker(entities: Sequence[type]) -> type:
    if not entities:
        raise SynthesisError("Cannot infer an entity marker from an empty entity list")
    for base in entities[0].__mro__[1:]:
        if base is object:
            break
        if all(issubclass(e, base) for e in entities) and base.__dict__.get('__abstract__', False):
            return base
    raise SynthesisError("Entities do not share an abstract marker class; pass marker explicitly")


class _StrawberryBuilder:
    """Turns a plan into Strawberry root types. One instance per ``to_strawberry`` call."""

    def __init__(self, plan: SchemaPlan):
        self.plan = plan
        self.entities = plan.registry.enumerate()
        self.object_types: Dict[type, Any] = {}
        self.segment_types: Dict[type, Any] = {}
        self.input_types: Dict[str, Any] = {}
        self.filter_inputs: Dict[type, Any] = {}
        self.list_filter_inputs: Dict[type, Any] = {}
        self.sort_inputs: Dict[type, Any] = {}

    def build(self):
        self.filter_inputs, self.list_filter_inputs = build_filter_inputs(self.entities)
        self.sort_inputs = build_sort_inputs(self.entities)
        self._build_object_types()
        self._build_segment_types()
        for shape in self.plan.shapes.values():
            self.input_types[shape.name] = self._build_input_type(shape)
        query = self._build_root('Query', self.plan.queries)
        mutation = self._build_root('Mutation', self.plan.mutations) if self.plan.mutations else None
        return query, mutation

    # --- Output types ---

    def _build_object_types(self) -> None:
        # Two-pass: create plain classes first so relations can reference each other
        for entity in self.entities:
            doc = (entity.__doc__ or '').strip() or f"{entity.__name__} entity"
            cls = type(entity.__name__, (), {'__doc__': doc})
            cls.__module__ = __name__
            self.object_types[entity] = cls
        for entity, cls in self.object_types.items():
            anns: Dict[str, Any] = {}
            for f in readable_fields(entity):
                if f.is_relation:
                    target = self.object_types.get(f.type)
                    if target is None:
                        continue
                    anns[f.name] = List[target] if f.many else Optional[target]
                    setattr(cls, f.name, strawberry.field(resolver=self._relation_resolver(entity, f)))
                else:
                    st_t = graphql_type(f.type)
                    anns[f.name] = Optional[st_t] if f.nullable else st_t
            cls.__annotations__ = anns
        for entity, cls in list(self.object_types.items()):
            self.object_types[entity] = strawberry.type(cls, name=entity.__name__)  # type: ignore[arg-type]

    def _relation_resolver(self, entity: type, f: FieldDescriptor) -> Callable[..., Any]:
        name = f.name
        target = f.type
        filtering = bool(f.many and f.info.get('filtering') and target in self.filter_inputs)
        sorting = bool(f.many and f.info.get('sorting') and target in self.sort_inputs)
        object_types = self.object_types

        async def _resolver(self, info, where=UNSET, order=UNSET):
            if where not in (UNSET, None) or order not in (UNSET, None):
                session = _require_session(info)
                stmt = select(target).where(with_parent(self, getattr(entity, name)))
                clause = build_where_clause(target, where)
                if clause is not None:
                    stmt = stmt.where(clause)
                order_by = build_order_by(target, order)
                stmt = stmt.order_by(*order_by, crud.identifier_column(target))
                stmt = stmt.options(*_load_options(target, selected_children(info), object_types))
                async with get_context_lock(info):
                    return await crud.fetch_all(session, stmt)
            if name in sa_inspect(self).unloaded:
                session = _require_session(info)
                async with get_context_lock(info):
                    await crud.load_attribute(session, self, name)
            return getattr(self, name)

        anns: Dict[str, Any] = {'info': strawberry.Info}
        if filtering:
            anns['where'] = Optional[self.filter_inputs[target]]
        if sorting:
            anns['order'] = Optional[List[self.sort_inputs[target]]]
        return _with_signature(_resolver, anns, f"resolve_{name}")

    def _build_segment_types(self) -> None:
        include_total = self.plan.settings.include_total_count
        for entity in self.entities:
            name = segment_name(entity.__name__)
            anns: Dict[str, Any] = {
                'items': List[self.object_types[entity]],
                'page_info': CollectionSegmentInfo,
            }
            ns: Dict[str, Any] = {'__doc__': f"A page of {entity.__name__} items"}
            if include_total:
                anns['total_count'] = Optional[int]
                ns['total_count'] = None
            ns['__annotations__'] = anns
            self.segment_types[entity] = strawberry.type(type(name, (), ns), name=name)  # type: ignore[arg-type]

    # --- Input types ---

    def _build_input_type(self, shape: InputShape) -> Any:
        required: Dict[str, Any] = {}
        optional: Dict[str, Any] = {}
        ns: Dict[str, Any] = {'__doc__': f"{shape.kind.capitalize()} payload for {shape.entity.__name__}"}
        for f in shape.fields:
            if f.identifier:
                required[f.name] = strawberry.ID
                continue
            st_t = graphql_type(f.type)
            if f.wrapped:
                optional[f.name] = Optional[st_t]
                ns[f.name] = UNSET
            elif f.nullable:
                optional[f.name] = Optional[st_t]
                ns[f.name] = None
            else:
                required[f.name] = st_t
        # Required fields first: dataclass ordering
        ns['__annotations__'] = {**required, **optional}
        description = shape.meta.get('description')
        return strawberry.input(
            type(shape.name, (), ns), name=shape.name, description=description,
        )  # type: ignore[arg-type]

    # --- Roots ---

    def _build_root(self, root_name: str, operations: Sequence[OperationDescriptor]):
        plain = type(root_name, (), {'__doc__': f"Auto-generated root {root_name.lower()}."})
        plain.__module__ = __name__
        anns: Dict[str, Any] = {}
        for op in operations:
            resolver, ret = self._root_field(op)
            anns[op.name] = ret
            setattr(plain, op.name, strawberry.field(resolver=resolver))
        if not anns:
            async def _ping() -> str:  # noqa: D401
                return 'pong'
            anns['_ping'] = str
            setattr(plain, '_ping', strawberry.field(resolver=_ping, name='_ping'))
        plain.__annotations__ = anns
        return strawberry.type(plain, name=root_name)  # type: ignore[arg-type]

    def _root_field(self, op: OperationDescriptor):
        if op.kind is OperationKind.COLLECTION:
            return self._collection_resolver(op), self.segment_types[op.entity]
        if op.kind is OperationKind.BY_ID:
            obj = self.object_types[op.entity]
            return self._by_id_resolver(op), Optional[obj] if op.capabilities.single_result else List[obj]
        if op.kind is OperationKind.ADD:
            return self._add_resolver(op), self.object_types[op.entity]
        if op.kind is OperationKind.UPDATE:
            return self._update_resolver(op), self.object_types[op.entity]
        raise SynthesisError(f"Unsupported operation kind {op.kind!r}")

    def _collection_resolver(self, op: OperationDescriptor) -> Callable[..., Any]:
        entity = op.entity
        caps = op.capabilities
        page = caps.pagination
        segment_cls = self.segment_types[entity]
        object_types = self.object_types
        pk = crud.identifier_column(entity)

        async def _resolver(self, info, skip=UNSET, take=UNSET, where=UNSET, order=UNSET):
            session = _require_session(info)
            stmt = await invoke(op, session=session)
            if caps.filtering:
                clause = build_where_clause(entity, where)
                if clause is not None:
                    stmt = stmt.where(clause)
            if caps.sorting:
                order_by = build_order_by(entity, order)
                if order_by:
                    stmt = stmt.order_by(*order_by)
            offset = 0 if skip in (UNSET, None) else skip
            limit = None
            if page is not None:
                limit = page.default_page_size if take in (UNSET, None) else take
                if limit > page.max_page_size:
                    raise PageSizeError(limit, page.max_page_size)
            if offset < 0 or (limit is not None and limit < 0):
                raise InputValidationError("skip and take must not be negative")
            selected = selected_names(info)
            count_stmt = stmt
            if caps.projection:
                stmt = stmt.options(*_load_options(entity, selected_children(info, 'items'), object_types))
            # Primary key as tie-breaker keeps pages stable
            stmt = stmt.order_by(pk).offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit + 1)
            total = None
            async with get_context_lock(info):
                if page is not None and page.include_total_count and 'total_count' in selected:
                    total = await crud.count_rows(session, count_stmt)
                rows = await crud.fetch_all(session, stmt)
            has_next = limit is not None and len(rows) > limit
            if has_next:
                rows = rows[:limit]
            kwargs: Dict[str, Any] = {
                'items': rows,
                'page_info': CollectionSegmentInfo(has_next_page=has_next, has_previous_page=offset > 0),
            }
            if page is not None and page.include_total_count:
                kwargs['total_count'] = total
            return segment_cls(**kwargs)

        anns: Dict[str, Any] = {'info': strawberry.Info}
        if page is not None:
            anns['skip'] = Optional[int]
            anns['take'] = Optional[int]
        if caps.filtering and entity in self.filter_inputs:
            anns['where'] = Optional[self.filter_inputs[entity]]
        if caps.sorting and entity in self.sort_inputs:
            anns['order'] = Optional[List[self.sort_inputs[entity]]]
        return _with_signature(_resolver, anns, op.name)

    def _by_id_resolver(self, op: OperationDescriptor) -> Callable[..., Any]:
        entity = op.entity
        ident_type = self.plan.identifier.type
        object_types = self.object_types
        caps = op.capabilities

        async def _resolver(self, info, id):  # noqa: A002
            session = _require_session(info)
            key = decode_identifier(id, ident_type)
            stmt = await invoke(op, id=key, session=session)
            if caps.projection:
                stmt = stmt.options(*_load_options(entity, selected_children(info), object_types))
            async with get_context_lock(info):
                if caps.single_result:
                    return await crud.single_or_default(session, stmt, entity, key)
                return await crud.fetch_all(session, stmt)

        _resolver.__annotations__ = {'info': strawberry.Info, 'id': self._identifier_argument(op)}
        _resolver.__name__ = op.name
        return _resolver

    def _add_resolver(self, op: OperationDescriptor) -> Callable[..., Any]:
        shape = op.input_shape
        assert shape is not None

        async def _resolver(self, info, new):
            session = _require_session(info)
            payload = shape.build(**{f.name: getattr(new, f.name) for f in shape.fields})
            async with get_context_lock(info):
                return await invoke(op, new=payload, session=session)

        _resolver.__annotations__ = {'info': strawberry.Info, 'new': self.input_types[shape.name]}
        _resolver.__name__ = op.name
        return _resolver

    def _update_resolver(self, op: OperationDescriptor) -> Callable[..., Any]:
        shape = op.input_shape
        assert shape is not None
        ident_type = self.plan.identifier.type

        async def _resolver(self, info, id, update):  # noqa: A002
            session = _require_session(info)
            key = decode_identifier(id, ident_type)
            values: Dict[str, Any] = {}
            for f in shape.fields:
                raw = getattr(update, f.name, UNSET)
                if f.identifier:
                    values[f.name] = decode_identifier(raw, ident_type)
                else:
                    values[f.name] = from_transport(raw, unset=UNSET)
            payload = shape.build(**values)
            async with get_context_lock(info):
                return await invoke(op, id=key, update=payload, session=session)

        _resolver.__annotations__ = {
            'info': strawberry.Info,
            'id': self._identifier_argument(op),
            'update': self.input_types[shape.name],
        }
        _resolver.__name__ = op.name
        return _resolver

    def _identifier_argument(self, op: OperationDescriptor) -> Any:
        """``ID`` when the operation encodes identifiers, else the identifier's own scalar."""
        if op.capabilities.id_encoding:
            return strawberry.ID
        return graphql_type(self.plan.identifier.type)


def _with_signature(fn: Callable[..., Any], anns: Dict[str, Any], name: str) -> Callable[..., Any]:
    """Wrap ``fn`` so Strawberry sees exactly the arguments annotated in ``anns``."""
    params = [p for p in anns if p != 'info']
    arg_list = ''.join(f", {p}=UNSET" for p in params)
    call_list = ''.join(f", {p}={p}" for p in params)
    src = f"async def {name}(self, info{arg_list}):\n"
    src += f"    return await _impl(self, info{call_list})\n"
    env: Dict[str, Any] = {'_impl': fn, 'UNSET': UNSET}
    exec(src, env)  # noqa: S102
    wrapper = env[name]
    wrapper.__module__ = __name__
    wrapper.__annotations__ = anns
    return wrapper


def _load_options(entity: type, selections: Sequence[Any], object_types: Dict[type, Any]) -> List[Any]:
    """``selectinload`` options for every selected relation, nested as selected."""
    opts: List[Any] = []
    rels = {r.key: r for r in sa_inspect(entity).relationships}
    for sel in selections:
        key = camel_to_snake(sel.name)
        rel: Optional[RelationshipProperty] = rels.get(key)
        if rel is None or rel.mapper.class_ not in object_types:
            continue
        # Filtered/sorted relations are queried by their own resolver
        if getattr(sel, 'arguments', None):
            continue
        loader = selectinload(getattr(entity, key))
        nested = _load_options(rel.mapper.class_, list(iter_fields(getattr(sel, 'selections', None))), object_types)
        opts.append(loader.options(*nested) if nested else loader)
    return opts


__all__ = ['AutoSchema', 'CollectionSegmentInfo', 'ErrorCodeExtension', 'decode_identifier', 'SortEnumType']
