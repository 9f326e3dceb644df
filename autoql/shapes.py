"""Input shape synthesis.

For every entity two input shapes are derived from its mutable fields:

``Add<Entity>Input``
    One required field per mutable field, same name and underlying type.
    Nullable fields accept ``None`` but must still be supplied.

``Update<Entity>Input``
    The identifier (required, unwrapped) plus one ``Maybe[...]`` field per
    mutable field, defaulting to ``ABSENT``.

A shape is a frozen descriptor (:class:`InputShape`) plus a plain dataclass
(``shape.model``) whose instances carry payload values into the merge engine.
"""
from __future__ import annotations

import dataclasses
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .config import AutoQLSettings
from .errors import NameCollisionError
from .introspection import FieldDescriptor, mutable_fields
from .naming import add_input_name, update_input_name
from .optional import ABSENT, Maybe

_logger = logging.getLogger("autoql")

CREATE = 'create'
UPDATE = 'update'


@dataclasses.dataclass(frozen=True)
class ShapeField:
    name: str
    type: Any
    nullable: bool
    wrapped: bool = False
    identifier: bool = False

    @property
    def annotation(self) -> Any:
        ann = Optional[self.type] if self.nullable else self.type
        if self.wrapped:
            return Maybe[ann]  # type: ignore[valid-type]
        return ann


@dataclasses.dataclass(frozen=True)
class InputShape:
    name: str
    kind: str
    entity: type
    fields: Tuple[ShapeField, ...]
    meta: Mapping[str, Any] = dataclasses.field(default_factory=lambda: MappingProxyType({}), compare=False)
    model: Optional[type] = dataclasses.field(default=None, compare=False, repr=False)

    @property
    def identifier(self) -> Optional[ShapeField]:
        for f in self.fields:
            if f.identifier:
                return f
        return None

    @property
    def value_fields(self) -> Tuple[ShapeField, ...]:
        """Fields other than the identifier."""
        return tuple(f for f in self.fields if not f.identifier)

    def field(self, name: str) -> ShapeField:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(name)

    def build(self, **values: Any) -> Any:
        """Instantiate the shape's model; update fields left out stay ``ABSENT``."""
        assert self.model is not None
        return self.model(**values)


def synthesize_create_shape(entity: type, settings: Optional[AutoQLSettings] = None) -> InputShape:
    settings = settings or AutoQLSettings()
    fields = tuple(
        ShapeField(name=f.name, type=f.type, nullable=f.nullable)
        for f in mutable_fields(entity)
    )
    name = add_input_name(entity.__name__, settings.input_suffix)
    return _finish(InputShape(
        name=name,
        kind=CREATE,
        entity=entity,
        fields=fields,
        meta=MappingProxyType(_entity_meta(entity)),
    ))


def synthesize_update_shape(
    entity: type,
    identifier: FieldDescriptor,
    settings: Optional[AutoQLSettings] = None,
) -> InputShape:
    settings = settings or AutoQLSettings()
    fields = [ShapeField(name=identifier.name, type=identifier.type, nullable=False, identifier=True)]
    for f in mutable_fields(entity):
        fields.append(ShapeField(name=f.name, type=f.type, nullable=f.nullable, wrapped=True))
    name = update_input_name(entity.__name__, settings.input_suffix)
    return _finish(InputShape(name=name, kind=UPDATE, entity=entity, fields=tuple(fields)))


def synthesize_shapes(
    entities: Iterable[type],
    identifier: FieldDescriptor,
    settings: Optional[AutoQLSettings] = None,
) -> Mapping[str, InputShape]:
    """Create and update shapes for every entity, keyed by shape name.

    Raises:
        NameCollisionError: two entities produce the same shape name.
    """
    out: Dict[str, InputShape] = {}
    for entity in entities:
        for shape in (
            synthesize_create_shape(entity, settings),
            synthesize_update_shape(entity, identifier, settings),
        ):
            prev = out.get(shape.name)
            if prev is not None:
                raise NameCollisionError(shape.name, prev.entity, entity)
            out[shape.name] = shape
            _logger.debug("autoql.shapes: %s fields=%s", shape.name, [f.name for f in shape.fields])
    return MappingProxyType(out)


def _finish(shape: InputShape) -> InputShape:
    specs = []
    for f in shape.fields:
        if f.wrapped:
            specs.append((f.name, f.annotation, dataclasses.field(default=ABSENT)))
        else:
            specs.append((f.name, f.annotation))
    # Identifier first keeps required arguments ahead of defaulted ones
    specs.sort(key=lambda s: len(s) == 3)
    model = dataclasses.make_dataclass(
        shape.name,
        specs,
        namespace={'__doc__': f"{shape.kind.capitalize()} input for {shape.entity.__name__}"},
    )
    model.__module__ = __name__
    return dataclasses.replace(shape, model=model)


def _entity_meta(entity: type) -> Dict[str, Any]:
    table = getattr(entity, '__table__', None)
    return dict(getattr(table, 'info', None) or {})


__all__ = [
    'CREATE', 'UPDATE', 'ShapeField', 'InputShape',
    'synthesize_create_shape', 'synthesize_update_shape', 'synthesize_shapes',
]
