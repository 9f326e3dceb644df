from __future__ import annotations
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper

from .errors import IdentifierError, NameCollisionError, SynthesisError
from .introspection import FieldDescriptor, describe, identifier_field

_logger = logging.getLogger("autoql")


class EntityRegistry:
    """Immutable, ordered snapshot of the entity classes served by a schema.

    Entities either come from an explicit list or are discovered by walking the
    subclasses of ``marker`` (abstract and unmapped classes are skipped). The
    marker declares the identifier field shared by every entity.

    Example:
        registry = EntityRegistry(EntityBase)                 # discovery
        registry = EntityRegistry(EntityBase, [Thing, Other])  # explicit
    """

    __slots__ = ('_marker', '_entities', '_by_name', '_identifier')

    def __init__(self, marker: type, entities: Optional[Iterable[type]] = None):
        if not isinstance(marker, type):
            raise SynthesisError(f"Entity marker must be a class, got {marker!r}")
        found = list(entities) if entities is not None else discover(marker)
        by_name: Dict[str, type] = {}
        ordered: List[type] = []
        for cls in found:
            if cls in ordered:
                continue
            if not (isinstance(cls, type) and issubclass(cls, marker)) or cls is marker:
                raise SynthesisError(f"{cls!r} is not an entity derived from {marker.__name__}")
            if not _is_mapped(cls):
                raise SynthesisError(f"{cls.__name__} is not a mapped SQLAlchemy class")
            other = by_name.get(cls.__name__)
            if other is not None:
                raise NameCollisionError(cls.__name__, other, cls)
            by_name[cls.__name__] = cls
            ordered.append(cls)
        self._marker = marker
        self._entities: Tuple[type, ...] = tuple(ordered)
        self._by_name = by_name
        self._identifier: Optional[FieldDescriptor] = None
        _logger.debug("autoql.registry: %s -> %s", marker.__name__, [c.__name__ for c in ordered])

    @property
    def marker(self) -> type:
        return self._marker

    def enumerate(self) -> Tuple[type, ...]:
        return self._entities

    def describe(self, cls: type) -> Tuple[FieldDescriptor, ...]:
        return describe(cls)

    def get(self, name: str) -> Optional[type]:
        return self._by_name.get(name)

    @property
    def identifier(self) -> FieldDescriptor:
        """Identifier field declared on the marker, validated against every entity."""
        if self._identifier is None:
            ident = identifier_field(self._marker)
            for cls in self._entities:
                _check_primary_key(cls, ident)
            self._identifier = ident
        return self._identifier

    def __iter__(self) -> Iterator[type]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, cls: object) -> bool:
        return cls in self._entities

    def __repr__(self) -> str:
        return f"EntityRegistry({self._marker.__name__}, {[c.__name__ for c in self._entities]})"


def discover(marker: type) -> List[type]:
    """Depth-first walk of ``marker``'s subclasses in definition order."""
    out: List[type] = []
    seen = set()

    def _walk(cls: type) -> None:
        for sub in cls.__subclasses__():
            if sub in seen:
                continue
            seen.add(sub)
            if _is_mapped(sub) and not sub.__dict__.get('__abstract__', False):
                out.append(sub)
            _walk(sub)

    _walk(marker)
    return out


def _is_mapped(cls: type) -> bool:
    return isinstance(sa_inspect(cls, raiseerr=False), Mapper)


def _check_primary_key(cls: type, ident: FieldDescriptor) -> None:
    mapper = sa_inspect(cls)
    pk_cols: Sequence = list(mapper.primary_key)
    if len(pk_cols) != 1:
        raise IdentifierError(f"{cls.__name__} must have a single-column primary key, found {len(pk_cols)}")
    prop = mapper.get_property_by_column(pk_cols[0])
    if prop.key != ident.name:
        raise IdentifierError(
            f"{cls.__name__} primary key {prop.key!r} does not match identifier {ident.name!r}"
        )


__all__ = ['EntityRegistry', 'discover']
