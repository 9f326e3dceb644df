"""Copy and partial-update merge between payload objects and entities.

Fields are paired by ``(name, underlying type)``; a field present on both sides
under the same name but with a different underlying type is skipped.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple, TypeVar

from .errors import NullAssignmentError
from .introspection import FieldDescriptor, describe
from .optional import Absent, Present

_logger = logging.getLogger("autoql")

D = TypeVar('D')


def shared_fields(source_type: type, destination_type: type) -> List[Tuple[FieldDescriptor, FieldDescriptor]]:
    """Pairs of (source field, destination field) sharing name and underlying type.

    Source fields must be readable, destination fields writable.
    """
    src = [f for f in describe(source_type, declared_only=False, writable_only=False) if f.readable]
    dst: Dict[str, FieldDescriptor] = {
        f.name: f for f in describe(destination_type, declared_only=False, writable_only=True)
    }
    pairs = []
    for s in src:
        d = dst.get(s.name)
        if d is None:
            continue
        if s.type != d.type:
            _logger.debug(
                "autoql.merge: skip %s (%r vs %r)", s.name, s.type, d.type,
            )
            continue
        pairs.append((s, d))
    return pairs


def copy_shared_fields(source: Any, destination: D) -> D:
    """Assign every shared field of ``source`` onto ``destination``.

    No null checks are made; values are copied as they are.
    """
    for s, d in shared_fields(type(source), type(destination)):
        setattr(destination, d.name, getattr(source, s.name))
    return destination


def apply_field_changes(source: Any, destination: D) -> D:
    """Merge the tri-state fields of ``source`` into ``destination``.

    For each ``Maybe`` field of the source: ``ABSENT`` leaves the destination
    untouched, ``Present(None)`` clears a nullable destination field, and
    ``Present(value)`` assigns ``value``.

    Raises:
        NullAssignmentError: explicit null for a non-nullable destination field.
            Raised before any assignment, so ``destination`` is unchanged.
    """
    writes: List[Tuple[str, Any]] = []
    for s, d in shared_fields(type(source), type(destination)):
        if not s.wrapped:
            continue
        raw = getattr(source, s.name)
        if isinstance(raw, Absent):
            continue
        value = raw.value if isinstance(raw, Present) else raw
        if value is None and not d.nullable:
            raise NullAssignmentError(d.name)
        writes.append((d.name, value))
    for name, value in writes:
        setattr(destination, name, value)
    _logger.debug("autoql.merge: %s <- %s", type(destination).__name__, [n for n, _ in writes])
    return destination


__all__ = ['shared_fields', 'copy_shared_fields', 'apply_field_changes']
