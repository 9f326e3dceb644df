"""Tri-state optional wrapper used by update shapes.

A field of an update payload is in exactly one of three states:

- ``ABSENT``            the caller did not supply the field; leave it alone
- ``Present(None)``     the caller explicitly asked for null
- ``Present(value)``    the caller supplied a value

``Maybe[T]`` is the annotation form (``Union[Absent, Present[T]]``). The
transport boundary builds one wrapper per supplied field with
:func:`from_transport`; the merge engine consumes it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Tuple, TypeVar, Union, get_args, get_origin

T = TypeVar('T')


class Absent:
    """Marker for a field that was not supplied. Use the ``ABSENT`` singleton."""

    __slots__ = ()
    _instance: "Absent | None" = None
    has_value = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return 'ABSENT'

    def __reduce__(self):
        return (Absent, ())


ABSENT = Absent()


@dataclass(frozen=True)
class Present(Generic[T]):
    """A supplied value; ``value`` may be ``None`` for an explicit null."""

    value: T
    has_value = True


Maybe = Union[Absent, Present[T]]


def present(value: Any) -> Present[Any]:
    return Present(value)


def is_maybe_annotation(annotation: Any) -> bool:
    return unwrap_maybe_annotation(annotation)[0]


def unwrap_maybe_annotation(annotation: Any) -> Tuple[bool, Any]:
    """Return ``(True, T)`` for ``Maybe[T]`` and ``(False, annotation)`` otherwise."""
    if get_origin(annotation) is not Union:
        return False, annotation
    args = get_args(annotation)
    if Absent not in args:
        return False, annotation
    rest = [a for a in args if a is not Absent]
    if len(rest) != 1 or get_origin(rest[0]) is not Present:
        return False, annotation
    inner = get_args(rest[0])
    return True, (inner[0] if inner else Any)


def from_transport(value: Any, *, unset: Any) -> Union[Absent, Present[Any]]:
    """Wrap a raw transport value; ``unset`` is the transport's "not supplied" marker."""
    if value is unset:
        return ABSENT
    return Present(value)


__all__ = [
    'Absent', 'ABSENT', 'Present', 'Maybe', 'present',
    'is_maybe_annotation', 'unwrap_maybe_annotation', 'from_transport',
]
