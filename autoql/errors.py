"""Exception hierarchy for AutoQL.

Three families are kept apart so the serving layer can map them to response
categories:

- :class:`SynthesisError` is raised while deriving shapes and operations and
  aborts startup.
- :class:`InputValidationError` reports an illegal input value (bad request).
- :class:`LookupFailedError` reports a missing or ambiguous target (not found).

Storage errors are never wrapped; they surface as the persistence layer raised
them.
"""
from __future__ import annotations

from typing import Any, Optional


class AutoQLError(Exception):
    """Base class for every error raised by AutoQL itself."""

    code = "INTERNAL"


# --- Synthesis (fatal) ---------------------------------------------------------

class SynthesisError(AutoQLError):
    code = "SYNTHESIS"


class NameCollisionError(SynthesisError):
    def __init__(self, name: str, first: Any, second: Any):
        self.name = name
        self.first = first
        self.second = second
        super().__init__(
            f"Synthesized name {name!r} is produced by both {_label(first)} and {_label(second)}"
        )


class IdentifierError(SynthesisError):
    pass


class IntrospectionError(SynthesisError):
    def __init__(self, cls: Any, reason: str):
        self.cls = cls
        super().__init__(f"Cannot introspect {_label(cls)}: {reason}")


# --- Validation (bad request) ----------------------------------------------------

class InputValidationError(AutoQLError):
    code = "BAD_REQUEST"


class MergeValidationError(InputValidationError):
    pass


class NullAssignmentError(MergeValidationError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Cannot assign null to non-nullable property: {field}")


class IdentifierMismatchError(InputValidationError):
    def __init__(self, expected: Any, got: Any):
        self.expected = expected
        self.got = got
        super().__init__(f"Identifier in payload ({got!r}) does not match the target identifier ({expected!r})")


class IdentifierDecodeError(InputValidationError):
    def __init__(self, raw: Any, target: Any):
        self.raw = raw
        self.target = target
        super().__init__(f"Cannot decode identifier {raw!r} as {_label(target)}")


class PageSizeError(InputValidationError):
    def __init__(self, requested: int, maximum: int):
        self.requested = requested
        self.maximum = maximum
        super().__init__(f"Requested page size {requested} exceeds the maximum of {maximum}")


# --- Lookup (not found) -----------------------------------------------------------

class LookupFailedError(AutoQLError):
    code = "NOT_FOUND"

    def __init__(self, entity: Any, identifier: Any, message: Optional[str] = None):
        self.entity = entity
        self.identifier = identifier
        super().__init__(message or f"{_label(entity)} with identifier {identifier!r} could not be resolved")


class EntityNotFoundError(LookupFailedError):
    def __init__(self, entity: Any, identifier: Any):
        super().__init__(entity, identifier, f"{_label(entity)} with identifier {identifier!r} not found")


class AmbiguousResultError(LookupFailedError):
    def __init__(self, entity: Any, identifier: Any, count: int):
        self.count = count
        super().__init__(entity, identifier, f"{_label(entity)} identifier {identifier!r} matched {count} rows; expected exactly one")


def _label(obj: Any) -> str:
    mod = getattr(obj, '__module__', None)
    name = getattr(obj, '__qualname__', None) or getattr(obj, '__name__', None)
    if name is None:
        return repr(obj)
    return f"{mod}.{name}" if mod else name


__all__ = [
    'AutoQLError',
    'SynthesisError', 'NameCollisionError', 'IdentifierError', 'IntrospectionError',
    'InputValidationError', 'MergeValidationError', 'NullAssignmentError', 'IdentifierMismatchError',
    'IdentifierDecodeError', 'PageSizeError',
    'LookupFailedError', 'EntityNotFoundError', 'AmbiguousResultError',
]
