"""AutoQL public API and lightweight lazy exports.

This __init__ avoids importing Strawberry and SQLAlchemy at import time so
model modules can import the small helpers (``Maybe``, ``ABSENT``) cheaply.

Exposes:
- AutoSchema, AutoQLSettings, EntityRegistry
- the tri-state wrapper: Maybe, Present, ABSENT
- merge helpers: copy_shared_fields, apply_field_changes
- the error hierarchy (AutoQLError and subclasses)
"""
from __future__ import annotations

from .optional import ABSENT, Absent, Maybe, Present, present

_LAZY = {
    'AutoSchema': 'schema',
    'ErrorCodeExtension': 'schema',
    'AutoQLSettings': 'config',
    'EntityRegistry': 'registry',
    'SchemaPlan': 'operations',
    'OperationKind': 'operations',
    'Capabilities': 'operations',
    'invoke': 'operations',
    'describe': 'introspection',
    'copy_shared_fields': 'merge',
    'apply_field_changes': 'merge',
    'SortEnumType': 'filters',
    'register_operator': 'filters',
}

_ERRORS = {
    'AutoQLError', 'SynthesisError', 'NameCollisionError', 'IdentifierError', 'IntrospectionError',
    'InputValidationError', 'MergeValidationError', 'NullAssignmentError', 'IdentifierMismatchError',
    'IdentifierDecodeError', 'PageSizeError',
    'LookupFailedError', 'EntityNotFoundError', 'AmbiguousResultError',
}


def __getattr__(name: str):  # PEP 562 lazy exports
    import importlib as _importlib
    module = _LAZY.get(name)
    if module is not None:
        return getattr(_importlib.import_module(f"{__name__}.{module}"), name)
    if name in _ERRORS:
        return getattr(_importlib.import_module(f"{__name__}.errors"), name)
    raise AttributeError(name)


__all__ = [
    'ABSENT', 'Absent', 'Maybe', 'Present', 'present',
    *_LAZY.keys(),
    *sorted(_ERRORS),
]
