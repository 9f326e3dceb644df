"""Naming helpers shared by the synthesizers.

Every synthesized name is derived from the entity class name plus a fixed
prefix/suffix, so the same entity set yields the same names on every start.
"""
from __future__ import annotations

import re

__all__ = [
    "camel_to_snake", "snake_to_camel",
    "add_input_name", "update_input_name", "filter_input_name", "list_filter_input_name", "sort_input_name",
    "segment_name", "collection_operation_name", "by_id_operation_name",
    "add_operation_name", "update_operation_name",
]


def camel_to_snake(name: str) -> str:
    """Convert camelCase or PascalCase identifier to snake_case.

    Idempotent for already snake_case input. Handles sequences of capitals.
    """
    if not isinstance(name, str) or not name:
        return name  # type: ignore
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return s2.lower()


def snake_to_camel(name: str, upper_first: bool = False) -> str:
    """Convert snake_case identifier to camelCase or PascalCase.

    upper_first=False returns lowerCamelCase (default), True returns UpperCamelCase.
    Idempotent for already camelCase strings without underscores.
    """
    if not isinstance(name, str) or not name:
        return name  # type: ignore
    if '_' not in name:
        if upper_first:
            return name[0].upper() + name[1:]
        return name
    parts = [p for p in name.split('_') if p]
    if not parts:
        return ''
    first = parts[0].lower() if not upper_first else parts[0].capitalize()
    rest = ''.join(p.capitalize() for p in parts[1:])
    return first + rest


def add_input_name(entity_name: str, suffix: str = "Input") -> str:
    return f"Add{entity_name}{suffix}"


def update_input_name(entity_name: str, suffix: str = "Input") -> str:
    return f"Update{entity_name}{suffix}"


def filter_input_name(entity_name: str) -> str:
    return f"{entity_name}FilterInput"


def sort_input_name(entity_name: str) -> str:
    return f"{entity_name}SortInput"


def segment_name(entity_name: str) -> str:
    return f"{entity_name}CollectionSegment"


def collection_operation_name(entity_name: str) -> str:
    return f"{entity_name}Set"


def by_id_operation_name(entity_name: str) -> str:
    return f"{entity_name}ById"


def add_operation_name(entity_name: str) -> str:
    return f"Add{entity_name}"


def update_operation_name(entity_name: str) -> str:
    return f"Update{entity_name}"


def list_filter_input_name(entity_name: str) -> str:
    return f"{entity_name}ListFilterInput"
