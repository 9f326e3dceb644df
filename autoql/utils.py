from __future__ import annotations
import asyncio
import logging
from typing import Any, Iterator, List, Set

from .naming import camel_to_snake

_logger = logging.getLogger("autoql")

# --- Context helpers ---
SESSION_KEYS = ('db_session', 'db', 'session', 'async_session')


def get_db_session(info_or_ctx: Any) -> Any | None:
    """Best-effort extraction of an AsyncSession-like object from context.

    Accepts either a Strawberry ``Info`` or a plain context object/dict. Tries
    common keys/attributes in order: ``db_session``, ``db``, ``session``,
    ``async_session``.

    Returns:
        The session object if found; otherwise ``None``.
    """
    if info_or_ctx is None:
        return None
    ctx = getattr(info_or_ctx, 'context', info_or_ctx)
    if ctx is None:
        return None
    if isinstance(ctx, dict):
        for k in SESSION_KEYS:
            v = ctx.get(k)
            if v is not None:
                return v
        return None
    get = getattr(ctx, 'get', None)
    if callable(get):
        for k in SESSION_KEYS:
            try:
                v = get(k, None)
            except (TypeError, KeyError):
                v = None
            if v is not None:
                return v
    for k in SESSION_KEYS:
        v = getattr(ctx, k, None)
        if v is not None:
            return v
    return None


LOCK_KEY = '_autoql_db_lock'


def get_context_lock(info_or_ctx: Any) -> asyncio.Lock:
    """Per-request ``asyncio.Lock`` stored on the context to serialize session I/O.

    Sibling fields resolve concurrently while an ``AsyncSession`` does not allow
    concurrent operations, so every resolver that touches the session holds it.
    The context must be a dict or accept attribute assignment.

    Raises:
        TypeError: the context can hold no lock, so resolvers could not share one.
    """
    ctx = getattr(info_or_ctx, 'context', info_or_ctx)
    if isinstance(ctx, dict):
        lock = ctx.get(LOCK_KEY)
        if lock is None:
            lock = ctx[LOCK_KEY] = asyncio.Lock()
        return lock
    lock = getattr(ctx, LOCK_KEY, None)
    if lock is None:
        lock = asyncio.Lock()
        try:
            setattr(ctx, LOCK_KEY, lock)
        except AttributeError as exc:
            raise TypeError(
                f"GraphQL context of type {type(ctx).__name__} must be a dict or accept attributes"
            ) from exc
    return lock


# --- Selection helpers ---

def iter_fields(selections: Any) -> Iterator[Any]:
    """Yield selected fields, flattening fragment spreads and inline fragments."""
    for sel in selections or []:
        if getattr(sel, 'name', None) is not None and not hasattr(sel, 'type_condition'):
            yield sel
        else:
            yield from iter_fields(getattr(sel, 'selections', None))


def selected_children(info: Any, *path: str) -> List[Any]:
    """Selections below the current field, following ``path`` (GraphQL names)."""
    current: List[Any] = []
    for root in getattr(info, 'selected_fields', None) or []:
        current.extend(iter_fields(getattr(root, 'selections', None)))
    for step in path:
        nxt: List[Any] = []
        for sel in current:
            if sel.name == step:
                nxt.extend(iter_fields(getattr(sel, 'selections', None)))
        current = nxt
    return current


def selected_names(info: Any, *path: str) -> Set[str]:
    """Python attribute names selected at ``path`` (camelCase mapped back to snake_case)."""
    return {camel_to_snake(sel.name) for sel in selected_children(info, *path)}


__all__ = ['SESSION_KEYS', 'get_db_session', 'get_context_lock', 'iter_fields', 'selected_children', 'selected_names']
