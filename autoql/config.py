"""Runtime settings for schema synthesis."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

_logger = logging.getLogger("autoql")

_TRUE = ('1', 'true', 't', 'yes', 'y', 'on')
_FALSE = ('0', 'false', 'f', 'no', 'n', 'off')


@dataclass(frozen=True)
class AutoQLSettings:
    """Synthesis knobs.

    Attributes:
        default_page_size: Page size used by collection operations when the
            caller does not pass ``take``.
        max_page_size: Largest ``take`` a caller may request.
        include_total_count: Whether collection segments expose ``totalCount``.
        input_suffix: Suffix appended to synthesized input shape names.
    """

    default_page_size: int = 100
    max_page_size: int = 1_000
    include_total_count: bool = True
    input_suffix: str = "Input"

    def __post_init__(self):
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be positive")
        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size must be >= default_page_size")
        if not self.input_suffix:
            raise ValueError("input_suffix must not be empty")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AutoQLSettings":
        """Build settings from ``AUTOQL_*`` environment variables.

        Unset variables keep the defaults. Malformed values raise ``ValueError``.
        """
        env = os.environ if environ is None else environ
        kwargs = {}
        raw = env.get('AUTOQL_DEFAULT_PAGE_SIZE')
        if raw:
            kwargs['default_page_size'] = int(raw)
        raw = env.get('AUTOQL_MAX_PAGE_SIZE')
        if raw:
            kwargs['max_page_size'] = int(raw)
        raw = env.get('AUTOQL_INCLUDE_TOTAL_COUNT')
        if raw:
            kwargs['include_total_count'] = _parse_bool('AUTOQL_INCLUDE_TOTAL_COUNT', raw)
        raw = env.get('AUTOQL_INPUT_SUFFIX')
        if raw:
            kwargs['input_suffix'] = raw
        settings = cls(**kwargs)
        _logger.debug("autoql settings from env: %r", settings)
        return settings


def _parse_bool(name: str, raw: str) -> bool:
    val = raw.strip().lower()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


__all__ = ['AutoQLSettings']
