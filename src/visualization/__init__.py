"""Visualization schema, defaults and library adapters."""

from .defaults import DefaultsTable, defaults_for, get_defaults_table
from .library_selector import select_library
from .normalizer import LIBRARY_PROFILES, LIBRARY_TAGS, ParameterNormalizer, normalize_library_tag
from .schema import (
    FALLBACK_TYPE,
    VISUALIZATION_TYPES,
    coerce_interval,
    resolve_visualization_type,
    validate_response,
)

__all__ = [
    "DefaultsTable",
    "FALLBACK_TYPE",
    "LIBRARY_PROFILES",
    "LIBRARY_TAGS",
    "ParameterNormalizer",
    "VISUALIZATION_TYPES",
    "coerce_interval",
    "defaults_for",
    "get_defaults_table",
    "normalize_library_tag",
    "resolve_visualization_type",
    "select_library",
    "validate_response",
]
