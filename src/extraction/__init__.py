"""Recovery of canonical responses from model output."""

from .extractor import ResponseExtractor, extract, get_default_extractor, merge_defaults
from .rules import DEFAULT_RULES, apply_rules, parse_document

__all__ = [
    "DEFAULT_RULES",
    "ResponseExtractor",
    "apply_rules",
    "extract",
    "get_default_extractor",
    "merge_defaults",
    "parse_document",
]
