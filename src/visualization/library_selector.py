"""Decision table that picks a rendering library for a visualization spec."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

from src.utils.logger import get_logger
from src.visualization.normalizer import LIBRARY_TAGS, normalize_library_tag
from src.visualization.schema import THREE_DIMENSIONAL_TYPES, resolve_visualization_type

logger = get_logger("mathviz.library_selector")

FALLBACK_LIBRARY = "jsxgraph"

_LIBRARY_BY_TYPE: Dict[str, str] = {
    "function2D": "mafs",
    "functions2D": "mafs",
    "parametric2D": "mafs",
    "geometry": "mafs",
    "function3D": "mathbox",
    "parametric3D": "mathbox",
    "probabilityDistribution": "d3",
    "calculus": "jsxgraph",
    "vectorField": "jsxgraph",
    "linearAlgebra": "jsxgraph",
}


def _is_three_dimensional(spec: Mapping[str, Any], visualization_type: str) -> bool:
    if visualization_type in THREE_DIMENSIONAL_TYPES:
        return True
    for key in ("dimensionality", "space"):
        value = spec.get(key)
        if isinstance(value, str) and value.strip().upper() == "3D":
            return True
    return False


def select_library(spec: Mapping[str, Any], supported: Iterable[str] = LIBRARY_TAGS) -> str:
    """Picks the rendering library for `spec`.

    A supported `recommendedLibrary` wins; otherwise the choice follows the
    visualization type and dimensionality.

    Args:
        spec: Canonical visualization spec.
        supported: Library tags the caller can render.

    Returns:
        A library tag from `supported` when possible, else the fallback library.
    """
    allowed = {tag for tag in (normalize_library_tag(item) for item in supported) if tag}
    if not isinstance(spec, Mapping):
        return FALLBACK_LIBRARY

    recommended = normalize_library_tag(spec.get("recommendedLibrary"))
    if recommended and recommended in allowed:
        return recommended
    if spec.get("recommendedLibrary"):
        logger.debug("Ignoring unsupported recommended library %r", spec.get("recommendedLibrary"))

    visualization_type = resolve_visualization_type(spec.get("type"))
    if _is_three_dimensional(spec, visualization_type):
        candidates = ("mathbox", "three")
    else:
        candidates = (_LIBRARY_BY_TYPE.get(visualization_type, FALLBACK_LIBRARY), FALLBACK_LIBRARY)

    for candidate in candidates:
        if candidate in allowed:
            return candidate
    return FALLBACK_LIBRARY
