"""Typed contracts for canonical responses and visualization specs."""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional, TypedDict

FALLBACK_TYPE = "geometry"

VISUALIZATION_TYPES = (
    "function2D",
    "functions2D",
    "function3D",
    "parametric2D",
    "parametric3D",
    "vectorField",
    "geometry",
    "calculus",
    "probabilityDistribution",
    "linearAlgebra",
)

THREE_DIMENSIONAL_TYPES = frozenset({"function3D", "parametric3D"})

INTERVAL_KEYS = ("domain", "range", "zRange", "domainX", "domainY", "domainZ", "parameterRange")

_TYPE_ALIASES = {
    "function": "function2D",
    "function2d": "function2D",
    "2dfunction": "function2D",
    "graph": "function2D",
    "plot": "function2D",
    "functions": "functions2D",
    "functions2d": "functions2D",
    "multiplefunctions": "functions2D",
    "function3d": "function3D",
    "3dfunction": "function3D",
    "surface": "function3D",
    "parametric": "parametric2D",
    "parametric2d": "parametric2D",
    "parametriccurve": "parametric2D",
    "parametric3d": "parametric3D",
    "parametricsurface": "parametric3D",
    "vectorfield": "vectorField",
    "geometry": "geometry",
    "geometric": "geometry",
    "calculus": "calculus",
    "integral": "calculus",
    "derivative": "calculus",
    "probabilitydistribution": "probabilityDistribution",
    "probability": "probabilityDistribution",
    "distribution": "probabilityDistribution",
    "statistics": "probabilityDistribution",
    "linearalgebra": "linearAlgebra",
    "matrix": "linearAlgebra",
}


class Step(TypedDict):
    title: str
    content: str


class Exercise(TypedDict):
    question: str
    solution: str


class EducationalContent(TypedDict):
    title: str
    summary: str
    steps: List[Step]
    keyInsights: List[str]
    exercises: List[Exercise]


class VisualizationSpec(TypedDict, total=False):
    type: str
    title: str
    domain: List[float]
    range: List[float]
    zRange: List[float]
    recommendedLibrary: str
    expression: str
    functions: List[Dict[str, Any]]
    elements: List[Dict[str, Any]]
    parameterRanges: List[List[float]]


class CanonicalResponse(TypedDict):
    explanation: str
    visualizationParams: VisualizationSpec
    educationalContent: EducationalContent
    followUpQuestions: List[str]


def resolve_visualization_type(raw_type: Any) -> str:
    """Maps a raw `type` value onto the closed set.

    Missing or non-string values fall back to `geometry`; spelling variants are
    resolved through aliases; unrecognized strings are returned verbatim.
    """
    if not isinstance(raw_type, str) or not raw_type.strip():
        return FALLBACK_TYPE
    candidate = raw_type.strip()
    if candidate in VISUALIZATION_TYPES:
        return candidate
    key = re.sub(r"[\s_\-]+", "", candidate).lower()
    return _TYPE_ALIASES.get(key, candidate)


def is_known_type(visualization_type: str) -> bool:
    return visualization_type in VISUALIZATION_TYPES


def coerce_interval(value: Any) -> Optional[List[float]]:
    """Returns a finite `[min, max]` pair, swapping inverted bounds.

    Returns None for anything that is not two finite, distinct numbers.
    """
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return None
    bounds: List[float] = []
    for item in value:
        if isinstance(item, bool):
            return None
        try:
            number = float(item)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(number):
            return None
        bounds.append(number)
    low, high = bounds
    if low == high:
        return None
    if low > high:
        low, high = high, low
    return [_compact_number(low), _compact_number(high)]


def _compact_number(value: float) -> Any:
    if value.is_integer():
        return int(value)
    return value


def validate_response(response: Any) -> List[str]:
    """Collects structural problems of a decoded response object.

    Args:
        response: Candidate canonical response.

    Returns:
        Human-readable error list; empty when the object is complete.
    """
    if not isinstance(response, dict):
        return ["Response must be an object"]

    errors: List[str] = []
    if not response.get("explanation"):
        errors.append("Missing required field: explanation")

    params = response.get("visualizationParams")
    if not isinstance(params, dict):
        errors.append("Missing required field: visualizationParams")
    elif not params.get("type"):
        errors.append("Missing required field: visualizationParams.type")
    else:
        errors.extend(_validate_params_by_type(params))

    education = response.get("educationalContent")
    if education is not None and not isinstance(education, dict):
        errors.append("educationalContent must be an object")
    elif isinstance(education, dict):
        for key in ("steps", "keyInsights", "exercises"):
            if key in education and not isinstance(education[key], list):
                errors.append("educationalContent.{} must be an array".format(key))

    follow_ups = response.get("followUpQuestions")
    if follow_ups is not None and not isinstance(follow_ups, list):
        errors.append("followUpQuestions must be an array")

    return errors


def _validate_params_by_type(params: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    kind = params.get("type")

    for key in INTERVAL_KEYS:
        if key in params and coerce_interval(params[key]) is None:
            errors.append("Invalid interval for {}: {}".format(kind, key))

    if kind in ("function2D", "function3D") and not params.get("expression"):
        errors.append("Missing required field for {}: expression".format(kind))
    elif kind == "functions2D":
        functions = params.get("functions")
        if not isinstance(functions, list) or not functions:
            errors.append("Missing required field for functions2D: functions array")
        else:
            for index, item in enumerate(functions):
                if not isinstance(item, dict) or not item.get("expression"):
                    errors.append("Missing expression for function at index {}".format(index))
    elif kind in ("parametric2D", "parametric3D"):
        axes = ("x", "y") if kind == "parametric2D" else ("x", "y", "z")
        expressions = params.get("expressions")
        if not isinstance(expressions, dict) or not all(expressions.get(axis) for axis in axes):
            errors.append("Missing required {} expressions for {}".format("/".join(axes), kind))
    elif kind == "vectorField":
        if not isinstance(params.get("expressions"), dict):
            errors.append("Missing required field for vectorField: expressions")
    elif kind == "geometry":
        if not isinstance(params.get("elements"), list):
            errors.append("Missing required field for geometry: elements array")
    elif kind == "calculus":
        function = params.get("function")
        if not isinstance(function, dict) or not function.get("expression"):
            errors.append("Missing required function expression for calculus")
    elif kind == "probabilityDistribution":
        distribution = params.get("distribution")
        if not isinstance(distribution, dict) or not distribution.get("name"):
            errors.append("Missing required distribution name for probabilityDistribution")
    elif kind == "linearAlgebra":
        if params.get("subtype", "transformation") == "transformation" and not isinstance(params.get("matrix"), list):
            errors.append("Missing required transformation matrix for linearAlgebra")

    return errors
