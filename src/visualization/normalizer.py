"""Conversion of canonical visualization parameters into rendering-library shapes."""

from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from src.tools.expression import BARE, NOTATIONS, QUALIFIED, EvaluationError, ExpressionEvaluator
from src.tools.sampler import DEFAULT_STEPS, sample_expression
from src.utils.logger import get_logger
from src.visualization.defaults import DefaultsTable, get_defaults_table
from src.visualization.schema import coerce_interval

logger = get_logger("mathviz.normalizer")

INTERVAL_PAIR = "interval_pair"
BOUNDING_BOX = "bounding_box"
FLAT = "flat"
TAGGED = "tagged"

LIBRARY_TAGS = ("generic", "mafs", "jsxgraph", "mathbox", "three", "d3")

_LIBRARY_ALIASES = {
    "canonical": "generic",
    "default": "generic",
    "jsx": "jsxgraph",
    "mathboxjs": "mathbox",
    "threejs": "three",
    "d3js": "d3",
}

DEFAULT_MARGIN = {"top": 40, "right": 40, "bottom": 60, "left": 60}
DEFAULT_LEGEND = {"show": True, "position": "top-right"}
DEFAULT_THREE_RESOLUTION = 64

_HEX_COLOR = re.compile(r"^(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


@dataclass(frozen=True)
class LibraryProfile:
    """Data-shape contract of one rendering back-end."""

    interval_shape: str
    element_shape: str
    dimensions: int
    sampled: bool
    notation: str


LIBRARY_PROFILES: Dict[str, LibraryProfile] = {
    "generic": LibraryProfile(INTERVAL_PAIR, TAGGED, 2, False, QUALIFIED),
    "mafs": LibraryProfile(INTERVAL_PAIR, FLAT, 2, False, QUALIFIED),
    "jsxgraph": LibraryProfile(BOUNDING_BOX, TAGGED, 2, False, BARE),
    "mathbox": LibraryProfile(INTERVAL_PAIR, FLAT, 3, False, BARE),
    "three": LibraryProfile(INTERVAL_PAIR, FLAT, 3, False, QUALIFIED),
    "d3": LibraryProfile(INTERVAL_PAIR, FLAT, 2, True, QUALIFIED),
}


def normalize_library_tag(tag: Any) -> Optional[str]:
    """Returns the canonical library tag, or None for unsupported libraries."""
    if not isinstance(tag, str):
        return None
    key = re.sub(r"[\s._\-]+", "", tag).lower()
    key = _LIBRARY_ALIASES.get(key, key)
    return key if key in LIBRARY_PROFILES else None


@dataclass
class _ConversionContext:
    evaluator: ExpressionEvaluator
    defaults: DefaultsTable
    sample_steps: int
    default_z_range: List[float] = field(default_factory=lambda: [-1.0, 1.0])


def _pair(value: Any) -> Optional[List[float]]:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    try:
        return [float(value[0]), float(value[1])]
    except (TypeError, ValueError):
        return None


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _compact(value: float) -> Any:
    if math.isfinite(value) and float(value).is_integer():
        return int(value)
    return value


def _copy_keys(source: Dict[str, Any], target: Dict[str, Any], keys: Sequence[str]) -> None:
    for key in keys:
        if key in source:
            target[key] = source[key]


# Interval shape: {domain, range} <-> boundingBox [xmin, ymax, xmax, ymin].


def _to_bounding_box(params: Dict[str, Any], context: _ConversionContext) -> None:
    domain = _pair(params.get("domain"))
    value_range = _pair(params.get("range"))
    if domain is None or value_range is None:
        return
    params["boundingBox"] = [params["domain"][0], params["range"][1], params["domain"][1], params["range"][0]]
    params.pop("domain")
    params.pop("range")


def _from_bounding_box(params: Dict[str, Any], context: _ConversionContext) -> None:
    box = params.get("boundingBox")
    if not isinstance(box, (list, tuple)) or len(box) != 4:
        return
    params["domain"] = [box[0], box[2]]
    params["range"] = [box[3], box[1]]
    params.pop("boundingBox")


# Element shape: flat points/lines/vectors/circles <-> tagged `elements`.


def _flat_to_tagged(params: Dict[str, Any], context: _ConversionContext) -> None:
    elements = list(params.get("elements") or [])
    produced = False

    for point in params.pop("points", None) or []:
        if not isinstance(point, dict):
            continue
        element: Dict[str, Any] = {"type": "point", "coords": [point.get("x", 0), point.get("y", 0)]}
        _copy_keys(point, element, ("color", "size"))
        label = point.get("label", point.get("name"))
        if label is not None:
            element["name"] = label
        elements.append(element)
        produced = True

    for line in params.pop("lines", None) or []:
        if not isinstance(line, dict):
            continue
        anchor = _pair(line.get("point")) or [0.0, 0.0]
        slope = _finite_number(line.get("slope"))
        if line.get("vertical") or slope is None:
            if line.get("slope") is not None and not line.get("vertical"):
                logger.debug("Line slope %r is not a finite number; treating line as vertical", line.get("slope"))
            second = [anchor[0], anchor[1] + 1]
        else:
            second = [anchor[0] + 1, anchor[1] + slope]
        element = {
            "type": "line",
            "point1": [_compact(anchor[0]), _compact(anchor[1])],
            "point2": [_compact(second[0]), _compact(second[1])],
        }
        _copy_keys(line, element, ("color", "width"))
        elements.append(element)
        produced = True

    for vector in params.pop("vectors", None) or []:
        if not isinstance(vector, dict) or vector.get("tip") is None:
            continue
        element = {"type": "arrow", "point1": vector.get("tail") or [0, 0], "point2": vector["tip"]}
        _copy_keys(vector, element, ("color", "width"))
        label = vector.get("label", vector.get("name"))
        if label is not None:
            element["name"] = label
        elements.append(element)
        produced = True

    for circle in params.pop("circles", None) or []:
        if not isinstance(circle, dict):
            continue
        element = {"type": "circle", "center": circle.get("center") or [0, 0], "radius": circle.get("radius", 1)}
        _copy_keys(circle, element, ("color", "fillColor", "fillOpacity"))
        elements.append(element)
        produced = True

    if produced or "elements" in params:
        params["elements"] = elements


def _tagged_to_flat(params: Dict[str, Any], context: _ConversionContext) -> None:
    elements = params.get("elements")
    if not isinstance(elements, list):
        return

    points = list(params.get("points") or [])
    lines = list(params.get("lines") or [])
    vectors = list(params.get("vectors") or [])
    circles = list(params.get("circles") or [])
    remaining: List[Any] = []

    for element in elements:
        kind = element.get("type") if isinstance(element, dict) else None
        if kind == "point" and _pair(element.get("coords")) is not None:
            coords = element["coords"]
            point: Dict[str, Any] = {"x": coords[0], "y": coords[1]}
            _copy_keys(element, point, ("color", "size"))
            if element.get("name") is not None:
                point["label"] = element["name"]
            points.append(point)
        elif kind == "line" and _pair(element.get("point1")) and _pair(element.get("point2")):
            lines.append(_line_from_points(element))
        elif kind in ("arrow", "vector") and element.get("point2") is not None:
            vector: Dict[str, Any] = {"tail": element.get("point1") or [0, 0], "tip": element["point2"]}
            _copy_keys(element, vector, ("color", "width"))
            if element.get("name") is not None:
                vector["label"] = element["name"]
            vectors.append(vector)
        elif kind == "circle" and element.get("radius") is not None:
            circle: Dict[str, Any] = {"center": element.get("center") or [0, 0], "radius": element["radius"]}
            _copy_keys(element, circle, ("color", "fillColor", "fillOpacity"))
            circles.append(circle)
        else:
            remaining.append(element)

    for key, values in (("points", points), ("lines", lines), ("vectors", vectors), ("circles", circles)):
        if values:
            params[key] = values
    if remaining:
        params["elements"] = remaining
    else:
        params.pop("elements")


def _line_from_points(element: Dict[str, Any]) -> Dict[str, Any]:
    x1, y1 = _pair(element["point1"]) or [0.0, 0.0]
    x2, y2 = _pair(element["point2"]) or [0.0, 0.0]
    line: Dict[str, Any] = {"point": list(element["point1"][:2])}
    if x2 == x1:
        # Slope is undefined; renderers must draw x = x1 instead.
        line["slope"] = None
        line["vertical"] = True
    else:
        line["slope"] = _compact((y2 - y1) / (x2 - x1))
    _copy_keys(element, line, ("color", "width"))
    return line


# Dimensions: 2D -> 3D lift and 3D -> 2D projection.


def _lift_to_3d(params: Dict[str, Any], context: _ConversionContext) -> None:
    if coerce_interval(params.get("zRange")) is None:
        params["zRange"] = list(context.default_z_range)

    height = _surface_height(params.get("surfaceExpression"), context)

    points = params.get("points")
    if isinstance(points, list):
        lifted = []
        for point in points:
            if not isinstance(point, dict):
                continue
            x, y = point.get("x", 0), point.get("y", 0)
            item: Dict[str, Any] = {"x": x, "y": y, "z": height(x, y), "size": point.get("size", 0.1)}
            _copy_keys(point, item, ("color",))
            label = point.get("label", point.get("name"))
            if label is not None:
                item["label"] = label
            lifted.append(item)
        params["points3D"] = lifted

    vectors = params.get("vectors")
    if isinstance(vectors, list):
        lifted_vectors = []
        for vector in vectors:
            if not isinstance(vector, dict) or _pair(vector.get("tip")) is None:
                continue
            tail = vector.get("tail") or [0, 0]
            tip = vector["tip"]
            item = {"start": [tail[0], tail[1], 0], "end": [tip[0], tip[1], 0]}
            _copy_keys(vector, item, ("color",))
            lifted_vectors.append(item)
        params["vectors3D"] = lifted_vectors


def _surface_height(expression: Any, context: _ConversionContext) -> Callable[[Any, Any], float]:
    if not isinstance(expression, str) or not expression.strip():
        return lambda x, y: 0

    try:
        parsed = context.evaluator.parse(expression)
    except EvaluationError as exc:
        logger.warning("Surface expression could not be parsed; lifting at z=0: %s", exc)
        return lambda x, y: 0

    def height(x: Any, y: Any) -> float:
        try:
            value = context.evaluator.evaluate(parsed, {"x": x, "y": y, "z": 0, "t": 0, "u": 0, "v": 0})
        except (EvaluationError, TypeError, ValueError) as exc:
            logger.debug("Surface height unavailable at (%s, %s): %s", x, y, exc)
            return 0
        return value if math.isfinite(value) else 0

    return height


def _project_to_2d(params: Dict[str, Any], context: _ConversionContext) -> None:
    params.pop("zRange", None)
    points3d = params.pop("points3D", None)
    if isinstance(points3d, list) and not params.get("points"):
        projected = []
        for point in points3d:
            if not isinstance(point, dict):
                continue
            item = {"x": point.get("x", 0), "y": point.get("y", 0)}
            _copy_keys(point, item, ("color", "label"))
            projected.append(item)
        if projected:
            params["points"] = projected

    vectors3d = params.pop("vectors3D", None)
    if isinstance(vectors3d, list) and not params.get("vectors"):
        projected_vectors = []
        for vector in vectors3d:
            if not isinstance(vector, dict) or vector.get("end") is None:
                continue
            start = vector.get("start") or [0, 0, 0]
            item = {"tail": [start[0], start[1]], "tip": [vector["end"][0], vector["end"][1]]}
            _copy_keys(vector, item, ("color",))
            projected_vectors.append(item)
        if projected_vectors:
            params["vectors"] = projected_vectors


# Sampling: symbolic expression <-> discretized data.


def _sample_to_data(params: Dict[str, Any], context: _ConversionContext) -> None:
    domain = coerce_interval(params.get("domain")) or context.defaults.defaults_for(params.get("type")).get("domain")
    kind = params.get("type")

    if kind == "functions2D" and isinstance(params.get("functions"), list):
        series = []
        for index, function in enumerate(params["functions"]):
            if not isinstance(function, dict) or not function.get("expression"):
                continue
            entry: Dict[str, Any] = {
                "label": function.get("label") or "f{}(x)".format(index + 1),
                "data": _safe_samples(function["expression"], domain, context),
            }
            _copy_keys(function, entry, ("color",))
            series.append(entry)
        params["series"] = series
    else:
        expression = params.get("expression")
        if not expression and isinstance(params.get("function"), dict):
            expression = params["function"].get("expression")
        if isinstance(expression, str) and expression.strip():
            params["data"] = _safe_samples(expression, domain, context)

    params.setdefault("margin", dict(DEFAULT_MARGIN))
    params.setdefault("legend", dict(DEFAULT_LEGEND))


def _safe_samples(expression: str, domain: Sequence[float], context: _ConversionContext) -> List[Dict[str, float]]:
    try:
        return sample_expression(context.evaluator, expression, domain, steps=context.sample_steps)
    except EvaluationError as exc:
        logger.warning("Could not sample expression %r: %s", expression, exc)
        return []


def _drop_samples(params: Dict[str, Any], context: _ConversionContext) -> None:
    has_expression = bool(params.get("expression")) or isinstance(params.get("function"), dict)
    if has_expression:
        params.pop("data", None)
    if isinstance(params.get("functions"), list):
        params.pop("series", None)
    params.pop("margin", None)
    params.pop("legend", None)


def _finalize_three(params: Dict[str, Any], context: _ConversionContext) -> None:
    params.setdefault("resolution", DEFAULT_THREE_RESOLUTION)
    color = params.get("color")
    if isinstance(color, str) and _HEX_COLOR.match(color):
        params["color"] = "#" + color


_Step = Callable[[Dict[str, Any], _ConversionContext], None]

_INTERVAL_CONVERSIONS: Dict[Tuple[str, str], _Step] = {
    (INTERVAL_PAIR, BOUNDING_BOX): _to_bounding_box,
    (BOUNDING_BOX, INTERVAL_PAIR): _from_bounding_box,
}

_ELEMENT_CONVERSIONS: Dict[Tuple[str, str], _Step] = {
    (FLAT, TAGGED): _flat_to_tagged,
    (TAGGED, FLAT): _tagged_to_flat,
}

_DIMENSION_CONVERSIONS: Dict[Tuple[int, int], _Step] = {
    (2, 3): _lift_to_3d,
    (3, 2): _project_to_2d,
}

_SAMPLING_CONVERSIONS: Dict[Tuple[bool, bool], _Step] = {
    (False, True): _sample_to_data,
    (True, False): _drop_samples,
}

_FINALIZERS: Dict[str, _Step] = {
    "three": _finalize_three,
}


class ParameterNormalizer:
    """Adapts canonical visualization specs to rendering-library conventions."""

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator] = None,
        defaults: Optional[DefaultsTable] = None,
        sample_steps: int = DEFAULT_STEPS,
        default_z_range: Optional[Sequence[float]] = None,
    ) -> None:
        self.evaluator = evaluator or ExpressionEvaluator()
        self.defaults = defaults or get_defaults_table()
        self._context = _ConversionContext(
            evaluator=self.evaluator,
            defaults=self.defaults,
            sample_steps=max(1, int(sample_steps)),
            default_z_range=list(default_z_range or [-1.0, 1.0]),
        )

    @classmethod
    def from_config(cls, config: Any, evaluator: Optional[ExpressionEvaluator] = None) -> "ParameterNormalizer":
        return cls(
            evaluator=evaluator or ExpressionEvaluator.from_settings(config.evaluator),
            sample_steps=config.normalizer.sample_steps,
            default_z_range=config.normalizer.default_z_range,
        )

    def defaults_for(self, visualization_type: Any) -> Dict[str, Any]:
        return self.defaults.defaults_for(visualization_type)

    def convert(self, params: Dict[str, Any], from_library: str, to_library: str) -> Dict[str, Any]:
        """Converts `params` from one library's shape to another's.

        Args:
            params: Visualization spec in the shape of `from_library`.
            from_library: Source library tag.
            to_library: Target library tag.

        Returns:
            A converted deep copy, or `params` itself when the libraries are equal
            or the pair is not supported.
        """
        if from_library == to_library or not isinstance(params, dict):
            return params

        source_tag = normalize_library_tag(from_library)
        target_tag = normalize_library_tag(to_library)
        if source_tag is None or target_tag is None:
            logger.info("No conversion available from %r to %r; returning input unchanged", from_library, to_library)
            return params
        if source_tag == target_tag:
            return params

        source = LIBRARY_PROFILES[source_tag]
        target = LIBRARY_PROFILES[target_tag]
        result = copy.deepcopy(params)

        self._convert_expressions(result, source.notation, target.notation)
        self._apply(_INTERVAL_CONVERSIONS, (source.interval_shape, target.interval_shape), result)
        if source.dimensions > target.dimensions:
            self._apply(_DIMENSION_CONVERSIONS, (source.dimensions, target.dimensions), result)
        self._apply(_ELEMENT_CONVERSIONS, (source.element_shape, target.element_shape), result)
        if source.dimensions < target.dimensions:
            self._apply(_DIMENSION_CONVERSIONS, (source.dimensions, target.dimensions), result)
        self._apply(_SAMPLING_CONVERSIONS, (source.sampled, target.sampled), result)

        finalizer = _FINALIZERS.get(target_tag)
        if finalizer is not None:
            finalizer(result, self._context)

        logger.debug("Converted parameters from %s to %s", source_tag, target_tag)
        return result

    def convert_expression(self, expression: Any, from_format: str, to_format: str) -> Any:
        """Re-emits `expression` in another notation through its AST.

        Only function and constant spelling changes; unsupported formats and
        unparsable input are returned unchanged.
        """
        if from_format == to_format or not isinstance(expression, str) or not expression.strip():
            return expression

        source = self._notation_for(from_format)
        target = self._notation_for(to_format)
        if source is None or target is None:
            logger.info("No notation conversion from %r to %r", from_format, to_format)
            return expression
        if source == target:
            return expression

        try:
            parsed = self.evaluator.parse(expression)
        except EvaluationError as exc:
            logger.info("Expression %r left unchanged: %s", expression, exc)
            return expression
        return self.evaluator.unparse(parsed, target)

    def _notation_for(self, tag: Any) -> Optional[str]:
        if tag in NOTATIONS:
            return tag
        library = normalize_library_tag(tag)
        if library is None:
            return None
        return LIBRARY_PROFILES[library].notation

    def _convert_expressions(self, params: Dict[str, Any], source: str, target: str) -> None:
        if source == target:
            return
        for key in ("expression", "surfaceExpression"):
            if isinstance(params.get(key), str):
                params[key] = self.convert_expression(params[key], source, target)

        for container_key in ("functions",):
            items = params.get(container_key)
            if isinstance(items, list):
                for item in items:
                    if isinstance(item, dict) and isinstance(item.get("expression"), str):
                        item["expression"] = self.convert_expression(item["expression"], source, target)

        if isinstance(params.get("function"), dict) and isinstance(params["function"].get("expression"), str):
            params["function"]["expression"] = self.convert_expression(params["function"]["expression"], source, target)

        expressions = params.get("expressions")
        if isinstance(expressions, dict):
            for axis, value in expressions.items():
                if isinstance(value, str):
                    expressions[axis] = self.convert_expression(value, source, target)

    def _apply(self, table: Dict[Any, _Step], key: Tuple[Any, Any], params: Dict[str, Any]) -> None:
        step = table.get(key)
        if step is not None:
            step(params, self._context)
