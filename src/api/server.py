"""REST interface for extraction, conversion and expression services."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from src.extraction.extractor import ResponseExtractor
from src.llm.client import GenerativeVisualizationClient
from src.tools.expression import EvaluationError, ExpressionEvaluator
from src.tools.sampler import sample_expression
from src.utils.config_loader import VisualizerConfig, load_visualizer_config
from src.utils.logger import get_logger
from src.visualization.defaults import get_defaults_table
from src.visualization.library_selector import select_library
from src.visualization.normalizer import LIBRARY_TAGS, ParameterNormalizer, normalize_library_tag

logger = get_logger("mathviz.api")


class ExtractRequest(BaseModel):
    text: str = Field(default="", description="Raw model output to recover a canonical response from")
    target_library: Optional[str] = Field(default=None, description="Also convert params to this library")


class ConvertRequest(BaseModel):
    params: Dict[str, Any] = Field(default_factory=dict, description="Visualization spec to convert")
    from_library: str = Field(default="generic")
    to_library: str


class ExpressionConvertRequest(BaseModel):
    expression: str
    from_format: str = Field(default="generic", description="Notation or library tag of the input")
    to_format: str = Field(description="Notation or library tag of the output")


class EvaluateRequest(BaseModel):
    expression: str
    bindings: Dict[str, float] = Field(default_factory=dict)


class SampleRequest(BaseModel):
    expression: str
    domain: List[float] = Field(default_factory=lambda: [-10.0, 10.0], min_length=2, max_length=2)
    steps: int = Field(default=100, ge=1, le=10000)
    variable: str = Field(default="x")


class VisualizeRequest(BaseModel):
    query: str
    level: Optional[str] = Field(default=None, description="beginner|intermediate|advanced")
    preferred_libraries: List[str] = Field(default_factory=list)


def _json_number(value: float) -> Optional[float]:
    # JSON has no representation for inf/nan.
    if value != value or value in (float("inf"), float("-inf")):
        return None
    return value


def create_app(
    config: Optional[VisualizerConfig] = None,
    client: Optional[GenerativeVisualizationClient] = None,
) -> FastAPI:
    """Builds and configures the FastAPI application.

    Args:
        config: Runtime configuration; loaded from `configs/` when omitted.
        client: Generative client; built from `config.llm` when omitted.

    Returns:
        Configured FastAPI app instance.
    """
    config = config or load_visualizer_config()
    evaluator = ExpressionEvaluator.from_settings(config.evaluator)
    defaults = get_defaults_table()
    extractor = ResponseExtractor(evaluator=evaluator, defaults=defaults)
    normalizer = ParameterNormalizer.from_config(config, evaluator=evaluator)
    llm = client or GenerativeVisualizationClient(config=config.llm, extractor=extractor)

    app = FastAPI(title="Math Visualization API", version=config.version)

    def _evaluation_error(exc: EvaluationError) -> HTTPException:
        return HTTPException(
            status_code=400,
            detail={"kind": exc.kind, "message": str(exc), "position": exc.position},
        )

    def _convert_for(
        response: Dict[str, Any], target: Optional[str], preferred: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        params = response["visualizationParams"]
        supported = [tag for tag in (preferred or []) if normalize_library_tag(tag)] or list(LIBRARY_TAGS)
        library = normalize_library_tag(target) if target else select_library(params, supported=supported)
        if library is None:
            raise HTTPException(status_code=422, detail="unsupported library '{}'".format(target))
        return {
            "response": response,
            "library": library,
            "params": normalizer.convert(params, "generic", library),
        }

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "llm": llm.describe()}

    @app.post("/v1/extract")
    def extract(payload: ExtractRequest) -> Dict[str, Any]:
        response = extractor.extract(payload.text)
        if payload.target_library is None:
            return {"response": response}
        return _convert_for(response, payload.target_library)

    @app.post("/v1/convert")
    def convert(payload: ConvertRequest) -> Dict[str, Any]:
        converted = normalizer.convert(payload.params, payload.from_library, payload.to_library)
        supported = (
            normalize_library_tag(payload.from_library) is not None
            and normalize_library_tag(payload.to_library) is not None
        )
        return {"params": converted, "converted": supported and payload.from_library != payload.to_library}

    @app.post("/v1/expressions/convert")
    def convert_expression(payload: ExpressionConvertRequest) -> Dict[str, Any]:
        converted = normalizer.convert_expression(payload.expression, payload.from_format, payload.to_format)
        return {"expression": converted, "changed": converted != payload.expression}

    @app.post("/v1/expressions/evaluate")
    def evaluate(payload: EvaluateRequest) -> Dict[str, Any]:
        try:
            parsed = evaluator.parse(payload.expression)
            value = evaluator.evaluate(parsed, payload.bindings)
        except EvaluationError as exc:
            raise _evaluation_error(exc) from exc
        return {
            "expression": payload.expression,
            "value": _json_number(value),
            "finite": _json_number(value) is not None,
            "variables": sorted(parsed.variables),
        }

    @app.post("/v1/expressions/sample")
    def sample(payload: SampleRequest) -> Dict[str, Any]:
        try:
            data = sample_expression(
                evaluator,
                payload.expression,
                payload.domain,
                steps=payload.steps,
                variable=payload.variable,
            )
        except EvaluationError as exc:
            raise _evaluation_error(exc) from exc
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"data": data, "requested": payload.steps + 1, "skipped": payload.steps + 1 - len(data)}

    @app.get("/v1/defaults/{visualization_type}")
    def type_defaults(visualization_type: str) -> Dict[str, Any]:
        return {
            "type": visualization_type,
            "known": defaults.has_type(visualization_type),
            "defaults": defaults.defaults_for(visualization_type),
        }

    @app.get("/v1/libraries")
    def libraries() -> Dict[str, Any]:
        return {"libraries": list(LIBRARY_TAGS)}

    @app.post("/v1/visualize")
    def visualize(payload: VisualizeRequest) -> Dict[str, Any]:
        if not payload.query.strip():
            raise HTTPException(status_code=422, detail="query is required")
        if not llm.is_available:
            raise HTTPException(status_code=503, detail="LLM provider unavailable: {}".format(llm.describe()["reason"]))
        try:
            response = llm.request_visualization(
                payload.query,
                level=payload.level,
                preferred_libraries=payload.preferred_libraries,
            )
        except Exception as exc:  # noqa: BLE001 - provider errors surface as bad gateway
            logger.exception("Visualization request failed")
            raise HTTPException(status_code=502, detail="Provider call failed: {}".format(exc)) from exc
        return _convert_for(response, None, payload.preferred_libraries)

    return app

