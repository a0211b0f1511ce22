"""CLI/API entrypoint for the math visualization toolkit."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.extraction import ResponseExtractor
from src.llm import GenerativeVisualizationClient
from src.tools import EvaluationError, ExpressionEvaluator, sample_function_2d
from src.utils import generate_defaults_docs, load_visualizer_config
from src.utils.logger import configure_from_settings
from src.visualization import LIBRARY_TAGS, ParameterNormalizer, select_library

MODES = ["extract", "convert", "evaluate", "sample", "visualize", "docs", "api"]


def build_parser() -> argparse.ArgumentParser:
    """Builds CLI argument parser for app entrypoints.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(description="Math visualization toolkit")
    parser.add_argument("--mode", choices=MODES, default="extract")
    parser.add_argument("--config", type=str, default=None, help="Path of visualizer_config.yml")
    parser.add_argument("--input", type=str, default=None, help="File with raw model output or JSON params ('-' for stdin)")
    parser.add_argument("--text", type=str, default=None, help="Inline raw model output")
    parser.add_argument("--from-library", type=str, default="generic")
    parser.add_argument("--to-library", type=str, default=None, help="Target library; selected automatically when omitted")
    parser.add_argument("--expression", type=str, default=None)
    parser.add_argument("--bind", action="append", default=[], help="Variable binding NAME=VALUE (repeatable)")
    parser.add_argument("--x-min", type=float, default=-10.0)
    parser.add_argument("--x-max", type=float, default=10.0)
    parser.add_argument("--points", type=int, default=101)
    parser.add_argument("--query", type=str, default=None, help="Question sent to the model in visualize mode")
    parser.add_argument("--level", type=str, default=None)
    parser.add_argument("--library", action="append", default=[], help="Preferred library (repeatable)")
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--log-level", type=str, default=None, help="Overrides logging.level from the config")
    parser.add_argument("--docs-output", type=str, default="docs/VISUALIZATION_DEFAULTS.md")
    return parser


def _read_input(args: argparse.Namespace) -> str:
    if args.text is not None:
        return args.text
    if args.input == "-":
        return sys.stdin.read()
    if args.input:
        return Path(args.input).read_text(encoding="utf-8")
    raise ValueError("--text or --input is required in this mode")


def _parse_bindings(raw_bindings: List[str]) -> Dict[str, float]:
    bindings: Dict[str, float] = {}
    for item in raw_bindings:
        name, separator, value = item.partition("=")
        if not separator or not name.strip():
            raise ValueError("Invalid binding '{}'; expected NAME=VALUE".format(item))
        bindings[name.strip()] = float(value)
    return bindings


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=True, indent=2))


def run_extract(args: argparse.Namespace, evaluator: ExpressionEvaluator, normalizer: ParameterNormalizer) -> int:
    extractor = ResponseExtractor(evaluator=evaluator, defaults=normalizer.defaults)
    response = extractor.extract(_read_input(args))
    if not args.to_library:
        _print_json(response)
        return 0

    params = normalizer.convert(response["visualizationParams"], "generic", args.to_library)
    _print_json({"response": response, "library": args.to_library, "params": params})
    return 0


def run_convert(args: argparse.Namespace, normalizer: ParameterNormalizer) -> int:
    params = json.loads(_read_input(args))
    if not isinstance(params, dict):
        raise ValueError("Visualization params must be a JSON object")
    target = args.to_library or select_library(params)
    _print_json({"library": target, "params": normalizer.convert(params, args.from_library, target)})
    return 0


def run_evaluate(args: argparse.Namespace, evaluator: ExpressionEvaluator) -> int:
    if not args.expression:
        raise ValueError("--expression is required in evaluate mode")
    try:
        value = evaluator.evaluate(args.expression, _parse_bindings(args.bind))
    except EvaluationError as exc:
        _print_json({"ok": False, "kind": exc.kind, "error": str(exc)})
        return 1
    _print_json({"ok": True, "expression": args.expression, "value": repr(value)})
    return 0


def run_sample(args: argparse.Namespace, evaluator: ExpressionEvaluator) -> int:
    if not args.expression:
        raise ValueError("--expression is required in sample mode")
    result = sample_function_2d(evaluator, args.expression, x_min=args.x_min, x_max=args.x_max, points=args.points)
    _print_json(result)
    return 0 if result["ok"] else 1


def run_visualize(args: argparse.Namespace, llm_config: Dict[str, Any], normalizer: ParameterNormalizer) -> int:
    if not args.query:
        raise ValueError("--query is required in visualize mode")
    client = GenerativeVisualizationClient(
        config=llm_config,
        extractor=ResponseExtractor(evaluator=normalizer.evaluator, defaults=normalizer.defaults),
    )
    response = client.request_visualization(args.query, level=args.level, preferred_libraries=args.library)
    params = response["visualizationParams"]
    library = args.to_library or select_library(params, supported=args.library or LIBRARY_TAGS)
    _print_json(
        {
            "llm": client.describe(),
            "response": response,
            "library": library,
            "params": normalizer.convert(params, "generic", library),
        }
    )
    return 0


def run_api(host: str, port: int, config_path: Optional[str] = None) -> int:
    """Runs FastAPI server using Uvicorn.

    Args:
        host: Bind host.
        port: Bind port.
        config_path: Optional path of the runtime config.

    Returns:
        Process exit code.
    """
    import uvicorn

    from src.api import create_app

    app = create_app(config=load_visualizer_config(config_path))
    uvicorn.run(app, host=host, port=port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main process entrypoint.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_visualizer_config(args.config)
    configure_from_settings(config.logging, level=args.log_level)
    evaluator = ExpressionEvaluator.from_settings(config.evaluator)
    normalizer = ParameterNormalizer.from_config(config, evaluator=evaluator)

    if args.mode == "docs":
        output = generate_defaults_docs(output_path=args.docs_output, config=config)
        print("Documentation generated at: {}".format(output))
        return 0
    if args.mode == "api":
        return run_api(args.host, args.port, args.config)
    if args.mode == "convert":
        return run_convert(args, normalizer)
    if args.mode == "evaluate":
        return run_evaluate(args, evaluator)
    if args.mode == "sample":
        return run_sample(args, evaluator)
    if args.mode == "visualize":
        return run_visualize(args, config.llm, normalizer)
    return run_extract(args, evaluator, normalizer)


if __name__ == "__main__":
    raise SystemExit(main())
