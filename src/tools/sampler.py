"""Discretization helpers that turn symbolic expressions into plottable samples."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .expression import EvaluationError, ExpressionEvaluator

DEFAULT_STEPS = 100


def sample_expression(
    evaluator: ExpressionEvaluator,
    expression: str,
    interval: Sequence[float],
    steps: int = DEFAULT_STEPS,
    variable: str = "x",
    bindings: Optional[Dict[str, float]] = None,
) -> List[Dict[str, float]]:
    """Samples `expression` at `steps + 1` evenly spaced points of `interval`.

    Non-finite outputs (poles, out-of-domain inputs) are skipped rather than
    treated as failures.

    Args:
        evaluator: Evaluator owning the AST cache.
        expression: Expression string in any supported notation.
        interval: Two-element `[min, max]` sequence.
        steps: Number of sub-intervals.
        variable: Name of the sampled variable.
        bindings: Extra fixed bindings for other variables.

    Returns:
        List of `{"x": ..., "y": ...}` points with finite values only.

    Raises:
        EvaluationError: If the expression cannot be parsed.
        ValueError: If `steps` is not positive or `interval` is malformed.
    """
    if steps <= 0:
        raise ValueError("steps must be positive")
    if len(interval) != 2:
        raise ValueError("interval must contain exactly two values")

    lower, upper = float(interval[0]), float(interval[1])
    parsed = evaluator.parse(expression)
    xs = np.linspace(lower, upper, int(steps) + 1)

    values = dict(bindings or {})
    values[variable] = xs
    ys = np.broadcast_to(evaluator.evaluate(parsed, values), xs.shape)

    finite = np.isfinite(ys)
    return [{"x": float(x), "y": float(y)} for x, y in zip(xs[finite], ys[finite])]


def sample_function_2d(
    evaluator: ExpressionEvaluator,
    expression: str,
    x_min: float = -10.0,
    x_max: float = 10.0,
    points: int = 400,
) -> Dict[str, Any]:
    """Tool-style wrapper around :func:`sample_expression` that never raises."""
    points = max(2, int(points))
    try:
        data = sample_expression(evaluator, expression, [x_min, x_max], steps=points - 1)
        skipped = points - len(data)
        return {
            "ok": True,
            "result": data,
            "method": "numpy_sampling",
            "metadata": {"points": points, "skipped": skipped},
        }
    except EvaluationError as exc:
        return {
            "ok": False,
            "error": str(exc),
            "method": "sample_function_2d",
            "metadata": {"kind": exc.kind, "expression": expression},
        }
    except ValueError as exc:
        return {"ok": False, "error": str(exc), "method": "sample_function_2d", "metadata": {"expression": expression}}
