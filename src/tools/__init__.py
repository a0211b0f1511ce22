"""Expression evaluation and sampling tools."""

from .expression import (
    BARE,
    QUALIFIED,
    EvaluationError,
    ExpressionCache,
    ExpressionEvaluator,
    ParsedExpression,
)
from .sampler import sample_expression, sample_function_2d

__all__ = [
    "BARE",
    "QUALIFIED",
    "EvaluationError",
    "ExpressionCache",
    "ExpressionEvaluator",
    "ParsedExpression",
    "sample_expression",
    "sample_function_2d",
]
