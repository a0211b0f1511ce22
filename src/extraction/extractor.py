"""Staged recovery of canonical responses from unreliable model output."""

from __future__ import annotations

import copy
import json
import logging
import math
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.extraction.rules import DEFAULT_RULES, Rule, apply_rules
from src.tools.expression import ExpressionEvaluator
from src.utils.logger import get_logger, log_event
from src.visualization.defaults import DefaultsTable, get_defaults_table
from src.visualization.schema import (
    INTERVAL_KEYS,
    CanonicalResponse,
    coerce_interval,
    resolve_visualization_type,
    validate_response,
)

logger = get_logger("mathviz.extraction")

CANONICAL_KEYS = ("explanation", "visualizationParams", "educationalContent", "followUpQuestions")

STAGE_FENCED = "fenced_block"
STAGE_WHOLE_TEXT = "whole_text"
STAGE_FREE_TEXT = "free_text"

EDUCATION_TITLE_CHARS = 80
EDUCATION_SUMMARY_CHARS = 280

_FENCED_BLOCK = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\n?(?P<body>.*?)```", re.DOTALL)
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def _decode_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        decoded = json.loads(text)
    except (json.JSONDecodeError, ValueError, RecursionError):
        return None
    return decoded if isinstance(decoded, dict) else None


def _as_candidate(decoded: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Accepts decoded objects shaped like a response or like bare visualization params."""
    if not decoded:
        return None
    if any(key in decoded for key in CANONICAL_KEYS):
        return decoded
    if "type" in decoded:
        return {"visualizationParams": decoded}
    return None


def decode_fenced_block(text: str) -> Optional[Dict[str, Any]]:
    for match in _FENCED_BLOCK.finditer(text):
        candidate = _as_candidate(_decode_object(match.group("body").strip()))
        if candidate is not None:
            return candidate
    return None


def decode_whole_text(text: str) -> Optional[Dict[str, Any]]:
    stripped = text.strip()
    candidate = _as_candidate(_decode_object(stripped))
    if candidate is not None:
        return candidate

    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1 or end <= start:
        return None
    return _as_candidate(_decode_object(stripped[start : end + 1]))


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _normalize_steps(value: Any) -> List[Dict[str, str]]:
    steps: List[Dict[str, str]] = []
    if not isinstance(value, list):
        return steps
    for item in value:
        index = len(steps) + 1
        if isinstance(item, dict):
            content = _as_text(item.get("content") or item.get("description") or item.get("text"))
            title = _as_text(item.get("title")) or "Step {}".format(index)
            if content or _as_text(item.get("title")):
                steps.append({"title": title, "content": content})
        elif _as_text(item):
            steps.append({"title": "Step {}".format(index), "content": _as_text(item)})
    return steps


def _normalize_strings(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("question") or item.get("text")
        text = _as_text(item)
        if text:
            items.append(text)
    return items


def _normalize_exercises(value: Any) -> List[Dict[str, str]]:
    exercises: List[Dict[str, str]] = []
    if not isinstance(value, list):
        return exercises
    for item in value:
        if isinstance(item, dict):
            question = _as_text(item.get("question") or item.get("problem"))
            solution = _as_text(item.get("solution") or item.get("answer"))
        else:
            question, solution = _as_text(item), ""
        if question:
            exercises.append({"question": question, "solution": solution})
    return exercises


def _fill_defaults(params: Dict[str, Any], type_defaults: Dict[str, Any]) -> None:
    for key, value in type_defaults.items():
        current = params.get(key)
        if current is None:
            params[key] = value
        elif isinstance(current, dict) and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                current.setdefault(sub_key, sub_value)


def _sanitize_intervals(params: Dict[str, Any], type_defaults: Dict[str, Any], generic: Dict[str, Any]) -> None:
    for key in INTERVAL_KEYS:
        if key not in params:
            continue
        interval = coerce_interval(params[key])
        if interval is None:
            interval = coerce_interval(type_defaults.get(key)) or coerce_interval(generic.get(key))
            logger.debug("Replacing invalid interval %s=%r", key, params[key])
        if interval is None:
            params.pop(key)
        else:
            params[key] = interval

    ranges = params.get("parameterRanges")
    if ranges is not None:
        fallback = type_defaults.get("parameterRanges") or [[0, 2 * math.pi]]
        sanitized = []
        for index, item in enumerate(ranges if isinstance(ranges, list) else []):
            interval = coerce_interval(item) or coerce_interval(fallback[min(index, len(fallback) - 1)])
            if interval is not None:
                sanitized.append(interval)
        params["parameterRanges"] = sanitized or copy.deepcopy(fallback)

    for key in ("domain", "range"):
        if key not in params:
            params[key] = list(generic[key])


def merge_defaults(candidate: Dict[str, Any], defaults: DefaultsTable) -> CanonicalResponse:
    """Completes a partial response so that every canonical field is present.

    Args:
        candidate: Partially decoded or heuristically assembled response.
        defaults: Defaults table consulted for the resolved type.

    Returns:
        A canonical response with type defaults, sane intervals and list fields.
    """
    raw_params = candidate.get("visualizationParams")
    params: Dict[str, Any] = copy.deepcopy(raw_params) if isinstance(raw_params, dict) else {}

    visualization_type = resolve_visualization_type(params.get("type"))
    params["type"] = visualization_type
    type_defaults = defaults.defaults_for(visualization_type)
    _fill_defaults(params, type_defaults)
    _sanitize_intervals(params, type_defaults, defaults.generic())

    params["title"] = _as_text(params.get("title")) or "{} Visualization".format(visualization_type)

    explanation = _as_text(candidate.get("explanation"))
    if not explanation:
        explanation = "This visualization shows {}.".format(params["title"])

    raw_education = candidate.get("educationalContent")
    education = raw_education if isinstance(raw_education, dict) else {}
    title = _as_text(education.get("title")) or _truncate(
        _SENTENCE_END.split(explanation, maxsplit=1)[0], EDUCATION_TITLE_CHARS
    )
    summary = _as_text(education.get("summary")) or _truncate(explanation, EDUCATION_SUMMARY_CHARS)

    return {
        "explanation": explanation,
        "visualizationParams": params,
        "educationalContent": {
            "title": title,
            "summary": summary,
            "steps": _normalize_steps(education.get("steps")),
            "keyInsights": _normalize_strings(education.get("keyInsights")),
            "exercises": _normalize_exercises(education.get("exercises")),
        },
        "followUpQuestions": _normalize_strings(candidate.get("followUpQuestions")),
    }


class ResponseExtractor:
    """Recovers a canonical response from raw model text; never raises.

    Stages run in order: a fenced JSON block, the whole text as JSON (then its
    outermost braces), and finally the free-text rule chain. The defaults
    merge always runs on whatever the winning stage produced.
    """

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator] = None,
        defaults: Optional[DefaultsTable] = None,
        rules: Sequence[Rule] = DEFAULT_RULES,
    ) -> None:
        self.evaluator = evaluator or ExpressionEvaluator()
        self.defaults = defaults or get_defaults_table()
        self.rules = tuple(rules)

    def extract(self, raw_text: Any) -> CanonicalResponse:
        text = raw_text if isinstance(raw_text, str) else ""
        try:
            candidate, stage = self.extract_candidate(text)
            response = merge_defaults(candidate, self.defaults)
        except Exception as exc:  # noqa: BLE001 - extraction degrades instead of failing
            logger.warning("Extraction failed; returning defaults: %s", exc)
            candidate, stage = {}, STAGE_FREE_TEXT
            response = merge_defaults(candidate, self.defaults)
        log_event(
            logger,
            logging.DEBUG,
            "Extracted response",
            stage=stage,
            type=response["visualizationParams"]["type"],
        )
        return response

    def extract_candidate(self, text: str) -> Tuple[Dict[str, Any], str]:
        """Returns the partial response and the name of the stage that produced it."""
        for stage, decoder in ((STAGE_FENCED, decode_fenced_block), (STAGE_WHOLE_TEXT, decode_whole_text)):
            candidate = decoder(text)
            if candidate:
                errors = validate_response(candidate)
                if errors:
                    logger.warning("Decoded response is incomplete (%s): %s", stage, "; ".join(errors))
                return candidate, stage

        if text.strip():
            logger.warning("No structured object found in model output; using free-text heuristics")
        try:
            return apply_rules(text, self.evaluator, self.rules), STAGE_FREE_TEXT
        except Exception as exc:  # noqa: BLE001 - extraction degrades instead of failing
            logger.warning("Free-text extraction failed: %s", exc)
            return {}, STAGE_FREE_TEXT


@lru_cache(maxsize=1)
def get_default_extractor() -> ResponseExtractor:
    return ResponseExtractor()


def extract(raw_text: Any) -> CanonicalResponse:
    """Module-level shortcut around a process-wide :class:`ResponseExtractor`."""
    return get_default_extractor().extract(raw_text)
