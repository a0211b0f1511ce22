"""Best-effort rules that recover structure from free-text model answers.

Each rule reads a :class:`FreeTextDocument` and writes what it finds into a
shared :class:`ExtractionDraft`. Rules are independent: one failing or
matching nothing never prevents the others from running.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from src.tools.expression import Call, EvaluationError, ExpressionEvaluator, ParsedExpression
from src.utils.logger import get_logger

logger = get_logger("mathviz.extraction.rules")

EXPLANATION_FALLBACK_CHARS = 250
MAX_EXPRESSION_WORDS = 30

FUNCTION_COLORS = ("#3090FF", "#FF9030", "#30C060", "#C040C0", "#E04040")

_SECTION_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("explanation", r"explanations?|overview|description|introduction"),
    ("summary", r"summary"),
    ("steps", r"steps?|procedure|method|how\s+to"),
    ("keyInsights", r"key\s+insights?|important\s+points?|key\s+takeaways?|insights?"),
    ("exercises", r"exercises?|practice\s+problems?|problems?"),
    (
        "followUpQuestions",
        r"follow[\s-]?up\s+questions?|follow[\s-]?ups?|questions?|further\s+exploration"
        r"|related\s+(?:questions|topics)|next\s+steps?",
    ),
)

_HEADER_PATTERNS = tuple(
    (
        name,
        re.compile(
            r"^\s*(?:#{1,6}\s*)?(?:\*\*|__)?\s*(?:" + synonyms + r")\s*(?:\*\*|__)?\s*(?::|\.|$)\s*(?:\*\*|__)?\s*(?P<rest>.*)$",
            re.IGNORECASE,
        ),
    )
    for name, synonyms in _SECTION_HEADERS
)

_MARKDOWN_TITLE = re.compile(r"^\s*#\s+(?P<title>.+?)\s*#*\s*$")
_MARKDOWN_HEADER = re.compile(r"^\s*#{1,6}\s+\S")
_LIST_MARKER = re.compile(r"^(?:\d+[.)]|[-*•+])\s+(?P<item>.*)$")
_STEP_LINE = re.compile(r"^\s*step\s+(?P<number>\d+)\s*[:.)\-]\s*(?P<content>.+)$", re.IGNORECASE)
_EXERCISE_START = re.compile(
    r"^\s*(?:\d+[.)]|[-*•+]|(?:question|problem|exercise)\s*\d*\s*[:.)]|q\d+\s*[:.)])\s*(?P<text>.*)$",
    re.IGNORECASE,
)
_SOLUTION_LINE = re.compile(r"^\s*(?:[-*•+]\s*)?(?:solution|answer)\s*[:.]\s*(?P<text>.*)$", re.IGNORECASE)
_IN_SUMMARY = re.compile(r"(?:^|\n)\s*In\s+summary,\s+(?P<summary>.+?)(?:\n\s*\n|$)", re.IGNORECASE | re.DOTALL)
_EXPLICIT_TITLE = re.compile(r"^\s*title\s*:\s*[\"']?(?P<title>[^\"'\n]+?)[\"']?\s*$", re.IGNORECASE | re.MULTILINE)
_QUESTION_WORDS = re.compile(
    r"^(?:how|what|why|when|where|which|who|is|are|can|could|should|would|will|do|does)\b", re.IGNORECASE
)
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")

_TYPE_KEYWORDS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"\b3D\s+(?:surface|function|plot|graph)\b", re.IGNORECASE), "function3D"),
    (re.compile(r"\bparametric\s+curve\b", re.IGNORECASE), "parametric2D"),
    (re.compile(r"\bparametric\s+surface\b", re.IGNORECASE), "parametric3D"),
    (re.compile(r"\bvector\s+field\b", re.IGNORECASE), "vectorField"),
    (re.compile(r"\b(?:geometry|geometric|triangle|circle|polygon)\b", re.IGNORECASE), "geometry"),
    (re.compile(r"\b(?:integral|derivative|calculus)\b", re.IGNORECASE), "calculus"),
    (
        re.compile(r"\b(?:probability|distribution|normal\s+curve|binomial|poisson|bell\s+curve)\b", re.IGNORECASE),
        "probabilityDistribution",
    ),
    (
        re.compile(r"\b(?:linear\s+algebra|matrix|matrices|linear\s+transformation|eigenvectors?)\b", re.IGNORECASE),
        "linearAlgebra",
    ),
    (re.compile(r"\bmultiple\s+functions\b", re.IGNORECASE), "functions2D"),
)

_EXPRESSION_PATTERNS: Tuple[Tuple[re.Pattern, Optional[str]], ...] = (
    (re.compile(r"\b(?P<label>[a-h])\s*\(\s*x(?:\s*,\s*y)?\s*\)\s*=\s*(?P<expr>[^\n,;]+)", re.IGNORECASE), None),
    (re.compile(r"(?<![\w(])(?P<label>[yz])\s*=\s*(?P<expr>[^\n,;=]+)", re.IGNORECASE), None),
    (
        re.compile(
            r"\b(?:function|equation|expression)\s*(?::|\bis\b|\bgiven\s+by\b)\s*(?:f\s*\(\s*x\s*\)\s*=\s*)?"
            r"(?P<expr>[^\n,;]+)",
            re.IGNORECASE,
        ),
        "f(x)",
    ),
)

_NAMED_FUNCTION = re.compile(r"\b(?P<name>[a-h])\s*\(\s*x\s*\)\s*=\s*(?P<expr>[^\n,;]+)", re.IGNORECASE)
_PARAMETRIC_COMPONENT = re.compile(r"\b(?P<axis>[xyz])\s*\(\s*t\s*\)\s*=\s*(?P<expr>[^\n,;]+)", re.IGNORECASE)

_NUMBER = r"(-?\d+(?:\.\d+)?)"
_INTERVAL_PATTERNS: Dict[str, Tuple[re.Pattern, ...]] = {
    "domain": (
        re.compile(
            r"\b(?:domain|x-values|x)(?:\s+(?:is|are|ranges|varies|goes|values))*\s+(?:from|between)\s+"
            + _NUMBER + r"\s+(?:to|and)\s+" + _NUMBER,
            re.IGNORECASE,
        ),
        re.compile(r"\bdomain\s*(?:is|:|=)?\s*\[\s*" + _NUMBER + r"\s*,\s*" + _NUMBER + r"\s*\]", re.IGNORECASE),
    ),
    "range": (
        re.compile(
            r"\b(?:range|y-values|y)(?:\s+(?:is|are|ranges|varies|goes|values))*\s+(?:from|between)\s+"
            + _NUMBER + r"\s+(?:to|and)\s+" + _NUMBER,
            re.IGNORECASE,
        ),
        re.compile(r"\brange\s*(?:is|:|=)?\s*\[\s*" + _NUMBER + r"\s*,\s*" + _NUMBER + r"\s*\]", re.IGNORECASE),
    ),
}

_SUBJECT = re.compile(
    r"\b(?:graph|plot|visuali[sz]e|draw|sketch|show|explain|illustrate)\s+(?:of\s+)?(?:the\s+|a\s+|an\s+)?"
    r"(?P<subject>[A-Za-z][\w'\- ]{2,60}?)\s*(?:[.,;:!?\n]|$)",
    re.IGNORECASE,
)


@dataclass
class FreeTextDocument:
    """Line-level view of a free-text answer split into recognized sections."""

    text: str
    preamble: List[str] = field(default_factory=list)
    sections: Dict[str, List[str]] = field(default_factory=dict)
    markdown_title: Optional[str] = None


@dataclass
class ExtractionDraft:
    """Partial canonical response assembled by the rule chain."""

    explanation: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    education: Dict[str, Any] = field(default_factory=dict)
    follow_ups: List[str] = field(default_factory=list)
    expression_label: Optional[str] = None

    def to_candidate(self) -> Dict[str, Any]:
        candidate: Dict[str, Any] = {
            "explanation": self.explanation,
            "visualizationParams": dict(self.params),
            "followUpQuestions": list(self.follow_ups),
        }
        if any(self.education.values()):
            candidate["educationalContent"] = dict(self.education)
        return candidate


Rule = Callable[[FreeTextDocument, ExtractionDraft, ExpressionEvaluator], None]


def _match_header(line: str) -> Optional[Tuple[str, str]]:
    for name, pattern in _HEADER_PATTERNS:
        match = pattern.match(line)
        if match:
            return name, match.group("rest").strip().strip("*_").strip()
    return None


def parse_document(text: str) -> FreeTextDocument:
    """Splits `text` into a preamble and named sections."""
    document = FreeTextDocument(text=text)
    current: Optional[str] = None
    seen_header = False

    for line in text.splitlines():
        header = _match_header(line)
        if header is not None:
            current, rest = header
            seen_header = True
            document.sections.setdefault(current, [])
            if rest:
                document.sections[current].append(rest)
            continue

        title = _MARKDOWN_TITLE.match(line)
        if title and document.markdown_title is None and not line.lstrip().startswith("##"):
            document.markdown_title = title.group("title").strip()
            continue
        if _MARKDOWN_HEADER.match(line):
            # Unrecognized headers close the current section.
            current = None
            seen_header = True
            continue

        if current is not None:
            document.sections[current].append(line)
        elif not seen_header:
            document.preamble.append(line)

    return document


def _paragraphs(lines: Sequence[str]) -> List[str]:
    paragraphs: List[str] = []
    buffer: List[str] = []
    for line in lines:
        if line.strip():
            buffer.append(line.strip())
        elif buffer:
            paragraphs.append(" ".join(buffer))
            buffer = []
    if buffer:
        paragraphs.append(" ".join(buffer))
    return paragraphs


def list_items(lines: Sequence[str]) -> List[str]:
    """Returns list entries from numbered, dashed or bulleted lines.

    Indented lines continue the previous entry; other unmarked lines are
    entries of their own.
    """
    items: List[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped:
            continue
        marker = _LIST_MARKER.match(stripped)
        if marker:
            items.append(marker.group("item").strip())
        elif items and line[:1].isspace():
            items[-1] = "{} {}".format(items[-1], stripped)
        else:
            items.append(stripped)
    return [item for item in items if item]


def _first_sentence(text: str) -> str:
    return _SENTENCE_END.split(text.strip(), maxsplit=1)[0]


def extract_explanation(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    section = _paragraphs(document.sections.get("explanation", []))
    if section:
        draft.explanation = "\n\n".join(section)
        return

    preamble = _paragraphs(document.preamble)
    if preamble and len(preamble[0]) > 10:
        draft.explanation = preamble[0]
        return

    draft.explanation = document.text[:EXPLANATION_FALLBACK_CHARS].strip()


def extract_markdown_title(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    if document.markdown_title:
        draft.education["title"] = document.markdown_title


def extract_summary(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    section = _paragraphs(document.sections.get("summary", []))
    if section:
        draft.education["summary"] = " ".join(section)
        return
    match = _IN_SUMMARY.search(document.text)
    if match and len(match.group("summary").strip()) > 10:
        draft.education["summary"] = " ".join(match.group("summary").split())


def _split_step(item: str, index: int) -> Dict[str, str]:
    title, separator, content = item.partition(":")
    if separator and content.strip() and len(title) <= 80:
        return {"title": title.strip(), "content": content.strip()}
    return {"title": "Step {}".format(index), "content": item.strip()}


def extract_steps(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    items = list_items(document.sections.get("steps", []))
    if items:
        draft.education["steps"] = [_split_step(item, index) for index, item in enumerate(items, start=1)]
        return

    steps = []
    for line in document.text.splitlines():
        match = _STEP_LINE.match(line)
        if match:
            steps.append({"title": "Step {}".format(match.group("number")), "content": match.group("content").strip()})
    if steps:
        draft.education["steps"] = steps


def extract_key_insights(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    items = list_items(document.sections.get("keyInsights", []))
    if items:
        draft.education["keyInsights"] = items


def extract_exercises(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    exercises: List[Dict[str, str]] = []
    target = "question"
    for line in document.sections.get("exercises", []):
        if not line.strip():
            continue
        solution = _SOLUTION_LINE.match(line)
        if solution and exercises:
            exercises[-1]["solution"] = solution.group("text").strip()
            target = "solution"
            continue
        start = _EXERCISE_START.match(line)
        if start and start.group("text").strip():
            exercises.append({"question": start.group("text").strip(), "solution": ""})
            target = "question"
        elif exercises:
            exercises[-1][target] = "{} {}".format(exercises[-1][target], line.strip()).strip()
        else:
            exercises.append({"question": line.strip(), "solution": ""})
            target = "question"
    if exercises:
        draft.education["exercises"] = exercises


def extract_follow_up_questions(
    document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator
) -> None:
    questions = []
    for item in list_items(document.sections.get("followUpQuestions", [])):
        if "?" in item or _QUESTION_WORDS.match(item):
            questions.append(item if item.endswith("?") else item + "?")
    draft.follow_ups = questions


def detect_visualization_type(
    document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator
) -> None:
    for pattern, visualization_type in _TYPE_KEYWORDS:
        if pattern.search(document.text):
            draft.params["type"] = visualization_type
            return


def longest_parseable_prefix(candidate: str, evaluator: ExpressionEvaluator) -> Optional[Tuple[str, ParsedExpression]]:
    """Finds the longest whitespace-delimited prefix of `candidate` that parses.

    Only expressions that mention a variable or call a function qualify, so
    bare numbers in prose are not mistaken for plottable expressions.
    """
    words = candidate.strip().split()[:MAX_EXPRESSION_WORDS]
    for end in range(len(words), 0, -1):
        text = " ".join(words[:end]).rstrip(".,;:!?")
        if not text:
            continue
        try:
            parsed = evaluator.parse(text)
        except EvaluationError:
            continue
        if parsed.variables or isinstance(parsed.root, Call):
            return text, parsed
    return None


def _named_functions(text: str, evaluator: ExpressionEvaluator) -> List[Dict[str, str]]:
    functions: List[Dict[str, str]] = []
    seen = set()
    for match in _NAMED_FUNCTION.finditer(text):
        name = match.group("name").lower()
        found = longest_parseable_prefix(match.group("expr"), evaluator)
        if found is None or name in seen:
            continue
        seen.add(name)
        functions.append(
            {
                "expression": found[0],
                "label": "{}(x)".format(name),
                "color": FUNCTION_COLORS[len(functions) % len(FUNCTION_COLORS)],
            }
        )
    return functions


def detect_expression(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    expression: Optional[str] = None
    for pattern, fixed_label in _EXPRESSION_PATTERNS:
        for match in pattern.finditer(document.text):
            found = longest_parseable_prefix(match.group("expr"), evaluator)
            if found is None:
                continue
            expression = found[0]
            label = fixed_label or match.group(0).split("=", 1)[0].strip()
            draft.expression_label = re.sub(r"\s+", "", label)
            break
        if expression is not None:
            break

    visualization_type = draft.params.get("type")

    if visualization_type == "functions2D":
        functions = _named_functions(document.text, evaluator)
        if not functions and expression:
            functions = [{"expression": expression, "label": "f(x)", "color": FUNCTION_COLORS[0]}]
        if functions:
            draft.params["functions"] = functions
        return

    if visualization_type in ("parametric2D", "parametric3D"):
        components = {}
        for match in _PARAMETRIC_COMPONENT.finditer(document.text):
            found = longest_parseable_prefix(match.group("expr"), evaluator)
            if found is not None:
                components.setdefault(match.group("axis").lower(), found[0])
        if components:
            draft.params["expressions"] = components
        return

    if expression is None:
        return
    if visualization_type is None:
        draft.params["type"] = "function2D"
    if visualization_type == "calculus":
        draft.params["function"] = {"expression": expression}
    else:
        draft.params["expression"] = expression


def detect_intervals(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    for key, patterns in _INTERVAL_PATTERNS.items():
        for pattern in patterns:
            match = pattern.search(document.text)
            if match:
                draft.params[key] = [float(match.group(1)), float(match.group(2))]
                break


def derive_title(document: FreeTextDocument, draft: ExtractionDraft, evaluator: ExpressionEvaluator) -> None:
    explicit = _EXPLICIT_TITLE.search(document.text)
    if explicit:
        draft.params["title"] = explicit.group("title").strip()
        return

    expression = draft.params.get("expression")
    if expression and draft.params.get("type") == "function2D":
        label = draft.expression_label or "f(x)"
        draft.params["title"] = "Graph of {} = {}".format(label, expression)
        return

    if document.markdown_title:
        draft.params["title"] = document.markdown_title
        return

    subject = _SUBJECT.search(document.text)
    if subject:
        phrase = subject.group("subject").strip()
        draft.params["title"] = phrase[:1].upper() + phrase[1:]


DEFAULT_RULES: Tuple[Rule, ...] = (
    extract_explanation,
    extract_markdown_title,
    extract_summary,
    extract_steps,
    extract_key_insights,
    extract_exercises,
    extract_follow_up_questions,
    detect_visualization_type,
    detect_expression,
    detect_intervals,
    derive_title,
)


def apply_rules(text: str, evaluator: ExpressionEvaluator, rules: Sequence[Rule] = DEFAULT_RULES) -> Dict[str, Any]:
    """Runs the rule chain over `text` and returns a partial canonical response."""
    document = parse_document(text)
    draft = ExtractionDraft()
    for rule in rules:
        try:
            rule(document, draft, evaluator)
        except Exception as exc:  # noqa: BLE001 - a failing rule only loses its own field
            logger.debug("Free-text rule %s failed: %s", getattr(rule, "__name__", rule), exc)
    return draft.to_candidate()
