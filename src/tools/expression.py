"""Closed-grammar arithmetic expressions: parsing, evaluation and re-notation."""

from __future__ import annotations

import math
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

SYNTAX_ERROR = "SyntaxError"
UNKNOWN_IDENTIFIER = "UnknownIdentifier"

QUALIFIED = "qualified"
BARE = "bare"
NOTATIONS = (QUALIFIED, BARE)

NAMESPACE = "Math"

DEFAULT_VARIABLES: FrozenSet[str] = frozenset({"x", "y", "z", "t", "u", "v"})

_FUNCTIONS = {
    "sin": (np.sin, 1),
    "cos": (np.cos, 1),
    "tan": (np.tan, 1),
    "asin": (np.arcsin, 1),
    "acos": (np.arccos, 1),
    "atan": (np.arctan, 1),
    "exp": (np.exp, 1),
    "log": (np.log, 1),
    "sqrt": (np.sqrt, 1),
    "abs": (np.abs, 1),
    "pow": (np.power, 2),
}

_FUNCTION_ALIASES = {"ln": "log"}

_CONSTANTS = {
    "PI": math.pi,
    "E": math.e,
}

_CONSTANT_ALIASES = {"pi": "PI", "e": "E"}

_UNICODE_REPLACEMENTS = {
    "−": "-",
    "–": "-",
    "—": "-",
    "×": "*",
    "÷": "/",
    "·": "*",
    "∙": "*",
    "⁄": "/",
    "π": "PI",
}

_SUPERSCRIPT_MAP = {
    "⁰": "0",
    "¹": "1",
    "²": "2",
    "³": "3",
    "⁴": "4",
    "⁵": "5",
    "⁶": "6",
    "⁷": "7",
    "⁸": "8",
    "⁹": "9",
    "⁺": "+",
    "⁻": "-",
}

_TOKEN_REGEX = re.compile(
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)?)"
    r"|(?P<op>\*\*|[-+*/^(),])"
)

# Binding strength used by the unparser.
_PREC_ADD = 1
_PREC_MUL = 2
_PREC_UNARY = 3
_PREC_POW = 4
_PREC_ATOM = 5


class EvaluationError(ValueError):
    """Raised when an expression cannot be parsed or evaluated structurally."""

    def __init__(self, kind: str, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.position = position


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class Constant:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Node", ...]


Node = Union[Number, Variable, Constant, UnaryOp, BinaryOp, Call]


@dataclass(frozen=True)
class ParsedExpression:
    """Immutable parse result; safe to share between evaluations."""

    source: str
    root: Node
    variables: FrozenSet[str]


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int


def normalize_expression_text(expression: str) -> str:
    """Rewrites typographic operators and superscripts into plain ASCII syntax."""
    if not expression:
        return expression

    for source, target in _UNICODE_REPLACEMENTS.items():
        expression = expression.replace(source, target)

    result_chars = []
    i = 0
    while i < len(expression):
        char = expression[i]
        if char in _SUPERSCRIPT_MAP:
            superscript_tokens = []
            while i < len(expression) and expression[i] in _SUPERSCRIPT_MAP:
                superscript_tokens.append(_SUPERSCRIPT_MAP[expression[i]])
                i += 1
            result_chars.append("^(" + "".join(superscript_tokens) + ")")
            continue

        result_chars.append(char)
        i += 1

    return "".join(result_chars)


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    position = 0
    length = len(text)
    while position < length:
        if text[position].isspace():
            position += 1
            continue
        match = _TOKEN_REGEX.match(text, position)
        if not match:
            raise EvaluationError(
                SYNTAX_ERROR,
                "Unexpected character '{}' at position {}".format(text[position], position),
                position,
            )
        kind = match.lastgroup or "op"
        value = match.group(0)
        if kind == "op" and value == "**":
            value = "^"
        tokens.append(_Token(kind=kind, text=value, position=position))
        position = match.end()
    return tokens


class _Parser:
    """Precedence-climbing parser over the closed grammar.

    expression := term (('+' | '-') term)*
    term       := unary (('*' | '/' | implicit) unary)*
    unary      := ('-' | '+') unary | power
    power      := atom ('^' unary)?
    atom       := NUMBER | CONSTANT | VARIABLE | FUNCTION '(' args ')' | '(' expression ')'
    """

    def __init__(self, tokens: List[_Token], variables: FrozenSet[str], max_depth: int) -> None:
        self._tokens = tokens
        self._index = 0
        self._variables = variables
        self._max_depth = max_depth
        self._depth = 0
        self.used_variables: set = set()

    def parse(self) -> Node:
        if not self._tokens:
            raise EvaluationError(SYNTAX_ERROR, "Expression cannot be empty.")
        node = self._parse_expression()
        token = self._peek()
        if token is not None:
            if token.text == ")":
                raise EvaluationError(
                    SYNTAX_ERROR, "Unbalanced parentheses at position {}".format(token.position), token.position
                )
            raise EvaluationError(
                SYNTAX_ERROR,
                "Unexpected trailing input '{}' at position {}".format(token.text, token.position),
                token.position,
            )
        return node

    def _peek(self) -> Optional[_Token]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _previous(self) -> Optional[_Token]:
        if self._index > 0:
            return self._tokens[self._index - 1]
        return None

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _is_op(self, token: Optional[_Token], *values: str) -> bool:
        return token is not None and token.kind == "op" and token.text in values

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > self._max_depth:
            raise EvaluationError(SYNTAX_ERROR, "Expression nesting exceeds {} levels.".format(self._max_depth))

    def _leave(self) -> None:
        self._depth -= 1

    def _parse_expression(self) -> Node:
        self._enter()
        node = self._parse_term()
        while self._is_op(self._peek(), "+", "-"):
            op = self._advance().text
            node = BinaryOp(op, node, self._parse_term())
        self._leave()
        return node

    def _parse_term(self) -> Node:
        node = self._parse_unary()
        while True:
            token = self._peek()
            if self._is_op(token, "*", "/"):
                op = self._advance().text
                node = BinaryOp(op, node, self._parse_unary())
            elif self._implicit_multiplication(token):
                node = BinaryOp("*", node, self._parse_unary())
            else:
                return node

    def _implicit_multiplication(self, token: Optional[_Token]) -> bool:
        # 2x, 3(x+1), (x+1)(x-1), (x+1)x
        previous = self._previous()
        if token is None or previous is None:
            return False
        after_operand = previous.kind == "number" or self._is_op(previous, ")")
        starts_operand = token.kind == "name" or self._is_op(token, "(")
        return after_operand and starts_operand

    def _parse_unary(self) -> Node:
        self._enter()
        token = self._peek()
        if self._is_op(token, "-"):
            self._advance()
            node: Node = UnaryOp("-", self._parse_unary())
        elif self._is_op(token, "+"):
            self._advance()
            node = self._parse_unary()
        else:
            node = self._parse_power()
        self._leave()
        return node

    def _parse_power(self) -> Node:
        base = self._parse_atom()
        if self._is_op(self._peek(), "^"):
            self._advance()
            return BinaryOp("^", base, self._parse_unary())
        return base

    def _parse_atom(self) -> Node:
        token = self._peek()
        if token is None:
            raise EvaluationError(SYNTAX_ERROR, "Unexpected end of expression.")

        if token.kind == "number":
            self._advance()
            return Number(float(token.text))

        if token.kind == "name":
            self._advance()
            return self._parse_name(token)

        if self._is_op(token, "("):
            self._advance()
            node = self._parse_expression()
            closing = self._peek()
            if not self._is_op(closing, ")"):
                raise EvaluationError(
                    SYNTAX_ERROR, "Unbalanced parentheses opened at position {}".format(token.position), token.position
                )
            self._advance()
            return node

        raise EvaluationError(
            SYNTAX_ERROR, "Unexpected token '{}' at position {}".format(token.text, token.position), token.position
        )

    def _parse_name(self, token: _Token) -> Node:
        qualified = "." in token.text
        base = token.text
        if qualified:
            namespace, base = token.text.split(".", 1)
            if namespace != NAMESPACE:
                raise EvaluationError(
                    UNKNOWN_IDENTIFIER, "Unknown namespace '{}'".format(namespace), token.position
                )

        function = _FUNCTION_ALIASES.get(base, base)
        if function in _FUNCTIONS:
            return self._parse_call(function, token)

        constant = _CONSTANT_ALIASES.get(base, base)
        if constant in _CONSTANTS:
            return Constant(constant)

        if not qualified and base in self._variables:
            self.used_variables.add(base)
            return Variable(base)

        raise EvaluationError(UNKNOWN_IDENTIFIER, "Unknown identifier '{}'".format(token.text), token.position)

    def _parse_call(self, function: str, token: _Token) -> Node:
        if not self._is_op(self._peek(), "("):
            raise EvaluationError(
                SYNTAX_ERROR, "Function '{}' must be called with parentheses".format(token.text), token.position
            )
        self._advance()
        args: List[Node] = []
        if not self._is_op(self._peek(), ")"):
            args.append(self._parse_expression())
            while self._is_op(self._peek(), ","):
                self._advance()
                args.append(self._parse_expression())
        if not self._is_op(self._peek(), ")"):
            raise EvaluationError(
                SYNTAX_ERROR, "Unbalanced parentheses in call to '{}'".format(token.text), token.position
            )
        self._advance()

        arity = _FUNCTIONS[function][1]
        if len(args) != arity:
            raise EvaluationError(
                SYNTAX_ERROR,
                "Function '{}' expects {} argument(s), got {}".format(function, arity, len(args)),
                token.position,
            )
        return Call(function, tuple(args))


class ExpressionCache:
    """Bounded least-recently-used map from raw expression text to parse results."""

    def __init__(self, capacity: int = 256) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = int(capacity)
        self._entries: "OrderedDict[str, ParsedExpression]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[ParsedExpression]:
        with self._lock:
            parsed = self._entries.get(key)
            if parsed is None:
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return parsed

    def put(self, key: str, parsed: ParsedExpression) -> None:
        with self._lock:
            self._entries[key] = parsed
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def info(self) -> Dict[str, int]:
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._entries),
                "capacity": self.capacity,
            }

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


class ExpressionEvaluator:
    """Parses and evaluates restricted arithmetic expressions.

    The whitelist of functions, constants and variables is enforced while
    parsing; evaluation only walks an already validated tree. Each evaluator
    owns its AST cache, so independent instances never share state.
    """

    def __init__(
        self,
        cache_capacity: int = 256,
        variables: Optional[Iterable[str]] = None,
        max_length: int = 1000,
        max_depth: int = 64,
    ) -> None:
        self.variables: FrozenSet[str] = frozenset(variables) if variables is not None else DEFAULT_VARIABLES
        self.max_length = int(max_length)
        self.max_depth = int(max_depth)
        self.cache = ExpressionCache(cache_capacity)

    @classmethod
    def from_settings(cls, settings: Any) -> "ExpressionEvaluator":
        return cls(
            cache_capacity=settings.cache_capacity,
            max_length=settings.max_length,
            max_depth=settings.max_depth,
        )

    def parse(self, expression: str) -> ParsedExpression:
        """Parses `expression` into an AST, reusing a cached tree when possible.

        Args:
            expression: Expression in qualified (`Math.sin(x)`) or bare (`sin(x)`) notation.

        Returns:
            Immutable parsed expression.

        Raises:
            EvaluationError: On syntax problems or identifiers outside the whitelist.
        """
        if not isinstance(expression, str):
            raise EvaluationError(SYNTAX_ERROR, "Expression must be a string.")

        cached = self.cache.get(expression)
        if cached is not None:
            return cached

        normalized = normalize_expression_text(expression.strip())
        if len(normalized) > self.max_length:
            raise EvaluationError(
                SYNTAX_ERROR, "Expression exceeds max length of {} characters.".format(self.max_length)
            )

        parser = _Parser(_tokenize(normalized), self.variables, self.max_depth)
        root = parser.parse()
        parsed = ParsedExpression(source=expression, root=root, variables=frozenset(parser.used_variables))
        self.cache.put(expression, parsed)
        return parsed

    def evaluate(
        self,
        parsed: Union[ParsedExpression, str],
        bindings: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Evaluates a parsed expression with IEEE semantics.

        Division by zero yields a signed infinity and out-of-domain inputs yield NaN;
        callers must check for non-finite results. Array bindings evaluate element-wise.

        Raises:
            EvaluationError: When a variable used by the expression has no numeric binding.
        """
        if isinstance(parsed, str):
            parsed = self.parse(parsed)

        provided = {str(name): value for name, value in (bindings or {}).items()}
        missing = sorted(parsed.variables - set(provided))
        if missing:
            raise EvaluationError(
                UNKNOWN_IDENTIFIER, "No binding for variable(s): {}".format(", ".join(missing))
            )

        # Only variables the expression uses are converted; other bindings are ignored.
        values = {}
        for name in sorted(parsed.variables):
            try:
                values[name] = np.asarray(provided[name], dtype=float)
            except (TypeError, ValueError) as exc:
                raise EvaluationError(
                    UNKNOWN_IDENTIFIER, "Binding for variable {} is not numeric".format(name)
                ) from exc

        with np.errstate(all="ignore"):
            result = _eval(parsed.root, values)

        if np.ndim(result) == 0:
            return float(result)
        return np.asarray(result, dtype=float)

    def unparse(self, parsed: Union[ParsedExpression, Node], notation: str = BARE) -> str:
        if notation not in NOTATIONS:
            raise ValueError("Unsupported notation '{}'".format(notation))
        root = parsed.root if isinstance(parsed, ParsedExpression) else parsed
        return _render(root, notation)[0]

    def clear_cache(self) -> None:
        self.cache.clear()

    def cache_info(self) -> Dict[str, int]:
        return self.cache.info()


def _eval(node: Node, values: Dict[str, Any]) -> Any:
    if isinstance(node, Number):
        return np.float64(node.value)
    if isinstance(node, Constant):
        return np.float64(_CONSTANTS[node.name])
    if isinstance(node, Variable):
        return values[node.name]
    if isinstance(node, UnaryOp):
        return np.negative(_eval(node.operand, values))
    if isinstance(node, BinaryOp):
        left = _eval(node.left, values)
        right = _eval(node.right, values)
        if node.op == "+":
            return np.add(left, right)
        if node.op == "-":
            return np.subtract(left, right)
        if node.op == "*":
            return np.multiply(left, right)
        if node.op == "/":
            return np.divide(left, right)
        if node.op == "^":
            return np.power(left, right)
        raise EvaluationError(SYNTAX_ERROR, "Unsupported operator '{}'".format(node.op))
    if isinstance(node, Call):
        function = _FUNCTIONS[node.name][0]
        return function(*[_eval(arg, values) for arg in node.args])
    raise EvaluationError(SYNTAX_ERROR, "Unsupported expression component.")


def _format_number(value: float) -> str:
    if math.isfinite(value) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _render(node: Node, notation: str) -> Tuple[str, int]:
    prefix = NAMESPACE + "." if notation == QUALIFIED else ""

    if isinstance(node, Number):
        return _format_number(node.value), _PREC_ATOM
    if isinstance(node, Variable):
        return node.name, _PREC_ATOM
    if isinstance(node, Constant):
        return prefix + node.name, _PREC_ATOM
    if isinstance(node, Call):
        args = ", ".join(_render(arg, notation)[0] for arg in node.args)
        return "{}{}({})".format(prefix, node.name, args), _PREC_ATOM

    if isinstance(node, UnaryOp):
        text, prec = _render(node.operand, notation)
        # JavaScript rejects `-x ** 2`, so qualified output wraps powers too.
        if prec <= _PREC_UNARY or (notation == QUALIFIED and prec == _PREC_POW):
            text = "({})".format(text)
        return "-" + text, _PREC_UNARY

    if isinstance(node, BinaryOp):
        left, left_prec = _render(node.left, notation)
        right, right_prec = _render(node.right, notation)
        if node.op == "^":
            if left_prec <= _PREC_POW:
                left = "({})".format(left)
            if right_prec < _PREC_POW:
                right = "({})".format(right)
            if notation == QUALIFIED:
                return "{} ** {}".format(left, right), _PREC_POW
            return "{}^{}".format(left, right), _PREC_POW

        prec = _PREC_ADD if node.op in ("+", "-") else _PREC_MUL
        if left_prec < prec:
            left = "({})".format(left)
        if right_prec <= prec:
            right = "({})".format(right)
        return "{} {} {}".format(left, node.op, right), prec

    raise EvaluationError(SYNTAX_ERROR, "Unsupported expression component.")
