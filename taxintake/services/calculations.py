"""Calculated line items.

Calculated fields carry a small arithmetic expression over other field keys,
e.g. ``line_1 + line_2 - line_3`` or ``max(0, line_9 - line_10)``. Grammar::

    expr    := term (('+' | '-') term)*
    term    := unary (('*' | '/') unary)*
    unary   := ('+' | '-') unary | primary
    primary := NUMBER | NAME | NAME '(' expr (',' expr)* ')' | '(' expr ')'

Names resolve through a numeric context built with ``to_number``; a name
without an answer is 0. A broken expression never raises: it evaluates to 0
and the reason is kept on the result.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Mapping, Union

from taxintake.services.answer_values import to_number

_LOG = logging.getLogger("taxintake.calculations")

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>\d+(?:\.\d*)?|\.\d+)|(?P<name>[A-Za-z_][A-Za-z0-9_]*)|(?P<op>[-+*/(),]))"
)

FUNCTIONS = {
    "min": min,
    "max": max,
}

EXTRA_PASSES = 2
MAX_NESTING = 64


class CalculationError(Exception):
    pass


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Call:
    function: str
    args: tuple["Node", ...]


Node = Union[Number, Name, Unary, Binary, Call]


@dataclass(frozen=True)
class CalculationResult:
    value: float
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def tokenize(expression: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = expression.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise CalculationError(f"Unexpected character {text[pos:].lstrip()[:1]!r} at {pos}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str]]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise CalculationError("Unexpected end of expression")
        self.pos += 1
        return token

    def _accept(self, op: str) -> bool:
        token = self._peek()
        if token == ("op", op):
            self.pos += 1
            return True
        return False

    def _expect(self, op: str) -> None:
        if not self._accept(op):
            token = self._peek()
            found = token[1] if token else "end of expression"
            raise CalculationError(f"Expected {op!r}, found {found!r}")

    def parse(self) -> Node:
        if not self.tokens:
            raise CalculationError("Empty expression")
        node = self._expr()
        if self._peek() is not None:
            raise CalculationError(f"Unexpected token {self._peek()[1]!r}")
        return node

    def _expr(self) -> Node:
        node = self._term()
        while True:
            if self._accept("+"):
                node = Binary("+", node, self._term())
            elif self._accept("-"):
                node = Binary("-", node, self._term())
            else:
                return node

    def _term(self) -> Node:
        node = self._unary()
        while True:
            if self._accept("*"):
                node = Binary("*", node, self._unary())
            elif self._accept("/"):
                node = Binary("/", node, self._unary())
            else:
                return node

    def _unary(self) -> Node:
        # Parentheses, calls and sign chains all nest through here.
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise CalculationError(f"Expression nests deeper than {MAX_NESTING} levels")
        try:
            if self._accept("-"):
                return Unary("-", self._unary())
            if self._accept("+"):
                return self._unary()
            return self._primary()
        finally:
            self.depth -= 1

    def _primary(self) -> Node:
        kind, text = self._next()
        if kind == "number":
            return Number(float(text))
        if kind == "name":
            if self._accept("("):
                args = [self._expr()]
                while self._accept(","):
                    args.append(self._expr())
                self._expect(")")
                return Call(text.lower(), tuple(args))
            return Name(text)
        if text == "(":
            node = self._expr()
            self._expect(")")
            return node
        raise CalculationError(f"Unexpected token {text!r}")


@lru_cache(maxsize=1024)
def parse_expression(expression: str) -> Node:
    return _Parser(tokenize(expression)).parse()


def referenced_names(expression: str) -> set[str]:
    """Field keys an expression reads; empty when it does not parse."""
    try:
        root = parse_expression(expression)
    except CalculationError:
        return set()
    names: set[str] = set()
    stack: list[Node] = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, Name):
            names.add(node.name)
        elif isinstance(node, Unary):
            stack.append(node.operand)
        elif isinstance(node, Binary):
            stack.extend((node.left, node.right))
        elif isinstance(node, Call):
            stack.extend(node.args)
    return names


def _evaluate(node: Node, context: Mapping[str, float]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Name):
        return float(context.get(node.name, 0.0))
    if isinstance(node, Unary):
        return -_evaluate(node.operand, context)
    if isinstance(node, Binary):
        left = _evaluate(node.left, context)
        right = _evaluate(node.right, context)
        if node.op == "+":
            return left + right
        if node.op == "-":
            return left - right
        if node.op == "*":
            return left * right
        if right == 0:
            raise CalculationError("Division by zero")
        return left / right
    if isinstance(node, Call):
        function = FUNCTIONS.get(node.function)
        if function is None:
            raise CalculationError(f"Unknown function {node.function!r}")
        return float(function(_evaluate(arg, context) for arg in node.args))
    raise CalculationError(f"Unsupported node {node!r}")


def evaluate_expression(expression: str | None, context: Mapping[str, float]) -> CalculationResult:
    try:
        value = _evaluate(parse_expression(str(expression or "").strip()), context)
    except CalculationError as exc:
        return CalculationResult(0.0, str(exc))
    except RecursionError:
        return CalculationResult(0.0, "Expression is too deeply nested")
    if not math.isfinite(value):
        return CalculationResult(0.0, "Result is not a finite number")
    return CalculationResult(value)


def _clean_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def _calculated_fields(fields: Iterable[Any]) -> list[Any]:
    return [
        f
        for f in fields
        if getattr(f, "is_calculated", False) and str(getattr(f, "calculation", "") or "").strip()
    ]


def recompute(fields: Iterable[Any], answers: Mapping[str, Any]) -> dict[str, int | float]:
    """Values of every calculated field over the given answers.

    Calculated fields may read other calculated fields. Passes repeat, each
    feeding its results into the next, until nothing changes or the pass
    limit is hit; cycles simply stop there.
    """
    calculated = _calculated_fields(fields)
    if not calculated:
        return {}

    context: dict[str, float] = {key: to_number(value) for key, value in answers.items()}
    results: dict[str, float] = {}
    max_passes = len(calculated) + EXTRA_PASSES
    for pass_number in range(1, max_passes + 1):
        changed = False
        for f in calculated:
            result = evaluate_expression(f.calculation, context)
            if not result.ok and pass_number == 1:
                _LOG.debug("calculation for %s degraded to 0: %s", f.field_key, result.error)
            if results.get(f.field_key) != result.value:
                changed = True
            results[f.field_key] = result.value
            context[f.field_key] = result.value
        if not changed:
            break
    else:
        _LOG.debug("calculated fields did not settle after %s passes", max_passes)

    return {key: _clean_number(value) for key, value in results.items()}


def apply_calculations(fields: Iterable[Any], answers: Mapping[str, Any]) -> dict[str, Any]:
    """Answers with every calculated field replaced by its current value."""
    merged = dict(answers)
    merged.update(recompute(fields, answers))
    return merged
