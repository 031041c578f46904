"""Arithmetic formulas over named metrics (CPM, CTR, ROAS, ...).

A formula is a restricted expression: metric identifiers, numeric literals,
``+ - * /`` and parentheses. Formulas are parsed once into a tiny AST of
:class:`Number`, :class:`Variable` and :class:`BinaryOp` nodes and then
evaluated against a context mapping metric keys to numbers.

Evaluation is total: any parse error, unknown identifier or non-finite
result (division by zero included) yields ``0.0``.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Mapping, Optional, Tuple, Union

from adpivot.defaults import is_reserved_metric_name


class InvalidFormulaError(ValueError):
    """Raised when formula text is not a valid arithmetic expression."""


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, Variable, BinaryOp]

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>\d+\.?\d*|\.\d+)|(?P<name>[A-Za-z_][A-Za-z0-9_]*)|(?P<op>[-+*/()]))"
)

Token = Tuple[str, str]


class _UnknownVariable(Exception):
    pass


def tokenize(formula: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    text = formula.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            bad = text[pos:].strip()[:1]
            raise InvalidFormulaError(f"Unexpected character {bad!r} at position {pos}")
        kind = m.lastgroup or ""
        tokens.append((kind, m.group(kind)))
        pos = m.end()
    return tokens


class _Parser:
    """Recursive descent over ``expr := term (+|- term)*``, ``term := factor (*|/ factor)*``."""

    def __init__(self, tokens: List[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> Token:
        tok = self._peek()
        if tok is None:
            raise InvalidFormulaError("Unexpected end of formula")
        self.pos += 1
        return tok

    def parse(self) -> Node:
        if not self.tokens:
            raise InvalidFormulaError("Formula is empty")
        node = self._expr()
        if self._peek() is not None:
            raise InvalidFormulaError(f"Unexpected token {self._peek()[1]!r}")
        return node

    def _expr(self) -> Node:
        node = self._term()
        while self._peek() in (("op", "+"), ("op", "-")):
            op = self._take()[1]
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._factor()
        while self._peek() in (("op", "*"), ("op", "/")):
            op = self._take()[1]
            node = BinaryOp(op, node, self._factor())
        return node

    def _factor(self) -> Node:
        kind, value = self._take()
        if kind == "number":
            return Number(float(value))
        if kind == "name":
            return Variable(value)
        if value == "-":
            return BinaryOp("*", Number(-1.0), self._factor())
        if value == "+":
            return self._factor()
        if value == "(":
            node = self._expr()
            if self._take() != ("op", ")"):
                raise InvalidFormulaError("Missing closing parenthesis")
            return node
        raise InvalidFormulaError(f"Unexpected token {value!r}")


def compile_formula(formula: str) -> Node:
    """Parse formula text into an AST; raises :class:`InvalidFormulaError`."""
    return _Parser(tokenize(str(formula))).parse()


@lru_cache(maxsize=1024)
def _compiled(formula: str) -> Optional[Node]:
    try:
        return compile_formula(formula)
    except InvalidFormulaError:
        return None


def _divide(num: float, den: float) -> float:
    if den != 0:
        return num / den
    if num == 0 or math.isnan(num):
        return math.nan
    return math.copysign(math.inf, num) * math.copysign(1.0, den)


def _lookup(context: Mapping[str, float], name: str) -> float:
    if name not in context:
        raise _UnknownVariable(name)
    value = context[name]
    if value is None:
        return 0.0
    value = float(value)
    if math.isnan(value):
        return 0.0
    if math.isinf(value):
        raise _UnknownVariable(name)
    return value


def _eval(node: Node, context: Mapping[str, float]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Variable):
        return _lookup(context, node.name)
    left = _eval(node.left, context)
    right = _eval(node.right, context)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    return _divide(left, right)


def evaluate_formula(formula: str, context: Mapping[str, float]) -> float:
    """Evaluate ``formula`` against ``context``; never raises.

    Example::

        evaluate_formula("cost / impressions * 1000", {"cost": 50, "impressions": 1000})
        # -> 50.0
    """
    node = _compiled(str(formula or ""))
    if node is None:
        return 0.0
    try:
        result = _eval(node, context)
    except (_UnknownVariable, TypeError, ValueError, OverflowError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def referenced_metrics(formula: str) -> List[str]:
    """Identifiers used by a formula, in first-use order (empty if invalid)."""
    node = _compiled(str(formula or ""))
    names: List[str] = []

    def _walk(n: Optional[Node]) -> None:
        if isinstance(n, Variable) and n.name not in names:
            names.append(n.name)
        elif isinstance(n, BinaryOp):
            _walk(n.left)
            _walk(n.right)

    _walk(node)
    return names


def validate_formula(
    formula: str,
    known_keys: Optional[Iterable[str]] = None,
    name: Optional[str] = None,
) -> dict:
    """Authoring-time check. Returns ``{'valid': bool, 'errors': [...]}``.

    When ``name`` is given it must not reuse a base metric or ``custom_*`` key.
    """
    errors: List[str] = []
    if name is not None and is_reserved_metric_name(name.strip()):
        errors.append(f"Formula name '{name.strip()}' clashes with a metric key")
    try:
        compile_formula(str(formula or ""))
    except InvalidFormulaError as exc:
        errors.append(str(exc))
    else:
        if known_keys is not None:
            known = set(known_keys)
            for metric in referenced_metrics(formula):
                if metric not in known:
                    errors.append(f"Unknown metric '{metric}'")
    return {"valid": len(errors) == 0, "errors": errors}
