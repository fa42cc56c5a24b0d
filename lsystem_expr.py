"""lsystem_expr.py

Small arithmetic/logical formulas used by parametric productions.

Formulas gate production applicability (conditions) and compute successor
parameter values. There is a single value domain, ``float``: booleans are
represented as 1.0 / 0.0 and any value other than exactly 0.0 is truthy.

Grammar:

  expression := term (operator term)*
  term       := number | variable | '(' expression ')'
  variable   := a single ASCII letter
  number     := signed decimal literal (sign only where a term is expected)

Operators, lowest to highest precedence:

  || &&   <   == > < >= <=   <   + -   <   * /   <   ^

All operators are left-associative except ``^``. Both operands of ``||`` and
``&&`` are always evaluated.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Literal

from lsystem_errors import ExpressionSyntaxError, UnboundVariableError

BinaryOperator = Literal[
    "||", "&&", "==", ">", "<", ">=", "<=", "+", "-", "*", "/", "^"
]

Context = Sequence[tuple[str, float]]


# -------------------------
# Expression tree
# -------------------------


@dataclass(frozen=True)
class Number:
    value: float

    def __str__(self) -> str:
        return format_expression(self)


@dataclass(frozen=True)
class Var:
    name: str

    def __str__(self) -> str:
        return format_expression(self)


@dataclass(frozen=True)
class BinOp:
    op: BinaryOperator
    left: Expression
    right: Expression

    def __str__(self) -> str:
        return format_expression(self)


Expression = Number | Var | BinOp


PRECEDENCE: dict[str, int] = {
    "||": 1,
    "&&": 1,
    "==": 2,
    ">": 2,
    "<": 2,
    ">=": 2,
    "<=": 2,
    "+": 3,
    "-": 3,
    "*": 4,
    "/": 4,
    "^": 5,
}

_RIGHT_ASSOCIATIVE = frozenset({"^"})

# Two-character operators must be tried before their one-character prefixes.
_OPERATORS = sorted(PRECEDENCE, key=len, reverse=True)


# -------------------------
# Evaluation
# -------------------------


def _as_value(b: bool) -> float:
    return 1.0 if b else 0.0


def _as_bool(x: float) -> bool:
    return x != 0.0


def _divide(a: float, b: float) -> float:
    if b != 0.0:
        return a / b
    if a == 0.0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _is_odd_integer(x: float) -> bool:
    return math.isfinite(x) and x.is_integer() and int(x) % 2 == 1


def _power(a: float, b: float) -> float:
    # math.pow raises where C's pow() returns inf/nan; map back to IEEE results.
    try:
        return math.pow(a, b)
    except OverflowError:
        if a < 0.0 and _is_odd_integer(b):
            return -math.inf
        return math.inf
    except ValueError:
        if a == 0.0 and b < 0.0:
            if _is_odd_integer(b):
                return math.copysign(math.inf, a)
            return math.inf
        return math.nan


_APPLY: dict[str, Callable[[float, float], float]] = {
    "||": lambda a, b: _as_value(_as_bool(a) or _as_bool(b)),
    "&&": lambda a, b: _as_value(_as_bool(a) and _as_bool(b)),
    "==": lambda a, b: _as_value(a == b),
    ">": lambda a, b: _as_value(a > b),
    "<": lambda a, b: _as_value(a < b),
    ">=": lambda a, b: _as_value(a >= b),
    "<=": lambda a, b: _as_value(a <= b),
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
    "^": _power,
}


def lookup(context: Context, name: str) -> float:
    """Return the first binding of ``name`` (linear scan, first match wins)."""
    for bound, value in context:
        if bound == name:
            return value
    raise UnboundVariableError(f"variable '{name}' is not bound")


def evaluate(expr: Expression, context: Context) -> float:
    if isinstance(expr, Number):
        return expr.value
    if isinstance(expr, Var):
        return lookup(context, expr.name)
    if isinstance(expr, BinOp):
        # Both sides first: logical operators do not short-circuit, so an
        # unbound variable on the right is always reported.
        left = evaluate(expr.left, context)
        right = evaluate(expr.right, context)
        return _APPLY[expr.op](left, right)
    raise TypeError(f"Expected an expression node, got {type(expr).__name__}")


def evaluate_as_bool(expr: Expression, context: Context) -> bool:
    return evaluate(expr, context) != 0.0


def variables(expr: Expression) -> set[str]:
    return {v.name for v in _walk(expr) if isinstance(v, Var)}


def _walk(expr: Expression) -> Iterator[Expression]:
    stack: list[Expression] = [expr]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, BinOp):
            stack.append(node.right)
            stack.append(node.left)


# -------------------------
# Formatting
# -------------------------


def format_number(x: float) -> str:
    """Format a parameter value: integral values lose their ``.0``."""
    if math.isinf(x):
        # Any overflowing literal reads back as infinity.
        return "-1e999" if x < 0 else "1e999"
    if math.isfinite(x) and x.is_integer() and abs(x) < 1e16:
        # Keep the sign of negative zero so it survives a re-parse.
        return "-0" if math.copysign(1.0, x) < 0 and x == 0 else str(int(x))
    return repr(x)


def format_expression(expr: Expression) -> str:
    """Render ``expr`` with the fewest parentheses that re-parse to it."""
    if isinstance(expr, Number):
        return format_number(expr.value)
    if isinstance(expr, Var):
        return expr.name
    if isinstance(expr, BinOp):
        prec = PRECEDENCE[expr.op]
        right_assoc = expr.op in _RIGHT_ASSOCIATIVE
        left = format_expression(expr.left)
        right = format_expression(expr.right)
        if isinstance(expr.left, BinOp):
            lp = PRECEDENCE[expr.left.op]
            if lp < prec or (lp == prec and right_assoc):
                left = f"({left})"
        if isinstance(expr.right, BinOp):
            rp = PRECEDENCE[expr.right.op]
            if rp < prec or (rp == prec and not right_assoc):
                right = f"({right})"
        return f"{left}{expr.op}{right}"
    raise TypeError(f"Expected an expression node, got {type(expr).__name__}")


# -------------------------
# Parsing
# -------------------------

_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class _Parser:
    """Precedence-climbing parser over a character cursor."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def fail(self, msg: str) -> ExpressionSyntaxError:
        return ExpressionSyntaxError(f"{msg} at column {self.pos + 1} in {self.text!r}")

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def parse(self) -> Expression:
        expr = self.expression(1)
        self.skip_ws()
        if self.pos != len(self.text):
            raise self.fail(f"unexpected {self.text[self.pos]!r}")
        return expr

    def expression(self, min_prec: int) -> Expression:
        lhs = self.term()
        while True:
            op = self.peek_operator()
            if op is None or PRECEDENCE[op] < min_prec:
                return lhs
            self.pos += len(op)
            prec = PRECEDENCE[op]
            rhs = self.expression(prec if op in _RIGHT_ASSOCIATIVE else prec + 1)
            lhs = BinOp(op, lhs, rhs)

    def peek_operator(self) -> BinaryOperator | None:
        self.skip_ws()
        for op in _OPERATORS:
            if self.text.startswith(op, self.pos):
                return op  # type: ignore[return-value]
        return None

    def term(self) -> Expression:
        self.skip_ws()
        if self.pos >= len(self.text):
            raise self.fail("expected a term but reached the end")

        ch = self.text[self.pos]
        if ch == "(":
            self.pos += 1
            inner = self.expression(1)
            self.skip_ws()
            if self.pos >= len(self.text) or self.text[self.pos] != ")":
                raise self.fail("expected ')'")
            self.pos += 1
            return inner

        m = _NUMBER_RE.match(self.text, self.pos)
        if m:
            self.pos = m.end()
            return Number(float(m.group()))

        if ch.isascii() and ch.isalpha():
            self.pos += 1
            return Var(ch)

        raise self.fail(f"unexpected {ch!r}")


def parse(text: str) -> Expression:
    return _Parser(text).parse()
