"""lsystem_model.py

Value types of a parametric L-system: parameter lists, elements, symbol
strings and productions, with their canonical text rendering.

Elements are generic over the parameter domain:
  - actual elements carry numbers and live in the generated string,
  - formal elements carry single-letter names (production left-hand side),
  - successor elements carry unevaluated expressions (right-hand side).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Generic, TypeVar, overload

from lsystem_errors import CapacityExceededError, GrammarError, UnboundVariableError
from lsystem_expr import (
    Context,
    Expression,
    evaluate,
    evaluate_as_bool,
    format_expression,
    format_number,
    variables,
)

MAX_PARAMS = 3

T = TypeVar("T")


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise GrammarError(msg)


def _format_param(value: object) -> str:
    if isinstance(value, float):
        return format_number(value)
    if isinstance(value, (int, str)):
        return str(value)
    return format_expression(value)  # type: ignore[arg-type]


# -------------------------
# Parameters and elements
# -------------------------


@dataclass(frozen=True)
class Params(Generic[T]):
    """Ordered parameter values, at most MAX_PARAMS of them."""

    values: tuple[T, ...] = ()

    def __post_init__(self) -> None:
        if len(self.values) > MAX_PARAMS:
            raise CapacityExceededError(
                f"at most {MAX_PARAMS} parameters are allowed, got {len(self.values)}"
            )

    @classmethod
    def of(cls, values: Iterable[T]) -> Params[T]:
        return cls(tuple(values))

    @classmethod
    def empty(cls) -> Params[T]:
        return cls(())

    @property
    def arity(self) -> int:
        return len(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[T]:
        return iter(self.values)

    def __getitem__(self, i: int) -> T:
        return self.values[i]

    def __str__(self) -> str:
        if not self.values:
            return ""
        return "(" + ", ".join(_format_param(v) for v in self.values) + ")"


@dataclass(frozen=True)
class Element(Generic[T]):
    symbol: str
    params: Params[T] = field(default_factory=Params.empty)

    def __post_init__(self) -> None:
        _require(
            isinstance(self.symbol, str) and len(self.symbol) == 1,
            f"symbol must be a single character, got {self.symbol!r}",
        )

    @classmethod
    def of(cls, symbol: str, *values: T) -> Element[T]:
        return cls(symbol, Params(values))

    def arity(self) -> int:
        return self.params.arity

    def is_compatible(self, other: Element[object]) -> bool:
        """Same symbol and same number of parameters; values are ignored."""
        return self.symbol == other.symbol and self.arity() == other.arity()

    def __str__(self) -> str:
        return f"{self.symbol}{self.params}"


ActualElement = Element[float]
FormalElement = Element[str]
SuccessorElement = Element[Expression]


# -------------------------
# Symbol strings
# -------------------------


@dataclass(frozen=True)
class LString:
    """An immutable generation snapshot."""

    elements: tuple[ActualElement, ...] = ()

    @classmethod
    def from_symbols(cls, symbols: str) -> LString:
        """Build a parameterless string, one element per character."""
        return cls(tuple(Element(ch) for ch in symbols))

    def symbols(self) -> str:
        return "".join(e.symbol for e in self.elements)

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[ActualElement]:
        return iter(self.elements)

    @overload
    def __getitem__(self, i: int) -> ActualElement: ...

    @overload
    def __getitem__(self, i: slice) -> tuple[ActualElement, ...]: ...

    def __getitem__(self, i: int | slice) -> ActualElement | tuple[ActualElement, ...]:
        return self.elements[i]

    def __str__(self) -> str:
        return "".join(str(e) for e in self.elements)


# -------------------------
# Productions
# -------------------------


@dataclass(frozen=True)
class Production:
    """A rewrite rule ``[lc<]pred[>rc] [:condition] [~probability] = successor``.

    ``left_context`` and ``right_context`` are optional; when present the
    element's immediate neighbours in the pre-step string must be compatible
    with them, and their formal names are bound too.
    """

    predecessor: FormalElement
    successor: tuple[SuccessorElement, ...] = ()
    condition: Expression | None = None
    probability: float = 1.0
    left_context: FormalElement | None = None
    right_context: FormalElement | None = None

    def __post_init__(self) -> None:
        _require(
            0.0 <= self.probability <= 1.0,
            f"probability must be within [0, 1], got {self.probability}",
        )
        names = self.formal_names()
        for name in names:
            _require(
                isinstance(name, str) and len(name) == 1 and name.isascii() and name.isalpha(),
                f"formal parameter must be a single letter, got {name!r}",
            )
        _require(
            len(set(names)) == len(names),
            f"formal parameter names must be distinct in '{self}'",
        )

    def formal_names(self) -> list[str]:
        names: list[str] = []
        for part in (self.left_context, self.predecessor, self.right_context):
            if part is not None:
                names.extend(part.params)
        return names

    def validate(self) -> None:
        """Check that every variable used is one of the formal parameters."""
        bound = set(self.formal_names())
        used: set[str] = set()
        if self.condition is not None:
            used |= variables(self.condition)
        for element in self.successor:
            for param in element.params:
                used |= variables(param)
        unbound = sorted(used - bound)
        if unbound:
            raise UnboundVariableError(
                f"production '{self}' uses unbound variable(s): {', '.join(unbound)}"
            )

    def context(
        self,
        element: ActualElement,
        left: ActualElement | None = None,
        right: ActualElement | None = None,
    ) -> Context:
        bindings: list[tuple[str, float]] = []
        if self.left_context is not None and left is not None:
            bindings.extend(zip(self.left_context.params, left.params))
        bindings.extend(zip(self.predecessor.params, element.params))
        if self.right_context is not None and right is not None:
            bindings.extend(zip(self.right_context.params, right.params))
        return bindings

    def matches(
        self,
        element: ActualElement,
        left: ActualElement | None = None,
        right: ActualElement | None = None,
    ) -> bool:
        if not self.predecessor.is_compatible(element):
            return False
        if self.left_context is not None:
            if left is None or not self.left_context.is_compatible(left):
                return False
        if self.right_context is not None:
            if right is None or not self.right_context.is_compatible(right):
                return False
        if self.condition is None:
            return True
        return evaluate_as_bool(self.condition, self.context(element, left, right))

    def apply(
        self,
        element: ActualElement,
        left: ActualElement | None = None,
        right: ActualElement | None = None,
    ) -> list[ActualElement]:
        ctx = self.context(element, left, right)
        return [
            Element(succ.symbol, Params(tuple(evaluate(p, ctx) for p in succ.params)))
            for succ in self.successor
        ]

    def __str__(self) -> str:
        head = str(self.predecessor)
        if self.left_context is not None:
            head = f"{self.left_context}<{head}"
        if self.right_context is not None:
            head = f"{head}>{self.right_context}"
        if self.condition is not None:
            head += f":{format_expression(self.condition)}"
        if self.probability != 1.0:
            head += f"~{format_number(self.probability)}"
        body = "".join(str(e) for e in self.successor)
        if self.condition is not None and self.probability == 1.0 and body[:1] == "=":
            # Keep a leading "=" from fusing with the separator into "==".
            body = " " + body
        return head + "=" + body
