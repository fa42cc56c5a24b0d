"""lsystem_engine.py

Generational (parallel) rewriting of a parametric, stochastic L-system.

Every element of a generation is matched against the string as it was before
the step; elements produced during a step are never rewritten within that
same step. Among the productions matching an element one is chosen by a
single uniform draw walked against cumulative probabilities in declaration
order. If the draw falls past the matching probabilities' sum (they add up to
less than 1), the element is copied unchanged.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Generator, Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, TypeVar

from lsystem_errors import LSystemError
from lsystem_model import ActualElement, LString, Production

if TYPE_CHECKING:
    from lsystem_grammar import Grammar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_neighbors(
    items: Iterable[T],
) -> Generator[tuple[T | None, T, T | None], None, None]:
    """Yield ``(previous, item, following)``; ends are padded with None."""
    it = iter(items)
    prev: T | None = None
    try:
        cur = next(it)
    except StopIteration:
        return
    for following in it:
        yield prev, cur, following
        prev, cur = cur, following
    yield prev, cur, None


class LSystem:
    """Owns the live string and the productions, one generation per step.

    The engine is a forward-only iterator: the first ``next()`` returns the
    current string (the axiom for a fresh engine) and each later one rewrites
    once before returning. Rewinding means building a new engine.
    """

    def __init__(
        self,
        axiom: LString | Iterable[ActualElement],
        productions: Sequence[Production],
        *,
        rng: random.Random | None = None,
        seed: int | None = None,
        validate: bool = True,
    ) -> None:
        if rng is not None and seed is not None:
            raise ValueError("pass either rng or seed, not both")
        productions = tuple(productions)
        if validate:
            for production in productions:
                production.validate()

        self._current = axiom if isinstance(axiom, LString) else LString(tuple(axiom))
        self._next: list[ActualElement] = []
        self._productions = productions
        self._rng = rng if rng is not None else random.Random(seed)
        self._generation = 0
        self._started = False

    @classmethod
    def from_grammar(
        cls,
        grammar: Grammar,
        *,
        rng: random.Random | None = None,
        seed: int | None = None,
        validate: bool = True,
    ) -> LSystem:
        return cls(
            grammar.axiom, grammar.productions, rng=rng, seed=seed, validate=validate
        )

    @property
    def current(self) -> LString:
        return self._current

    @property
    def productions(self) -> tuple[Production, ...]:
        return self._productions

    @property
    def generation(self) -> int:
        return self._generation

    # -------------------------
    # Rewriting
    # -------------------------

    def _select(
        self,
        element: ActualElement,
        left: ActualElement | None,
        right: ActualElement | None,
    ) -> Production | None:
        candidates = [p for p in self._productions if p.matches(element, left, right)]
        if not candidates:
            return None

        r = self._rng.random()
        t = 0.0
        for production in candidates:
            t += production.probability
            if r < t:
                return production

        logger.debug(
            "draw %.6f exceeds total probability %.6f for %s; keeping it",
            r,
            t,
            element,
        )
        return None

    def generate(self) -> LString:
        """Rewrite every element of the current string once, in parallel."""
        try:
            for left, element, right in with_neighbors(self._current):
                production = self._select(element, left, right)
                if production is None:
                    self._next.append(element)
                else:
                    self._next.extend(production.apply(element, left, right))
        except LSystemError:
            self._next.clear()
            raise

        self._current, self._next = LString(tuple(self._next)), []
        self._generation += 1
        logger.debug(
            "generation %d: %d elements", self._generation, len(self._current)
        )
        return self._current

    def advance(self, k: int = 1) -> LString:
        """Perform exactly ``k`` rewrite steps and return the new string."""
        if k < 0:
            raise ValueError(f"cannot move back {-k} generation(s)")
        for _ in range(k):
            self.generate()
        self._started = True
        return self._current

    # -------------------------
    # Generation sequence
    # -------------------------

    def __iter__(self) -> Iterator[LString]:
        return self

    def __next__(self) -> LString:
        if self._started:
            self.generate()
        self._started = True
        return self._current

    def generations(self, limit: int | None = None) -> Generator[LString, None, None]:
        """Yield the current string, then one string per further generation.

        Stops after the first string longer than ``limit`` when it is given.
        """
        for snapshot in self:
            yield snapshot
            if limit is not None and len(snapshot) > limit:
                return

    def __str__(self) -> str:
        lines = [str(self._current)]
        lines.extend(str(p) for p in self._productions)
        return "\n".join(lines) + "\n"
