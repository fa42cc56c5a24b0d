import random

import pytest

from lsystem_engine import LSystem, with_neighbors
from lsystem_errors import UnboundVariableError
from lsystem_expr import parse
from lsystem_grammar import parse_grammar
from lsystem_model import Element, LString, Production


def build(text: str, **kwargs: object) -> LSystem:
    return LSystem.from_grammar(parse_grammar(text), **kwargs)  # type: ignore[arg-type]


class FixedRandom(random.Random):
    """Returns queued draws and counts how many were taken."""

    def __init__(self, *draws: float) -> None:
        super().__init__(0)
        self.draws = list(draws)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.draws.pop(0)


class TestGenerations:
    def test_parallel_rewriting(self) -> None:
        lsys = build("F\nF = FF")
        assert str(lsys.advance()) == "FF"
        assert str(lsys.advance()) == "FFFF"
        assert lsys.generation == 2

    def test_algae(self) -> None:
        lsys = build("A\nA = AB\nB = A")
        assert [str(next(lsys)) for _ in range(5)] == ["A", "AB", "ABA", "ABAAB", "ABAABABA"]

    def test_first_next_is_axiom(self) -> None:
        lsys = build("F\nF = F+F")
        assert str(next(lsys)) == "F"
        assert lsys.generation == 0
        assert str(next(lsys)) == "F+F"
        assert lsys.generation == 1

    def test_advance_skips_ahead(self) -> None:
        lsys = build("F\nF = FF")
        assert str(lsys.advance(0)) == "F"
        assert len(lsys.advance(3)) == 8
        assert len(next(lsys)) == 16

    def test_advance_cannot_go_back(self) -> None:
        lsys = build("F\nF = FF")
        with pytest.raises(ValueError):
            lsys.advance(-1)

    def test_snapshots_are_not_mutated(self) -> None:
        lsys = build("F\nF = FF")
        first = next(lsys)
        lsys.generate()
        assert str(first) == "F"
        assert str(lsys.current) == "FF"

    def test_generations_limit(self) -> None:
        lsys = build("F\nF = FF")
        lengths = [len(s) for s in lsys.generations(limit=5)]
        assert lengths == [1, 2, 4, 8]

    def test_no_rules_is_identity(self) -> None:
        lsys = build("F+-F")
        assert str(lsys.advance(5)) == "F+-F"

    def test_display(self) -> None:
        lsys = build("F\nF = FF")
        assert str(lsys) == "F\nF=FF\n"

    def test_accepts_element_iterable(self) -> None:
        lsys = LSystem([Element("F")], [Production(Element("F"), (Element("G"),))])
        assert lsys.current == LString.from_symbols("F")
        assert str(lsys.advance()) == "G"


class TestMatching:
    def test_arity_must_match(self) -> None:
        lsys = build("F F(1) F(1, 2)\nF(x) = G(x)")
        assert str(lsys.advance()) == "FG(1)F(1, 2)"

    def test_condition_gates_rewrite(self) -> None:
        lsys = build("A(3)\nA(x) : x > 0 = A(x-1)B")
        assert str(lsys.advance()) == "A(2)B"
        assert str(lsys.advance(2)) == "A(0)BBB"
        assert str(lsys.advance()) == "A(0)BBB"

    def test_successor_parameters(self) -> None:
        lsys = build("A(1, 10)\nA(l, w) = F(l)[+A(l*2, w/2)]")
        assert str(lsys.advance()) == "F(1)[+A(2, 5)]"

    def test_left_context(self) -> None:
        lsys = build("baaaa\nb < a = b\nb = a")
        assert str(lsys.advance()) == "abaaa"
        assert str(lsys.advance()) == "aabaa"
        assert str(lsys.advance()) == "aaaba"

    def test_right_context_binds_parameters(self) -> None:
        lsys = build("A(1)B(5)\nA(x) > B(y) = A(x+y)")
        assert str(lsys.advance()) == "A(6)B(5)"

    def test_context_uses_pre_step_neighbours(self) -> None:
        # Neighbours come from the string before the step.
        lsys = build("aba\nb < a = c\na > b = d")
        assert str(lsys.advance()) == "dbc"


class TestStochastic:
    def test_cumulative_selection(self) -> None:
        text = "F\nF ~0.3 = A\nF ~0.3 = B"
        assert str(build(text, rng=FixedRandom(0.1)).advance()) == "A"
        assert str(build(text, rng=FixedRandom(0.45)).advance()) == "B"
        # Past 0.6 nothing fires: identity rewrite.
        assert str(build(text, rng=FixedRandom(0.65)).advance()) == "F"

    def test_draw_only_when_something_matches(self) -> None:
        rng = FixedRandom()
        lsys = build("GGG\nF = FF", rng=rng)
        lsys.advance()
        assert rng.calls == 0

    def test_one_draw_per_matching_element(self) -> None:
        rng = FixedRandom(0.1, 0.9, 0.5)
        lsys = build("FGF\nF ~0.5 = A\nF ~0.5 = B\nG(x) = H", rng=rng)
        assert str(lsys.advance()) == "AGB"
        assert rng.calls == 2

    def test_even_split_converges(self) -> None:
        lsys = LSystem(
            LString.from_symbols("F" * 2000),
            parse_grammar("F\nF ~0.5 = A\nF ~0.5 = B").productions,
            seed=1,
        )
        result = lsys.advance().symbols()
        ratio = result.count("A") / len(result)
        assert 0.45 < ratio < 0.55
        assert result.count("F") == 0

    def test_uncovered_mass_keeps_symbol(self) -> None:
        lsys = LSystem(
            LString.from_symbols("F" * 2000),
            parse_grammar("F\nF ~0.3 = A\nF ~0.3 = B").productions,
            seed=2,
        )
        result = lsys.advance().symbols()
        kept = result.count("F") / len(result)
        assert 0.33 < kept < 0.47

    def test_seed_is_reproducible(self) -> None:
        text = "F\nF ~0.33 = F[+F]F[-F]F\nF ~0.33 = F[+F]F\nF ~0.34 = F[-F]F"
        a = build(text, seed=42).advance(4)
        b = build(text, seed=42).advance(4)
        c = build(text, rng=random.Random(42)).advance(4)
        assert a == b == c

    def test_rng_and_seed_are_exclusive(self) -> None:
        with pytest.raises(ValueError):
            build("F", rng=random.Random(1), seed=1)


class TestFailures:
    def test_unbound_variable_rejected_at_construction(self) -> None:
        bad = Production(Element.of("F", "x"), (Element.of("F", parse("y")),))
        with pytest.raises(UnboundVariableError):
            LSystem([Element.of("F", 1.0)], [bad])

    def test_unbound_variable_fails_generate(self) -> None:
        bad = Production(Element.of("F", "x"), (Element.of("F", parse("y")),))
        lsys = LSystem([Element("G"), Element.of("F", 1.0)], [bad], validate=False)
        with pytest.raises(UnboundVariableError):
            lsys.generate()
        assert str(lsys.current) == "GF(1)"
        assert lsys.generation == 0

    def test_condition_does_not_short_circuit(self) -> None:
        bad = Production(Element.of("F", "x"), (Element("G"),), condition=parse("1||y"))
        lsys = LSystem([Element.of("F", 1.0)], [bad], validate=False)
        with pytest.raises(UnboundVariableError):
            lsys.generate()


class TestWithNeighbors:
    def test_triples(self) -> None:
        assert list(with_neighbors([1, 2, 3])) == [(None, 1, 2), (1, 2, 3), (2, 3, None)]

    def test_short_inputs(self) -> None:
        assert list(with_neighbors([])) == []
        assert list(with_neighbors(["a"])) == [(None, "a", None)]
