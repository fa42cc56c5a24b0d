import dataclasses

import pytest

from lsystem_errors import CapacityExceededError, GrammarError, UnboundVariableError
from lsystem_expr import parse
from lsystem_model import MAX_PARAMS, Element, LString, Params, Production


def F(*values: float) -> Element[float]:
    return Element.of("F", *values)


class TestParams:
    def test_capacity(self) -> None:
        assert MAX_PARAMS == 3
        assert Params((1.0, 2.0, 3.0)).arity == 3
        with pytest.raises(CapacityExceededError):
            Params((1.0, 2.0, 3.0, 4.0))
        with pytest.raises(CapacityExceededError):
            Params.of(iter([1.0, 2.0, 3.0, 4.0]))

    def test_sequence_behaviour(self) -> None:
        p = Params.of([1.0, 2.5])
        assert len(p) == 2
        assert list(p) == [1.0, 2.5]
        assert p[1] == 2.5
        assert Params.empty().arity == 0

    def test_format(self) -> None:
        assert str(Params.empty()) == ""
        assert str(Params((1.0, 2.5))) == "(1, 2.5)"
        assert str(Params(("x", "y"))) == "(x, y)"
        assert str(Params((parse("x+1"),))) == "(x+1)"


class TestElement:
    def test_format(self) -> None:
        assert str(Element("F")) == "F"
        assert str(F(1.0, 2.0)) == "F(1, 2)"
        assert str(Element.of("A", "l", "w")) == "A(l, w)"

    def test_compatibility_is_symbol_and_arity(self) -> None:
        formal = Element.of("F", "x")
        assert formal.is_compatible(F(1.0))
        assert formal.is_compatible(F(99.0))
        assert not formal.is_compatible(F())
        assert not formal.is_compatible(F(1.0, 2.0))
        assert not formal.is_compatible(Element.of("G", 1.0))

    def test_symbol_must_be_one_character(self) -> None:
        with pytest.raises(GrammarError):
            Element("FF")
        with pytest.raises(GrammarError):
            Element("")


class TestLString:
    def test_from_symbols(self) -> None:
        s = LString.from_symbols("F+F")
        assert len(s) == 3
        assert s.symbols() == "F+F"
        assert str(s) == "F+F"
        assert s[1] == Element("+")

    def test_format_with_params(self) -> None:
        s = LString((F(1.0), Element("+"), Element.of("A", 0.5, 2.0)))
        assert str(s) == "F(1)+A(0.5, 2)"

    def test_immutable(self) -> None:
        s = LString.from_symbols("F")
        with pytest.raises(dataclasses.FrozenInstanceError):
            s.elements = ()  # type: ignore[misc]


class TestProduction:
    def test_format_plain(self) -> None:
        p = Production(Element("F"), (Element("F"), Element("F")))
        assert str(p) == "F=FF"

    def test_format_full(self) -> None:
        p = Production(
            Element.of("A", "l"),
            (Element.of("F", parse("l")), Element.of("A", parse("l*0.5"))),
            condition=parse("l > 1"),
            probability=0.5,
        )
        assert str(p) == "A(l):l>1~0.5=F(l)A(l*0.5)"

    def test_format_context(self) -> None:
        p = Production(Element("a"), (Element("b"),), left_context=Element("b"))
        assert str(p) == "b<a=b"

    def test_probability_range(self) -> None:
        with pytest.raises(GrammarError):
            Production(Element("F"), probability=1.5)
        with pytest.raises(GrammarError):
            Production(Element("F"), probability=-0.1)

    def test_formal_names(self) -> None:
        with pytest.raises(GrammarError):
            Production(Element.of("F", "x", "x"))
        with pytest.raises(GrammarError):
            Production(Element.of("F", "xy"))
        with pytest.raises(GrammarError):
            Production(
                Element.of("F", "x"), left_context=Element.of("G", "x")
            )

    def test_matches_by_arity(self) -> None:
        p = Production(Element.of("F", "x"), (Element.of("G", parse("x")),))
        assert p.matches(F(1.0))
        assert not p.matches(F())
        assert not p.matches(F(1.0, 2.0))

    def test_condition(self) -> None:
        p = Production(Element.of("F", "x"), condition=parse("x > 2"))
        assert p.matches(F(3.0))
        assert not p.matches(F(2.0))

    def test_context_zips_positionally(self) -> None:
        p = Production(Element.of("F", "x", "y"))
        assert list(p.context(F(1.0, 2.0))) == [("x", 1.0), ("y", 2.0)]

    def test_context_includes_neighbours(self) -> None:
        p = Production(
            Element.of("B", "y"),
            left_context=Element.of("A", "x"),
            right_context=Element.of("C", "z"),
        )
        ctx = p.context(Element.of("B", 2.0), Element.of("A", 1.0), Element.of("C", 3.0))
        assert list(ctx) == [("x", 1.0), ("y", 2.0), ("z", 3.0)]

    def test_neighbours_must_be_compatible(self) -> None:
        p = Production(Element("a"), left_context=Element("b"))
        assert p.matches(Element("a"), Element("b"), None)
        assert not p.matches(Element("a"), Element("c"), None)
        assert not p.matches(Element("a"), None, None)

    def test_apply(self) -> None:
        p = Production(
            Element.of("F", "x"),
            (Element.of("F", parse("x+1")), Element("G")),
        )
        assert p.apply(F(1.0)) == [F(2.0), Element("G")]

    def test_validate(self) -> None:
        Production(Element.of("F", "x"), (Element.of("F", parse("x")),)).validate()
        with pytest.raises(UnboundVariableError):
            Production(Element.of("F", "x"), (Element.of("F", parse("y")),)).validate()
        with pytest.raises(UnboundVariableError):
            Production(Element("F"), condition=parse("t > 0")).validate()
