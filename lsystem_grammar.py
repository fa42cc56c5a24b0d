"""lsystem_grammar.py

Reads and writes the line-oriented grammar text:

  // comment (also after whitespace at the end of a line)
  #angle = 22.5                        setting: number
  #color = [0.1, 0.6, 0.2]             setting: list of numbers
  A(1, 10)                             axiom: first other line
  A(l, w) : l > 0 ~0.5 = F(l)[+A(l-1, w*0.7)]
  B < A > C = ...                      context-sensitive production

A production line is ``[lc<]pred[>rc] [: condition] [~probability] = successor``;
probability defaults to 1 and a missing condition means "always".
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from lsystem_errors import GrammarError, LSystemError, with_line
from lsystem_expr import Expression, evaluate, format_number, parse
from lsystem_model import (
    ActualElement,
    Element,
    FormalElement,
    LString,
    Params,
    Production,
    SuccessorElement,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SettingValue = float | list[float]

_SETTING_RE = re.compile(r"^#\s*([A-Za-z_][\w.]*)\s*=\s*(.+)$")
_COMMENT_RE = re.compile(r"(?:^|\s)//.*$")


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise GrammarError(msg)


@dataclass(frozen=True)
class Grammar:
    axiom: LString
    productions: tuple[Production, ...] = ()
    settings: dict[str, SettingValue] = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"#{name} = {_format_setting(v)}" for name, v in self.settings.items()]
        lines.append(str(self.axiom))
        lines.extend(str(p) for p in self.productions)
        return "\n".join(lines) + "\n"


def _format_setting(value: SettingValue) -> str:
    if isinstance(value, list):
        return "[" + ", ".join(format_number(v) for v in value) + "]"
    return format_number(value)


# -------------------------
# Element scanning
# -------------------------


def _split_top_level(text: str, sep: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(text):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append(text[start:i])
            start = i + 1
    parts.append(text[start:])
    return parts


def scan_elements(text: str, convert: Callable[[str], T]) -> list[Element[T]]:
    """Split ``text`` into ``symbol[(p1, p2, p3)]`` elements.

    Whitespace between elements is ignored; each parameter's text is handed
    to ``convert``.
    """
    elements: list[Element[T]] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        _require(ch not in "(),", f"unexpected {ch!r} in {text.strip()!r}")
        symbol = ch
        i += 1

        j = i
        while j < n and text[j].isspace():
            j += 1
        if j < n and text[j] == "(":
            depth = 0
            k = j
            while k < n:
                if text[k] == "(":
                    depth += 1
                elif text[k] == ")":
                    depth -= 1
                    if depth == 0:
                        break
                k += 1
            _require(k < n, f"unbalanced parentheses after {symbol!r}")
            inner = text[j + 1 : k]
            raw = _split_top_level(inner, ",")
            _require(
                all(p.strip() for p in raw),
                f"empty parameter in {symbol}({inner})",
            )
            params = Params.of(convert(p.strip()) for p in raw)
            i = k + 1
        else:
            params = Params.empty()
        elements.append(Element(symbol, params))
    return elements


def _formal_name(text: str) -> str:
    _require(
        len(text) == 1 and text.isascii() and text.isalpha(),
        f"formal parameter must be a single letter, got {text!r}",
    )
    return text


def _constant(text: str) -> float:
    return evaluate(parse(text), [])


def parse_axiom(text: str) -> LString:
    elements: list[ActualElement] = scan_elements(text, _constant)
    _require(len(elements) > 0, "axiom must be non-empty")
    return LString(tuple(elements))


def parse_successor(text: str) -> tuple[SuccessorElement, ...]:
    return tuple(scan_elements(text, parse))


def _parse_formal(text: str) -> FormalElement:
    elements = scan_elements(text, _formal_name)
    _require(
        len(elements) == 1,
        f"expected exactly one element, got {text.strip()!r}",
    )
    return elements[0]


# -------------------------
# Productions
# -------------------------


def _find_separator(line: str) -> int:
    # Comparison operators only occur inside a condition, between the
    # top-level ":" and "~" or "=".
    depth = 0
    in_condition = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif depth == 0:
            if ch == ":":
                in_condition = True
            elif ch == "~":
                in_condition = False
            elif in_condition and ch in "=<>" and line[i + 1 : i + 2] == "=":
                i += 2
                continue
            elif ch == "=":
                return i
        i += 1
    return -1


def parse_production(line: str) -> Production:
    sep = _find_separator(line)
    _require(sep >= 0, f"production needs '=': {line.strip()!r}")
    head, body = line[:sep], line[sep + 1 :]

    probability = 1.0
    if "~" in head:
        head, prob_text = head.rsplit("~", 1)
        try:
            probability = float(prob_text.strip())
        except ValueError:
            raise GrammarError(f"invalid probability {prob_text.strip()!r}") from None

    condition: Expression | None = None
    if ":" in head:
        head, cond_text = head.split(":", 1)
        condition = parse(cond_text)

    left: FormalElement | None = None
    right: FormalElement | None = None
    parts = _split_top_level(head, "<")
    _require(len(parts) <= 2, f"more than one left context in {head.strip()!r}")
    if len(parts) == 2:
        left = _parse_formal(parts[0])
    parts = _split_top_level(parts[-1], ">")
    _require(len(parts) <= 2, f"more than one right context in {head.strip()!r}")
    if len(parts) == 2:
        right = _parse_formal(parts[1])

    return Production(
        predecessor=_parse_formal(parts[0]),
        successor=parse_successor(body),
        condition=condition,
        probability=probability,
        left_context=left,
        right_context=right,
    )


def _parse_setting_value(text: str) -> SettingValue:
    text = text.strip()
    if text.startswith("[") and text.endswith("]"):
        inner = text[1:-1].strip()
        if not inner:
            return []
        return [_constant(v.strip()) for v in inner.split(",")]
    return _constant(text)


def _strip_comment(line: str) -> str:
    # "//" inside a word is two roll symbols, not a comment.
    return _COMMENT_RE.sub("", line)


def parse_grammar(text: str) -> Grammar:
    axiom: LString | None = None
    productions: list[Production] = []
    settings: dict[str, SettingValue] = {}

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = _strip_comment(raw).strip()
        if not line:
            continue
        try:
            m = _SETTING_RE.match(line)
            if m:
                settings[m.group(1)] = _parse_setting_value(m.group(2))
            elif axiom is None:
                axiom = parse_axiom(line)
            else:
                production = parse_production(line)
                production.validate()
                productions.append(production)
        except LSystemError as e:
            raise with_line(e, lineno) from e

    _require(axiom is not None, "grammar has no axiom line")
    assert axiom is not None

    logger.debug(
        "read grammar: axiom of %d element(s), %d production(s), %d setting(s)",
        len(axiom),
        len(productions),
        len(settings),
    )
    return Grammar(axiom=axiom, productions=tuple(productions), settings=settings)


def load_grammar(path: str) -> Grammar:
    with open(path, encoding="utf-8") as f:
        try:
            text = f.read()
        except UnicodeDecodeError as e:
            raise GrammarError(f"{path} is not valid UTF-8: {e}") from e
    return parse_grammar(text)
