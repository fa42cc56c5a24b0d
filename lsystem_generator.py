#!/usr/bin/env python3
"""lsystem_generator.py

Command-line driver for parametric, stochastic L-systems.

Key features:
- Line-oriented grammar files (see lsystem_grammar.py).
- Generational rewriting with seedable stochastic production choice.
- Optional bound on string length (the driver stops growing past it).
- Interactive stepping, one generation per line of input.
- JSON run configurations.
- Random grammar generator for experimentation.

Run:
  python lsystem_generator.py generate example/plant.lsys -n 5 --seed 1
  python lsystem_generator.py run example/plant.json
  python lsystem_generator.py random out.lsys --seed 123
  python lsystem_generator.py --help
"""

from __future__ import annotations

import argparse
import itertools
import json
import logging
import os
import random
import sys
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, cast

from lsystem_engine import LSystem
from lsystem_errors import ConfigError, LSystemError
from lsystem_expr import format_number
from lsystem_grammar import Grammar, load_grammar, parse_grammar
from lsystem_model import LString

logger = logging.getLogger(__name__)


# -------------------------
# Errors / Validation
# -------------------------


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


def _as_optional_int(x: Any, path: str) -> int | None:
    if x is None:
        return None
    return _as_int(x, path)


# -------------------------
# Run configuration
# -------------------------


@dataclass(frozen=True)
class RunConfig:
    name: str
    grammar: Grammar
    iterations: int
    seed: int | None
    max_length: int | None
    output: str | None


def parse_config(obj: dict[str, Any], base_dir: str = ".") -> RunConfig:
    obj = _as_dict(obj, "root")

    name = _as_str(obj.get("name", "L-System"), "name")

    inline = obj.get("grammar")
    grammar_file = obj.get("grammar_file")
    _require(
        (inline is None) != (grammar_file is None),
        "exactly one of grammar or grammar_file must be given",
    )
    if inline is not None:
        if isinstance(inline, list):
            lines = [_as_str(v, f"grammar[{i}]") for i, v in enumerate(inline)]
            text = "\n".join(lines)
        else:
            text = _as_str(inline, "grammar")
        grammar = parse_grammar(text)
    else:
        path = _as_str(grammar_file, "grammar_file")
        grammar = load_grammar(os.path.join(base_dir, path))

    iterations = _as_int(obj.get("iterations", 0), "iterations")
    _require(iterations >= 0, "iterations must be >= 0")

    seed = _as_optional_int(obj.get("seed"), "seed")

    max_length = _as_optional_int(obj.get("max_length"), "max_length")
    _require(max_length is None or max_length > 0, "max_length must be > 0")

    output = obj.get("output")
    if output is not None:
        output = os.path.join(base_dir, _as_str(output, "output"))

    return RunConfig(
        name=name,
        grammar=grammar,
        iterations=iterations,
        seed=seed,
        max_length=max_length,
        output=output,
    )


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        except UnicodeDecodeError as e:
            raise ConfigError(f"{path} is not valid UTF-8: {e}") from e


def read_grammar(path: str) -> Grammar:
    if path == "-":
        return parse_grammar(sys.stdin.read())
    return load_grammar(path)


def list_grammars(directory: str) -> list[str]:
    return sorted(
        name
        for name in os.listdir(directory)
        if name.endswith(".lsys") and os.path.isfile(os.path.join(directory, name))
    )


def choose_grammar(directory: str) -> str:
    """Prompt on stderr for one of the grammar files in ``directory``."""
    names = list_grammars(directory)
    _require(len(names) > 0, f"no .lsys files in {directory}")
    for i, name in enumerate(names, 1):
        print(f"{i}) {name}", file=sys.stderr)
    print("grammar number: ", end="", file=sys.stderr, flush=True)
    answer = sys.stdin.readline().strip()
    try:
        index = int(answer)
    except ValueError as e:
        raise ConfigError(f"not a grammar number: {answer!r}") from e
    _require(1 <= index <= len(names), f"grammar number must be 1..{len(names)}")
    return os.path.join(directory, names[index - 1])


# -------------------------
# Generation driver
# -------------------------


def grow(
    lsys: LSystem, iterations: int, max_length: int | None = None
) -> tuple[LString, bool]:
    """Advance a freshly built ``lsys`` up to ``iterations`` generations.

    Returns the last string and whether growth stopped early because the
    string exceeded ``max_length``.
    """
    target = lsys.generation + iterations
    last = lsys.current
    for last in itertools.islice(lsys.generations(limit=max_length), iterations + 1):
        pass
    return last, lsys.generation < target


def unbalanced_groups(grammar: Grammar) -> dict[str, float]:
    """Probability sums of unconditional production groups not summing to 1.

    Groups are keyed by the predecessor's rendering; conditional and
    context-sensitive productions are left out since their applicability
    depends on the string.
    """
    sums: dict[str, float] = defaultdict(float)
    for p in grammar.productions:
        if p.condition is None and p.left_context is None and p.right_context is None:
            sums[f"{p.predecessor.symbol}/{p.predecessor.arity()}"] += p.probability
    return {k: v for k, v in sums.items() if abs(v - 1.0) > 1e-9}


# -------------------------
# Random grammar generator
# -------------------------


def _random_balanced_word(
    rng: random.Random, length: int, *, p_branch: float = 0.20, grower: str = "F"
) -> str:
    """Generate a random successor word with balanced brackets.

    Produces symbols from: F, +, -, [, ] and ``grower``.
    Ensures brackets are balanced and never go negative.
    """
    word: list[str] = []
    depth = 0

    for _ in range(length):
        r = rng.random()
        if r < p_branch and depth < 3:
            word.append("[")
            depth += 1
            continue
        if r < p_branch * 2 and depth > 0:
            word.append("]")
            depth -= 1
            continue

        t = rng.random()
        if t < 0.45:
            word.append("F")
        elif t < 0.6:
            word.append(grower)
        elif t < 0.8:
            word.append("+")
        else:
            word.append("-")

    word.extend("]" * depth)

    if grower not in word:
        word.append(grower)

    return "".join(word)


def _random_probabilities(rng: random.Random, n: int) -> list[float]:
    weights = [rng.uniform(0.2, 1.0) for _ in range(n)]
    total = sum(weights)
    probs = [round(w / total, 2) for w in weights[:-1]]
    probs.append(round(1.0 - sum(probs), 2))
    return probs


def generate_random_grammar(seed: int | None = None) -> str:
    rng = random.Random(seed)

    angle = rng.choice([15, 20, 22.5, 25, 30, 36, 45, 60, 90])
    lines = [
        "// Random stochastic L-system",
        f"#angle = {format_number(float(angle))}",
        f"#step = {rng.choice([5, 8, 10, 12, 15])}",
    ]

    kind = rng.choice(["F", "X", "A"])
    if kind == "A":
        # Parametric: A(l) shrinks each generation and stops below 1.
        ratio = rng.choice([0.5, 0.6, 0.7, 0.8])
        lines.append(f"A({rng.randint(4, 12)})")
        alternatives = rng.randint(1, 3)
        for p in _random_probabilities(rng, alternatives):
            word = _random_balanced_word(rng, rng.randint(4, 10), grower="A")
            succ = word.replace("F", "F(l)").replace("A", f"A(l*{ratio})")
            prob = f" ~{format_number(p)}" if alternatives > 1 else ""
            lines.append(f"A(l) : l >= 1{prob} = {succ}")
        lines.append("A(l) : l < 1 = F(l)")
    else:
        lines.append(kind)
        alternatives = rng.randint(1, 3)
        for p in _random_probabilities(rng, alternatives):
            word = _random_balanced_word(rng, rng.randint(8, 18), grower=kind)
            prob = f" ~{format_number(p)}" if alternatives > 1 else ""
            lines.append(f"{kind}{prob} = {word}")
        if kind == "X":
            lines.append("F = FF")

    text = "\n".join(lines) + "\n"

    # Internal sanity check: generated grammar must always parse cleanly.
    parse_grammar(text)
    return text


def _ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def write_text(text: str, path: str) -> None:
    _ensure_parent_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
GRAMMAR SYNTAX

A grammar file is read line by line.

  // comment
      Skipped. A comment may also end a line when preceded by whitespace
      ("F//F" is two roll symbols, not a comment).

  #name = value
      A setting handed to the renderer, e.g. "#angle = 22.5" or
      "#color = [0.2, 0.8, 0.1]".

  axiom
      The first other line: symbols with optional numeric parameters,
      e.g. "A(1, 10)B". At most 3 parameters per symbol.

  productions
      Every further line:

        [lc<]pred[>rc] [: condition] [~probability] = successor

      pred           symbol with formal parameter names, e.g. "A(l, w)"
      lc, rc         optional left/right neighbour the symbol must have
      condition      expression over the formals, e.g. "l > 1 && w < 5"
      probability    weight in [0, 1] (default 1)
      successor      symbols whose parameters are expressions, e.g.
                     "F(l)[+A(l*0.7, w)]"

EXPRESSIONS

  numbers, single-letter variables, parentheses and the operators
  || && == > < >= <= + - * / ^ (lowest to highest precedence; ^ is
  right-associative). Comparisons yield 1 or 0; any non-zero value is true.
  Both sides of || and && are always evaluated.

STOCHASTIC CHOICE

  When several productions match a symbol, one uniform draw selects among
  them by cumulative probability in file order. If the probabilities sum to
  less than 1, the remaining draws leave the symbol unchanged.

Examples

  Koch curve:

    F
    F = F+F--F+F

  Parametric branching:

    A(10)
    A(l) : l >= 1 = F(l)[+A(l*0.6)][-A(l*0.6)]

RUN CONFIGURATION (run)

  {
    "name": "plant",
    "grammar_file": "plant.lsys",      // or "grammar": "<text>" / [lines]
    "iterations": 5,
    "seed": 7,                          // optional
    "max_length": 100000,               // optional
    "output": "plant.txt"               // optional, default stdout
  }

RANDOM GRAMMAR GENERATION (random)

  python lsystem_generator.py random out.lsys --seed 123
"""


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsystem_generator.py",
        description="Parametric, stochastic L-system generator.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )
    p.add_argument(
        "--debug", action="store_true", help="Log rewriting details to stderr."
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    pg = sub.add_parser(
        "generate",
        help="Rewrite a grammar and print the resulting string.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pg.add_argument(
        "grammar",
        nargs="?",
        default=None,
        help="Path to the grammar file, or - for stdin (the default).",
    )
    pg.add_argument(
        "-d",
        "--dir",
        default=None,
        help="Pick the grammar from the .lsys files in this directory.",
    )
    pg.add_argument(
        "-n",
        "--iterations",
        type=int,
        default=0,
        help="Number of generations to rewrite (default 0).",
    )
    pg.add_argument(
        "--seed", type=int, default=None, help="Seed for repeatable randomness."
    )
    pg.add_argument(
        "--max-length",
        type=int,
        default=None,
        help="Stop early once the string grows past this many symbols.",
    )
    pg.add_argument(
        "-v", "--verbose", action="store_true", help="Print the grammar first."
    )
    pg.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Advance one generation per line of input; q quits.",
    )

    pv = sub.add_parser(
        "validate",
        help="Validate a grammar file and print a brief summary.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pv.add_argument("grammar", help="Path to the grammar file, or - for stdin.")

    pr = sub.add_parser(
        "run",
        help="Run a JSON run configuration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pr.add_argument("config", help="Path to the JSON run configuration.")

    pn = sub.add_parser(
        "random",
        help="Generate a random grammar for experimentation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pn.add_argument("output", help="Where to write the generated grammar.")
    pn.add_argument(
        "--seed", type=int, default=None, help="Seed for repeatable randomness."
    )

    return p


# -------------------------
# Commands
# -------------------------


def _warn_truncated(lsys: LSystem, max_length: int | None) -> None:
    print(
        f"warning: string exceeded {max_length} symbols; "
        f"stopped at generation {lsys.generation}",
        file=sys.stderr,
    )


def cmd_generate(
    grammar_path: str | None,
    iterations: int,
    seed: int | None,
    max_length: int | None,
    verbose: bool = False,
    interactive: bool = False,
    directory: str | None = None,
) -> None:
    _require(iterations >= 0, "iterations must be >= 0")
    _require(max_length is None or max_length > 0, "max-length must be > 0")
    if directory is not None:
        _require(grammar_path is None, "give either a grammar file or --dir")
        grammar_path = choose_grammar(directory)
    elif grammar_path is None:
        grammar_path = "-"
    grammar = read_grammar(grammar_path)
    lsys = LSystem.from_grammar(grammar, seed=seed)

    if verbose:
        print(grammar, end="")

    if interactive:
        cmd_interactive(lsys, max_length)
        return

    result, truncated = grow(lsys, iterations, max_length)
    if truncated:
        _warn_truncated(lsys, max_length)
    print(result)


def cmd_interactive(lsys: LSystem, max_length: int | None) -> None:
    print("[enter] next generation, q to quit", file=sys.stderr)
    print(f"{lsys.generation}: {next(lsys)}")
    for line in sys.stdin:
        if line.strip().lower() in ("q", "quit"):
            break
        current = next(lsys)
        print(f"{lsys.generation}: {current}")
        if max_length is not None and len(current) > max_length:
            _warn_truncated(lsys, max_length)
            break


def cmd_validate(grammar_path: str) -> None:
    grammar = read_grammar(grammar_path)

    print(f"axiom: {grammar.axiom}")
    print(f"axiom length: {len(grammar.axiom)}")
    print(f"productions: {len(grammar.productions)}")
    stochastic = sum(1 for p in grammar.productions if p.probability != 1.0)
    print(f"stochastic productions: {stochastic}")
    print(f"settings: {len(grammar.settings)}")
    for name, value in grammar.settings.items():
        print(f"  {name} = {value}")

    for key, total in unbalanced_groups(grammar).items():
        note = (
            "remaining draws keep the symbol unchanged"
            if total < 1.0
            else "later productions are partly unreachable"
        )
        print(f"warning: probabilities for {key} sum to {total:g}; {note}")

    # One trial step catches evaluation failures the static checks cannot see.
    lsys = LSystem.from_grammar(grammar, seed=0)
    print(f"generation 1 length: {len(lsys.advance(1))}")


def cmd_run(config_path: str) -> None:
    cfg_obj = load_json(config_path)
    cfg = parse_config(cfg_obj, os.path.dirname(os.path.abspath(config_path)))
    logger.info("running %s for %d generation(s)", cfg.name, cfg.iterations)

    lsys = LSystem.from_grammar(cfg.grammar, seed=cfg.seed)
    result, truncated = grow(lsys, cfg.iterations, cfg.max_length)
    if truncated:
        _warn_truncated(lsys, cfg.max_length)

    if cfg.output is None:
        print(result)
    else:
        write_text(f"{result}\n", cfg.output)


def cmd_random(output_path: str, seed: int | None) -> None:
    write_text(generate_random_grammar(seed), output_path)


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "generate":
            cmd_generate(
                args.grammar,
                args.iterations,
                args.seed,
                args.max_length,
                verbose=args.verbose,
                interactive=args.interactive,
                directory=args.dir,
            )
        elif args.cmd == "validate":
            cmd_validate(args.grammar)
        elif args.cmd == "run":
            cmd_run(args.config)
        elif args.cmd == "random":
            cmd_random(args.output, args.seed)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except LSystemError as e:
        print(f"Grammar error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
