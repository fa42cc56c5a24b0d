"""lsystem_errors.py

Error taxonomy shared by the expression engine, the grammar model, the
rewriting engine and the command-line driver.
"""

from __future__ import annotations


class LSystemError(ValueError):
    pass


class ExpressionSyntaxError(LSystemError):
    """Formula text does not follow the expression grammar."""


class UnboundVariableError(LSystemError):
    """A variable has no binding in the evaluation context."""


class CapacityExceededError(LSystemError):
    """More parameter values than a parameter list can hold."""


class GrammarError(LSystemError):
    """Structurally invalid grammar (axiom, production, probability...)."""


class ConfigError(LSystemError):
    pass


def with_line(err: LSystemError, lineno: int) -> LSystemError:
    """Return a copy of ``err`` (same class) whose message names ``lineno``."""
    return type(err)(f"line {lineno}: {err}")
