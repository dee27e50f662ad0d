"""Predicate construction and substitution for the wp-calculus.

Predicates are ordinary IR expressions of boolean sort. The constructors
below apply the usual unit laws (``true /\\ P = P``, ``false => P = true``,
double negation) so derived predicates stay readable; they never change the
meaning of a predicate.

SUBSTITUTION  Q[x/e]
  wp(x := e, Q) = Q[x/e]. ``substitute`` replaces every free occurrence of
  each mapped variable simultaneously: the replacement expressions are not
  themselves rewritten, so ``Q[x/x+1]`` applied to ``x == y`` yields
  ``x + 1 == y`` exactly once. ``Old`` nodes are not variables and are never
  replaced.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Set

from wpcheck.ir import (
    BinaryOp, BoolLiteral, Expression, Literal, Old, UnaryOp, Variable,
    fold, walk,
)


# ---------------------------------------------------------------------------
# Predicate constructors
# ---------------------------------------------------------------------------

def F_TRUE() -> Expression:
    return BoolLiteral(True)

def F_FALSE() -> Expression:
    return BoolLiteral(False)


def is_true(f: Expression) -> bool:
    return isinstance(f, BoolLiteral) and f.value

def is_false(f: Expression) -> bool:
    return isinstance(f, BoolLiteral) and not f.value


def F_AND(*children: Expression) -> Expression:
    flat: List[Expression] = []
    for c in children:
        if is_true(c):
            continue
        if is_false(c):
            return F_FALSE()
        flat.append(c)
    if not flat:
        return F_TRUE()
    result = flat[0]
    for c in flat[1:]:
        result = BinaryOp("&&", result, c)
    return result

def F_OR(*children: Expression) -> Expression:
    flat: List[Expression] = []
    for c in children:
        if is_false(c):
            continue
        if is_true(c):
            return F_TRUE()
        flat.append(c)
    if not flat:
        return F_FALSE()
    result = flat[0]
    for c in flat[1:]:
        result = BinaryOp("||", result, c)
    return result

def F_NOT(f: Expression) -> Expression:
    if is_true(f):
        return F_FALSE()
    if is_false(f):
        return F_TRUE()
    if isinstance(f, UnaryOp) and f.op == "!":
        return f.operand
    return UnaryOp("!", f)

def F_IMPLIES(lhs: Expression, rhs: Expression) -> Expression:
    if is_true(lhs):
        return rhs
    if is_false(lhs):
        return F_TRUE()
    if is_true(rhs):
        return F_TRUE()
    return BinaryOp("=>", lhs, rhs)


def conjuncts(f: Expression) -> List[Expression]:
    """Split a predicate on its top-level ``&&`` nodes."""
    out: List[Expression] = []
    stack = [f]
    while stack:
        node = stack.pop()
        if isinstance(node, BinaryOp) and node.op == "&&":
            stack.append(node.rhs)
            stack.append(node.lhs)
        else:
            out.append(node)
    return out


# ---------------------------------------------------------------------------
# Substitution: Q[x/e]
# ---------------------------------------------------------------------------

def substitute(formula: Expression, var: str, expr: Expression) -> Expression:
    """Replace every free occurrence of ``var`` in ``formula`` with ``expr``."""
    return substitute_all(formula, {var: expr})


def substitute_all(formula: Expression, mapping: Mapping[str, Expression]) -> Expression:
    """Simultaneous substitution of several variables.

    Bounded by the size of ``formula``; untouched subtrees are shared with
    the input rather than copied.
    """
    if not mapping:
        return formula

    def step(node: Expression, args: List[Expression]) -> Expression:
        if isinstance(node, Variable):
            return mapping.get(node.name, node)
        if args:
            return node.rebuild(args)
        return node

    return fold(formula, step)


def collect_free_vars(formula: Expression) -> Set[str]:
    """Collect all program variable names in a predicate (``Old`` excluded)."""
    return {n.name for n in walk(formula) if isinstance(n, Variable)}


def collect_old_vars(formula: Expression) -> Set[str]:
    """Names referenced through ``old(...)``."""
    return {n.name for n in walk(formula) if isinstance(n, Old)}


def evaluate(formula: Expression, env: Dict[str, int], old_env: Dict[str, int] | None = None):
    """Evaluate an expression under a concrete integer environment.

    Uses Python semantics (floor division, truthiness), which is the
    semantics the solver encoding reproduces. Raises ``KeyError`` for an
    unbound variable and ``ZeroDivisionError`` like the interpreter would.
    """
    old_env = old_env if old_env is not None else env

    def step(node: Expression, args: List):
        if isinstance(node, (Literal, BoolLiteral)):
            return node.value
        if isinstance(node, Variable):
            return env[node.name]
        if isinstance(node, Old):
            return old_env[node.name]
        if isinstance(node, UnaryOp):
            return _UNARY_EVAL[node.op](args[0])
        if isinstance(node, BinaryOp):
            return _BINARY_EVAL[node.op](args[0], args[1])
        raise ValueError(f"cannot evaluate {type(node).__name__}")

    return fold(formula, step)


_UNARY_EVAL = {
    "-": lambda a: -a,
    "+": lambda a: +a,
    "~": lambda a: ~a,
    "!": lambda a: not a,
}

_BINARY_EVAL = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": lambda a, b: a // b,
    "%": lambda a, b: a % b,
    "**": lambda a, b: a ** b,
    "<<": lambda a, b: a << b,
    ">>": lambda a, b: a >> b,
    "&": lambda a, b: a & b,
    "|": lambda a, b: a | b,
    "^": lambda a, b: a ^ b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    ">=": lambda a, b: a >= b,
    ">": lambda a, b: a > b,
    "&&": lambda a, b: bool(a) and bool(b),
    "||": lambda a, b: bool(a) or bool(b),
    "=>": lambda a, b: (not a) or bool(b),
}
