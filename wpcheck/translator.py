"""Lower wpcheck predicates to z3 formulas.

Every variable is a mathematical integer. Booleans and integers mix the way
they do in Python: an integer used as a condition means ``e != 0`` and a
boolean used in arithmetic counts as 1 or 0.

Division and modulo follow Python's ``//`` and ``%``: the quotient rounds
toward negative infinity and the remainder takes the sign of the divisor.
z3's own ``div``/``mod`` are Euclidean (remainder never negative), which
agrees with Python whenever the divisor is positive. For a negative divisor
and a non-zero remainder the results are shifted by one step. Division by
zero stays z3's unspecified total function.
"""

from __future__ import annotations

from typing import List, Optional

import z3

from wpcheck.errors import TranslationError
from wpcheck.ir import (
    BinaryOp, BoolLiteral, Expression, Literal, Old, UnaryOp, Variable, fold,
)


# Largest literal exponent or shift count that gets an encoding
MAX_EXPONENT = 64


def old_name(var: str) -> str:
    """Solver constant standing for a variable's value on function entry."""
    return f"old({var})"


class FormulaTranslator:
    """Translates IR predicates into z3 terms of one ``z3.Context``."""

    def __init__(self, ctx: Optional[z3.Context] = None):
        self.ctx = ctx if ctx is not None else z3.main_ctx()

    def translate(self, formula: Expression) -> z3.BoolRef:
        """Translate a predicate; the result is always boolean."""
        return self.to_bool(fold(formula, self._step))

    def translate_term(self, expr: Expression) -> z3.ExprRef:
        return fold(expr, self._step)

    # -- sort coercions ---------------------------------------------------

    def to_bool(self, term: z3.ExprRef) -> z3.BoolRef:
        if z3.is_bool(term):
            return term
        return term != z3.IntVal(0, self.ctx)

    def to_int(self, term: z3.ExprRef) -> z3.ArithRef:
        if z3.is_bool(term):
            return z3.If(term, z3.IntVal(1, self.ctx), z3.IntVal(0, self.ctx))
        return term

    # -- fold step --------------------------------------------------------

    def _step(self, node: Expression, args: List[z3.ExprRef]) -> z3.ExprRef:
        if isinstance(node, BoolLiteral):
            return z3.BoolVal(node.value, self.ctx)
        if isinstance(node, Literal):
            return z3.IntVal(node.value, self.ctx)
        if isinstance(node, Variable):
            return z3.Int(node.name, self.ctx)
        if isinstance(node, Old):
            return z3.Int(old_name(node.name), self.ctx)
        if isinstance(node, UnaryOp):
            return self._unary(node, args[0])
        if isinstance(node, BinaryOp):
            return self._binary(node, args[0], args[1])
        raise TranslationError(f"Cannot translate {type(node).__name__} to a solver formula")

    def _unary(self, node: UnaryOp, operand: z3.ExprRef) -> z3.ExprRef:
        if node.op == "!":
            return z3.Not(self.to_bool(operand))
        value = self.to_int(operand)
        if node.op == "-":
            return -value
        if node.op == "+":
            return value
        if node.op == "~":
            return -value - 1
        raise TranslationError(f"Unknown unary operator '{node.op}' in {node}")

    def _binary(self, node: BinaryOp, lhs: z3.ExprRef, rhs: z3.ExprRef) -> z3.ExprRef:
        op = node.op
        if op in _CONNECTIVES:
            return _CONNECTIVES[op](self.to_bool(lhs), self.to_bool(rhs))
        if op in ("==", "!="):
            if not (z3.is_bool(lhs) and z3.is_bool(rhs)):
                lhs, rhs = self.to_int(lhs), self.to_int(rhs)
            return lhs == rhs if op == "==" else lhs != rhs

        a, b = self.to_int(lhs), self.to_int(rhs)
        if op in _ARITH:
            return _ARITH[op](a, b)
        if op == "/":
            return self._floor_div(a, b)
        if op == "%":
            return self._floor_mod(a, b)
        if op in ("**", "<<", ">>"):
            return self._power_op(node, a, b)
        raise TranslationError(
            f"Operator '{op}' has no integer encoding (in {node})",
            details={"operator": op, "expression": str(node)},
        )

    def _floor_div(self, a: z3.ArithRef, b: z3.ArithRef) -> z3.ArithRef:
        zero = z3.IntVal(0, self.ctx)
        shifted = z3.And(b < zero, a % b != zero)
        return z3.If(shifted, a / b - 1, a / b)

    def _floor_mod(self, a: z3.ArithRef, b: z3.ArithRef) -> z3.ArithRef:
        zero = z3.IntVal(0, self.ctx)
        shifted = z3.And(b < zero, a % b != zero)
        return z3.If(shifted, a % b + b, a % b)

    def _power_op(self, node: BinaryOp, a: z3.ArithRef, b: z3.ArithRef) -> z3.ArithRef:
        # Only a small literal, non-negative exponent / shift has an encoding
        k = node.rhs.value if isinstance(node.rhs, Literal) else None
        if k is None or k < 0:
            raise TranslationError(
                f"Operator '{node.op}' needs a non-negative literal right operand (in {node})",
                details={"operator": node.op, "expression": str(node)},
            )
        if k > MAX_EXPONENT:
            raise TranslationError(
                f"Operator '{node.op}' right operand {k} exceeds {MAX_EXPONENT} (in {node})",
                details={"operator": node.op, "expression": str(node)},
            )
        if node.op == "<<":
            return a * z3.IntVal(2 ** k, self.ctx)
        if node.op == ">>":
            # Positive divisor: Euclidean and floor division agree
            return a / z3.IntVal(2 ** k, self.ctx)
        result = z3.IntVal(1, self.ctx)
        for _ in range(k):
            result = result * a
        return result


_CONNECTIVES = {
    "&&": lambda l, r: z3.And(l, r),
    "||": lambda l, r: z3.Or(l, r),
    "=>": lambda l, r: z3.Implies(l, r),
}

_ARITH = {
    "+": lambda l, r: l + r,
    "-": lambda l, r: l - r,
    "*": lambda l, r: l * r,
    "<": lambda l, r: l < r,
    "<=": lambda l, r: l <= r,
    ">": lambda l, r: l > r,
    ">=": lambda l, r: l >= r,
}
