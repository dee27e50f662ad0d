"""wpcheck intermediate representation.

The verification core depends only on these tagged variants, never on a
concrete surface grammar. Frontends (see ``wpcheck.frontend``) produce a
``FunctionIR`` whose body is an ordered list of statements.

Expressions are immutable and hashable so predicates can be shared between
basic paths. Tree walks go through ``fold``, which uses an explicit stack
instead of Python recursion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Tuple

from wpcheck.errors import SourceLocation


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Expression:
    """Base class for expressions."""

    def children(self) -> Tuple[Expression, ...]:
        return ()

    def rebuild(self, children: List[Expression]) -> Expression:
        return self

    def __str__(self) -> str:
        return fold(self, _render)


@dataclass(frozen=True)
class Literal(Expression):
    value: int = 0


@dataclass(frozen=True)
class BoolLiteral(Expression):
    value: bool = True


@dataclass(frozen=True)
class Variable(Expression):
    name: str = ""


@dataclass(frozen=True)
class Old(Expression):
    """Value of ``name`` on function entry. Never rewritten by assignment."""
    name: str = ""


@dataclass(frozen=True)
class UnaryOp(Expression):
    op: str = ""
    operand: Expression = field(default_factory=Expression)

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)

    def rebuild(self, children: List[Expression]) -> Expression:
        if children[0] is self.operand:
            return self
        return UnaryOp(self.op, children[0])


@dataclass(frozen=True)
class BinaryOp(Expression):
    op: str = ""
    lhs: Expression = field(default_factory=Expression)
    rhs: Expression = field(default_factory=Expression)

    def children(self) -> Tuple[Expression, ...]:
        return (self.lhs, self.rhs)

    def rebuild(self, children: List[Expression]) -> Expression:
        lhs, rhs = children
        if lhs is self.lhs and rhs is self.rhs:
            return self
        return BinaryOp(self.op, lhs, rhs)


def fold(expr: Expression, fn: Callable[[Expression, List[Any]], Any]) -> Any:
    """Bottom-up fold over an expression tree.

    ``fn(node, folded_children)`` is called once per node, children first, in
    left-to-right order. The walk uses an explicit work-stack so its depth is
    bounded by memory, not by the interpreter's recursion limit.
    """
    results: List[Any] = []
    stack: List[Tuple[Expression, bool]] = [(expr, False)]
    while stack:
        node, expanded = stack.pop()
        kids = node.children()
        if expanded or not kids:
            n = len(kids)
            args = results[len(results) - n:] if n else []
            if n:
                del results[-n:]
            results.append(fn(node, args))
        else:
            stack.append((node, True))
            for child in reversed(kids):
                stack.append((child, False))
    return results[0]


def walk(expr: Expression) -> Iterator[Expression]:
    """Pre-order iteration over every node of an expression."""
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children()))


def _render(node: Expression, args: List[str]) -> str:
    if isinstance(node, Literal):
        return str(node.value)
    if isinstance(node, BoolLiteral):
        return "true" if node.value else "false"
    if isinstance(node, Variable):
        return node.name
    if isinstance(node, Old):
        return f"old({node.name})"
    if isinstance(node, UnaryOp):
        if node.op == "!":
            return f"!({args[0]})"
        return f"({node.op}{args[0]})"
    if isinstance(node, BinaryOp):
        return f"({args[0]} {node.op} {args[1]})"
    return f"<{type(node).__name__}>"


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

class AnnotationKind(Enum):
    PRE = "pre"
    POST = "post"
    INVARIANT = "invariant"
    ASSERT = "assert"


@dataclass
class Statement:
    location: Optional[SourceLocation] = None


@dataclass
class Assign(Statement):
    var: str = ""
    expr: Expression = field(default_factory=Expression)


@dataclass
class Conditional(Statement):
    cond: Expression = field(default_factory=Expression)
    then_branch: list[Statement] = field(default_factory=list)
    else_branch: list[Statement] = field(default_factory=list)


@dataclass
class Loop(Statement):
    cond: Expression = field(default_factory=Expression)
    body: list[Statement] = field(default_factory=list)


@dataclass
class Annotation(Statement):
    kind: AnnotationKind = AnnotationKind.ASSERT
    predicate: Expression = field(default_factory=lambda: BoolLiteral(True))


@dataclass
class Return(Statement):
    expr: Optional[Expression] = None


@dataclass
class FunctionIR:
    """One analysable function as produced by a frontend."""
    name: str
    params: list[str] = field(default_factory=list)
    body: list[Statement] = field(default_factory=list)
    location: Optional[SourceLocation] = None

    @property
    def annotations(self) -> list[Annotation]:
        """Every annotation in the body, in source order, nested ones included."""
        found: list[Annotation] = []
        for stmt in iter_statements(self.body):
            if isinstance(stmt, Annotation):
                found.append(stmt)
        return found

    def __str__(self) -> str:
        return f"{self.name}({', '.join(self.params)})"


def iter_statements(body: list[Statement]) -> Iterator[Statement]:
    """Pre-order iteration over a statement list and all nested blocks."""
    stack = list(reversed(body))
    while stack:
        stmt = stack.pop()
        yield stmt
        if isinstance(stmt, Conditional):
            stack.extend(reversed(stmt.else_branch))
            stack.extend(reversed(stmt.then_branch))
        elif isinstance(stmt, Loop):
            stack.extend(reversed(stmt.body))
