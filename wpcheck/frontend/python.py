"""Python frontend — translate annotated Python functions into wpcheck IR.

Usage:
    from wpcheck.frontend.python import PythonFrontend
    units = PythonFrontend().parse_module('''
        def inc(x: int) -> int:
            pre(x >= 0)
            post(result == old(x) + 1)
            x = x + 1
            return x
    ''')

Contracts come from the annotation markers in ``wpcheck.annotations`` or
from ``Requires:`` / ``Ensures:`` lines in the function docstring. Anything
outside the integer model raises ``UnsupportedConstructError`` for that
function only.
"""

from __future__ import annotations

import ast as python_ast
import logging
import textwrap
from typing import List, Optional

from wpcheck.annotations import MARKERS, OLD_MARKER
from wpcheck.errors import (
    FrontendError, SourceLocation, StructuralError, WpCheckError,
    unsupported_construct_error,
)
from wpcheck.frontend import FrontendAdapter, FunctionUnit
from wpcheck.ir import (
    Annotation, AnnotationKind, Assign, BinaryOp, BoolLiteral, Conditional,
    Expression, FunctionIR, Literal, Loop, Old, Return, Statement, UnaryOp,
    Variable,
)
from wpcheck.logic import F_AND

logger = logging.getLogger(__name__)


_BINOPS = {
    python_ast.Add: "+", python_ast.Sub: "-",
    python_ast.Mult: "*", python_ast.FloorDiv: "/",
    python_ast.Mod: "%", python_ast.Pow: "**",
    python_ast.LShift: "<<", python_ast.RShift: ">>",
    python_ast.BitAnd: "&", python_ast.BitOr: "|",
    python_ast.BitXor: "^",
}

_CMPOPS = {
    python_ast.Eq: "==", python_ast.NotEq: "!=",
    python_ast.Lt: "<", python_ast.LtE: "<=",
    python_ast.Gt: ">", python_ast.GtE: ">=",
}

_UNARYOPS = {
    python_ast.USub: "-", python_ast.UAdd: "+",
    python_ast.Invert: "~", python_ast.Not: "!",
}

_MARKER_KINDS = {
    "pre": AnnotationKind.PRE,
    "post": AnnotationKind.POST,
    "invariant": AnnotationKind.INVARIANT,
}

_INT_TYPES = ("int", "bool")

# Statement nodes with no counterpart in the IR, by display name
_UNSUPPORTED_STMTS = {
    python_ast.For: "for loop",
    python_ast.AsyncFor: "async for loop",
    python_ast.Break: "break",
    python_ast.Continue: "continue",
    python_ast.Try: "try statement",
    python_ast.With: "with statement",
    python_ast.AsyncWith: "async with statement",
    python_ast.Raise: "raise",
    python_ast.Delete: "del",
    python_ast.Global: "global",
    python_ast.Nonlocal: "nonlocal",
    python_ast.FunctionDef: "nested function",
    python_ast.AsyncFunctionDef: "nested function",
    python_ast.ClassDef: "nested class",
    python_ast.Import: "import",
    python_ast.ImportFrom: "import",
}


def _marker_name(node: python_ast.AST) -> Optional[str]:
    """Name of an annotation marker call, bare or attribute-qualified."""
    if not isinstance(node, python_ast.Call):
        return None
    func = node.func
    if isinstance(func, python_ast.Name):
        name = func.id
    elif isinstance(func, python_ast.Attribute):
        name = func.attr
    else:
        return None
    if name in MARKERS or name == OLD_MARKER:
        return name
    return None


def _docstring_contracts(node: python_ast.FunctionDef) -> tuple[list[str], list[str]]:
    """Extract ``Requires:`` / ``Ensures:`` lines from a docstring."""
    requires: list[str] = []
    ensures: list[str] = []
    docstring = python_ast.get_docstring(node)
    if not docstring:
        return requires, ensures
    for line in docstring.split("\n"):
        line = line.strip()
        if line.lower().startswith("requires:"):
            requires.append(line[len("requires:"):].strip())
        elif line.lower().startswith("ensures:"):
            ensures.append(line[len("ensures:"):].strip())
    return requires, ensures


def has_annotations(node: python_ast.FunctionDef) -> bool:
    """Does a function carry any annotation marker or docstring contract?"""
    requires, ensures = _docstring_contracts(node)
    if requires or ensures:
        return True
    return any(_marker_name(child) for child in python_ast.walk(node))


class PythonFrontend(FrontendAdapter):
    """Translates module-level Python functions into ``FunctionIR``."""

    def __init__(self, include_unannotated: bool = False):
        self.include_unannotated = include_unannotated

    @property
    def language_name(self) -> str:
        return "Python"

    @property
    def file_extensions(self) -> List[str]:
        return [".py"]

    def parse_module(self, source: str, filename: str = "<stdin>") -> List[FunctionUnit]:
        try:
            tree = python_ast.parse(textwrap.dedent(source), filename=filename)
        except SyntaxError as e:
            raise FrontendError(
                f"Python syntax error: {e.msg}",
                location=SourceLocation(e.lineno or 1, e.offset or 0, filename),
            ) from e

        units: List[FunctionUnit] = []
        for node in tree.body:
            if not isinstance(node, (python_ast.FunctionDef, python_ast.AsyncFunctionDef)):
                continue
            if not has_annotations(node):
                if not self.include_unannotated:
                    logger.debug("Skipping '%s': no annotations", node.name)
                    continue
                logger.warning("Function '%s' has no annotations; only its asserts are checked",
                               node.name)
            units.append(self._translate_unit(node, filename))
        return units

    def _translate_unit(self, node: python_ast.FunctionDef, filename: str) -> FunctionUnit:
        loc = SourceLocation(node.lineno, node.col_offset, filename)
        try:
            func = _FunctionTranslator(node, filename).translate()
        except WpCheckError as e:
            logger.info("Function '%s' cannot be translated: %s", node.name, e)
            return FunctionUnit(name=node.name, error=e, location=loc)
        return FunctionUnit(name=node.name, function=func, location=loc)


class _FunctionTranslator:
    """Translates one Python function. Not reusable across functions."""

    def __init__(self, node: python_ast.FunctionDef, filename: str):
        self.node = node
        self.filename = filename

    def _loc(self, node: python_ast.AST) -> SourceLocation:
        return SourceLocation(
            getattr(node, "lineno", self.node.lineno),
            getattr(node, "col_offset", 0),
            self.filename,
        )

    def translate(self) -> FunctionIR:
        node = self.node
        if isinstance(node, python_ast.AsyncFunctionDef):
            raise unsupported_construct_error("async function", self._loc(node))

        params = self._translate_params(node.args)
        self._check_type(node.returns, "return value", node)

        body: List[Statement] = []
        stmts = list(node.body)
        if python_ast.get_docstring(node) is not None:
            body.extend(self._docstring_annotations(stmts[0]))
            stmts = stmts[1:]
        body.extend(self._translate_block(stmts))

        return FunctionIR(
            name=node.name,
            params=params,
            body=body,
            location=self._loc(node),
        )

    # -- signature --------------------------------------------------------

    def _translate_params(self, args: python_ast.arguments) -> List[str]:
        if args.vararg is not None or args.kwarg is not None:
            raise unsupported_construct_error("variadic parameters", self._loc(self.node))
        params = []
        for arg in args.posonlyargs + args.args + args.kwonlyargs:
            self._check_type(arg.annotation, f"parameter '{arg.arg}'", arg)
            params.append(arg.arg)
        return params

    def _check_type(self, annotation: Optional[python_ast.AST], what: str,
                    node: python_ast.AST) -> None:
        if annotation is None:
            return
        if isinstance(annotation, python_ast.Name) and annotation.id in _INT_TYPES:
            return
        if isinstance(annotation, python_ast.Constant) and annotation.value is None:
            return
        raise unsupported_construct_error(
            f"{what} of type '{python_ast.unparse(annotation)}'", self._loc(node))

    def _docstring_annotations(self, doc_stmt: python_ast.stmt) -> List[Statement]:
        requires, ensures = _docstring_contracts(self.node)
        loc = self._loc(doc_stmt)
        out: List[Statement] = []
        if requires:
            preds = [self._parse_predicate(text, doc_stmt) for text in requires]
            out.append(Annotation(kind=AnnotationKind.PRE, predicate=F_AND(*preds), location=loc))
        for text in ensures:
            out.append(Annotation(kind=AnnotationKind.POST,
                                  predicate=self._parse_predicate(text, doc_stmt),
                                  location=loc))
        return out

    def _parse_predicate(self, text: str, node: python_ast.AST) -> Expression:
        try:
            tree = python_ast.parse(text.strip(), mode="eval")
        except SyntaxError as e:
            raise StructuralError(
                f"Annotation '{text}' is not a valid expression",
                location=self._loc(node),
            ) from e
        return self._translate_expr(tree.body)

    # -- statements -------------------------------------------------------

    def _translate_block(self, stmts: List[python_ast.stmt]) -> List[Statement]:
        out: List[Statement] = []
        for stmt in stmts:
            translated = self._translate_statement(stmt)
            if translated is not None:
                out.append(translated)
        return out

    def _translate_statement(self, node: python_ast.stmt) -> Optional[Statement]:
        loc = self._loc(node)

        if isinstance(node, python_ast.Return):
            value = self._translate_expr(node.value) if node.value is not None else None
            return Return(expr=value, location=loc)

        if isinstance(node, python_ast.Assign):
            if len(node.targets) != 1:
                raise unsupported_construct_error("chained assignment", loc)
            name = self._target_name(node.targets[0])
            return Assign(var=name, expr=self._translate_expr(node.value), location=loc)

        if isinstance(node, python_ast.AnnAssign):
            name = self._target_name(node.target)
            self._check_type(node.annotation, f"variable '{name}'", node)
            if node.value is None:
                return None
            return Assign(var=name, expr=self._translate_expr(node.value), location=loc)

        if isinstance(node, python_ast.AugAssign):
            name = self._target_name(node.target)
            op = self._translate_binop(node.op, node)
            value = BinaryOp(op, Variable(name), self._translate_expr(node.value))
            return Assign(var=name, expr=value, location=loc)

        if isinstance(node, python_ast.If):
            return Conditional(
                cond=self._translate_expr(node.test),
                then_branch=self._translate_block(node.body),
                else_branch=self._translate_block(node.orelse),
                location=loc,
            )

        if isinstance(node, python_ast.While):
            if node.orelse:
                raise unsupported_construct_error("while ... else", loc)
            return Loop(
                cond=self._translate_expr(node.test),
                body=self._translate_block(node.body),
                location=loc,
            )

        if isinstance(node, python_ast.Assert):
            return Annotation(kind=AnnotationKind.ASSERT,
                              predicate=self._translate_expr(node.test),
                              location=loc)

        if isinstance(node, python_ast.Expr):
            value = node.value
            if isinstance(value, python_ast.Constant) and isinstance(value.value, str):
                return None
            marker = _marker_name(value)
            if marker in _MARKER_KINDS:
                return Annotation(kind=_MARKER_KINDS[marker],
                                  predicate=self._marker_argument(value),
                                  location=loc)
            raise unsupported_construct_error(
                f"expression statement '{python_ast.unparse(value)}'", loc)

        if isinstance(node, python_ast.Pass):
            return None

        construct = _UNSUPPORTED_STMTS.get(type(node), type(node).__name__)
        raise unsupported_construct_error(construct, loc)

    def _target_name(self, target: python_ast.AST) -> str:
        if isinstance(target, python_ast.Name):
            return target.id
        if isinstance(target, (python_ast.Tuple, python_ast.List)):
            raise unsupported_construct_error("tuple assignment", self._loc(target))
        if isinstance(target, python_ast.Attribute):
            raise unsupported_construct_error("attribute assignment", self._loc(target))
        if isinstance(target, python_ast.Subscript):
            raise unsupported_construct_error("array assignment", self._loc(target))
        raise unsupported_construct_error(python_ast.unparse(target), self._loc(target))

    def _marker_argument(self, call: python_ast.Call) -> Expression:
        name = _marker_name(call)
        if len(call.args) != 1 or call.keywords:
            raise StructuralError(
                f"{name}() takes exactly one predicate",
                location=self._loc(call),
            )
        arg = call.args[0]
        if isinstance(arg, python_ast.Constant) and isinstance(arg.value, str):
            return self._parse_predicate(arg.value, call)
        return self._translate_expr(arg)

    # -- expressions ------------------------------------------------------

    def _translate_expr(self, node: python_ast.AST) -> Expression:
        loc = self._loc(node)

        if isinstance(node, python_ast.Constant):
            if isinstance(node.value, bool):  # bool before int
                return BoolLiteral(node.value)
            if isinstance(node.value, int):
                return Literal(node.value)
            kind = type(node.value).__name__
            raise unsupported_construct_error(f"{kind} literal {node.value!r}", loc)

        if isinstance(node, python_ast.Name):
            return Variable(node.id)

        if isinstance(node, python_ast.BinOp):
            op = self._translate_binop(node.op, node)
            return BinaryOp(op, self._translate_expr(node.left), self._translate_expr(node.right))

        if isinstance(node, python_ast.BoolOp):
            op = "&&" if isinstance(node.op, python_ast.And) else "||"
            result = self._translate_expr(node.values[0])
            for val in node.values[1:]:
                result = BinaryOp(op, result, self._translate_expr(val))
            return result

        if isinstance(node, python_ast.Compare):
            # Chain: a < b < c  =>  a < b && b < c
            result: Optional[Expression] = None
            prev = self._translate_expr(node.left)
            for op_node, comp in zip(node.ops, node.comparators):
                op = _CMPOPS.get(type(op_node))
                if op is None:
                    raise unsupported_construct_error(
                        f"comparison '{type(op_node).__name__}'", loc)
                right = self._translate_expr(comp)
                cmp = BinaryOp(op, prev, right)
                result = cmp if result is None else BinaryOp("&&", result, cmp)
                prev = right
            return result

        if isinstance(node, python_ast.UnaryOp):
            return UnaryOp(_UNARYOPS[type(node.op)], self._translate_expr(node.operand))

        if isinstance(node, python_ast.Call):
            return self._translate_call(node)

        if isinstance(node, python_ast.Attribute):
            raise unsupported_construct_error(f"attribute access '{python_ast.unparse(node)}'", loc)
        if isinstance(node, python_ast.Subscript):
            raise unsupported_construct_error(f"array access '{python_ast.unparse(node)}'", loc)
        if isinstance(node, python_ast.IfExp):
            raise unsupported_construct_error("conditional expression", loc)
        raise unsupported_construct_error(type(node).__name__, loc)

    def _translate_call(self, node: python_ast.Call) -> Expression:
        loc = self._loc(node)
        marker = _marker_name(node)
        if marker == OLD_MARKER:
            if len(node.args) != 1 or not isinstance(node.args[0], python_ast.Name):
                raise StructuralError("old() takes a single variable name", location=loc)
            return Old(node.args[0].id)
        if marker is not None:
            raise StructuralError(f"{marker}() must be used as a statement", location=loc)
        callee = python_ast.unparse(node.func)
        if callee == self.node.name:
            raise unsupported_construct_error(f"recursive call to '{callee}'", loc)
        raise unsupported_construct_error(f"call to '{callee}'", loc)

    def _translate_binop(self, op: python_ast.operator, node: python_ast.AST) -> str:
        if isinstance(op, python_ast.Div):
            raise unsupported_construct_error("true division '/'", self._loc(node))
        mapped = _BINOPS.get(type(op))
        if mapped is None:
            raise unsupported_construct_error(f"operator '{type(op).__name__}'", self._loc(node))
        return mapped
