"""Control-flow graph with annotation-aware cut points.

The graph is an arena: nodes live in a list addressed by integer ids and the
edges are an explicit list, so back edges never form reference cycles and
traversal is a plain index walk.

NODES
  ENTRY     function entry; a cut point with predicate ``true`` when the
            function has no precondition
  BLOCK     ordered primitive actions; an annotation is a zero-action
            BLOCK carrying a predicate
  BRANCH    fans out into ``cond`` / ``!cond`` edges
  LOOPHEAD  cut point whose predicate is the loop invariant
  RETURN    cut point whose predicate is the postcondition

Every node with a predicate is a cut point. Every cycle passes through a
LOOPHEAD, which is what keeps basic paths finite.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from wpcheck.errors import (
    SourceLocation, misplaced_annotation_error, missing_invariant_error,
)
from wpcheck.ir import (
    Annotation, AnnotationKind, Assign, Conditional, Expression, FunctionIR,
    Loop, Return, Statement,
)
from wpcheck.logic import F_AND, F_NOT, F_TRUE

logger = logging.getLogger(__name__)

RESULT_VAR = "result"


# ---------------------------------------------------------------------------
# Primitive actions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AssignAction:
    var: str
    expr: Expression

    def __str__(self) -> str:
        return f"{self.var} := {self.expr}"


@dataclass(frozen=True)
class Assume:
    cond: Expression

    def __str__(self) -> str:
        return f"assume {self.cond}"


@dataclass(frozen=True)
class Assert:
    cond: Expression

    def __str__(self) -> str:
        return f"assert {self.cond}"


Action = Union[AssignAction, Assume, Assert]


# ---------------------------------------------------------------------------
# Graph arena
# ---------------------------------------------------------------------------

class NodeKind(Enum):
    ENTRY = "entry"
    BLOCK = "block"
    BRANCH = "branch"
    LOOPHEAD = "loophead"
    RETURN = "return"


_SHAPES = {
    NodeKind.ENTRY: "Mdiamond",
    NodeKind.BLOCK: "box",
    NodeKind.BRANCH: "diamond",
    NodeKind.LOOPHEAD: "ellipse",
    NodeKind.RETURN: "ellipse",
}


@dataclass
class CfgNode:
    id: int
    kind: NodeKind
    actions: List[Action] = field(default_factory=list)
    predicate: Optional[Expression] = None
    annotation: Optional[AnnotationKind] = None
    label: str = ""
    location: Optional[SourceLocation] = None

    @property
    def is_cut_point(self) -> bool:
        return self.predicate is not None

    def display(self) -> str:
        """Multi-line label used by diagnostics."""
        if self.kind == NodeKind.BLOCK and self.annotation is None:
            if not self.actions:
                return "merge"
            return "\n".join(str(a) for a in self.actions)
        return self.label

    @property
    def shape(self) -> str:
        if self.annotation is not None:
            return "ellipse"
        if self.kind == NodeKind.BLOCK and not self.actions:
            return "circle"
        return _SHAPES[self.kind]


@dataclass(frozen=True)
class CfgEdge:
    source: int
    target: int
    guard: Optional[Expression] = None
    back_edge: bool = False

    @property
    def label(self) -> str:
        if self.back_edge:
            return "back to loop"
        return str(self.guard) if self.guard is not None else ""


@dataclass(frozen=True)
class ViewNode:
    id: int
    kind: str
    label: str
    shape: str


@dataclass(frozen=True)
class ViewEdge:
    source: int
    target: int
    label: str = ""


@dataclass(frozen=True)
class GraphView:
    """Read-only snapshot of a graph for an external renderer."""
    name: str
    nodes: Tuple[ViewNode, ...]
    edges: Tuple[ViewEdge, ...]


class ControlFlowGraph:
    """Node arena plus edge list for one function."""

    def __init__(self, name: str, params: Optional[List[str]] = None):
        self.name = name
        self.params = list(params or [])
        self.nodes: List[CfgNode] = []
        self.edges: List[CfgEdge] = []
        self.entry: int = -1
        self._succ: Dict[int, List[CfgEdge]] = {}

    def add_node(self, kind: NodeKind, **kwargs) -> CfgNode:
        node = CfgNode(id=len(self.nodes), kind=kind, **kwargs)
        self.nodes.append(node)
        self._succ[node.id] = []
        return node

    def add_edge(self, source: int, target: int, guard: Optional[Expression] = None,
                 back_edge: bool = False) -> CfgEdge:
        edge = CfgEdge(source, target, guard, back_edge)
        self.edges.append(edge)
        self._succ[source].append(edge)
        return edge

    def node(self, node_id: int) -> CfgNode:
        return self.nodes[node_id]

    def successors(self, node_id: int) -> List[CfgEdge]:
        return list(self._succ[node_id])

    def cut_points(self) -> List[CfgNode]:
        return [n for n in self.nodes if n.is_cut_point]

    def nodes_of_kind(self, kind: NodeKind) -> List[CfgNode]:
        return [n for n in self.nodes if n.kind == kind]

    def view(self) -> GraphView:
        return GraphView(
            name=self.name,
            nodes=tuple(ViewNode(n.id, n.kind.value, n.display(), n.shape) for n in self.nodes),
            edges=tuple(ViewEdge(e.source, e.target, e.label) for e in self.edges),
        )

    def __len__(self) -> int:
        return len(self.nodes)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

# Dangling exits of the graph built so far: (node id, guard of the edge to add)
Frontier = List[Tuple[int, Optional[Expression]]]


class CfgBuilder:
    """Builds a ``ControlFlowGraph`` from a ``FunctionIR``.

    ``assert_mode`` decides how ``Assert`` annotations enter the graph:
    ``"inline"`` (the default) appends an ``Assert`` action to the current
    block, so facts established before the assert stay available after it.
    ``"cut"`` makes each one a cut-point node; the path leaving it starts
    from the asserted condition alone, so code after the assert can only
    rely on what the assert states.
    """

    def __init__(self, assert_mode: str = "inline"):
        if assert_mode not in ("cut", "inline"):
            raise ValueError(f"unknown assert mode '{assert_mode}'")
        self.assert_mode = assert_mode

    def build(self, func: FunctionIR) -> ControlFlowGraph:
        self._cfg = ControlFlowGraph(func.name, func.params)
        self._open_block: Optional[int] = None

        pre, posts, body = self._split_contract(func.body)
        self._post = F_AND(*(p.predicate for p in posts))
        self._post_label = "; ".join(str(p.predicate) for p in posts) or "true"

        entry = self._cfg.add_node(
            NodeKind.ENTRY,
            predicate=None if pre is not None else F_TRUE(),
            label=f"{func.name}({', '.join(func.params)})",
            location=func.location,
        )
        self._cfg.entry = entry.id
        frontier: Frontier = [(entry.id, None)]

        if pre is not None:
            node = self._cfg.add_node(
                NodeKind.BLOCK,
                predicate=pre.predicate,
                annotation=AnnotationKind.PRE,
                label=f"pre: {pre.predicate}",
                location=pre.location,
            )
            frontier = self._connect(frontier, node.id)

        frontier = self._build_sequence(body, frontier)
        if frontier:
            # Implicit return at the end of the body
            self._add_return(frontier, func.location)

        logger.debug("CFG for '%s': %d nodes, %d edges",
                     func.name, len(self._cfg.nodes), len(self._cfg.edges))
        return self._cfg

    def _split_contract(self, body: List[Statement]):
        """Take the leading ``Pre`` and the top-level ``Post``s out of the body.

        ``Post``s may precede the ``Pre``: docstring ``Ensures:`` lines come
        out ahead of the body statements.
        """
        pre: Optional[Annotation] = None
        posts: List[Annotation] = []
        rest: List[Statement] = []
        returned = False
        for stmt in body:
            if isinstance(stmt, Annotation) and stmt.kind == AnnotationKind.PRE:
                if rest:
                    raise misplaced_annotation_error(
                        "pre", "it must come before every other statement of the function",
                        stmt.location)
                if pre is not None:
                    raise misplaced_annotation_error(
                        "pre", "a function takes a single precondition", stmt.location)
                pre = stmt
                continue
            if isinstance(stmt, Annotation) and stmt.kind == AnnotationKind.POST:
                if returned:
                    raise misplaced_annotation_error(
                        "post", "it follows a return and does not govern it", stmt.location)
                posts.append(stmt)
                continue
            if isinstance(stmt, Return):
                returned = True
            rest.append(stmt)
        return pre, posts, rest

    # -- construction helpers --------------------------------------------

    def _connect(self, frontier: Frontier, target: int, back_edge: bool = False) -> Frontier:
        for source, guard in frontier:
            self._cfg.add_edge(source, target, guard, back_edge)
        self._open_block = None
        return [(target, None)]

    def _emit(self, frontier: Frontier, action: Action, location) -> Frontier:
        """Append an action to the open block, opening a new one if needed."""
        if len(frontier) == 1 and frontier[0] == (self._open_block, None):
            self._cfg.node(self._open_block).actions.append(action)
            return frontier
        block = self._cfg.add_node(NodeKind.BLOCK, actions=[action], location=location)
        frontier = self._connect(frontier, block.id)
        self._open_block = block.id
        return frontier

    def _add_return(self, frontier: Frontier, location) -> None:
        node = self._cfg.add_node(
            NodeKind.RETURN,
            predicate=self._post,
            label=f"return\npost: {self._post_label}",
            location=location,
        )
        self._connect(frontier, node.id)

    # -- statements -------------------------------------------------------

    def _build_sequence(self, stmts: List[Statement], frontier: Frontier) -> Frontier:
        for index, stmt in enumerate(stmts):
            if not frontier:
                logger.warning("Unreachable statement after return at %s; skipped",
                               stmt.location or "unknown location")
                break
            previous = stmts[index - 1] if index > 0 else None

            if isinstance(stmt, Assign):
                frontier = self._emit(frontier, AssignAction(stmt.var, stmt.expr), stmt.location)

            elif isinstance(stmt, Annotation):
                following = stmts[index + 1] if index + 1 < len(stmts) else None
                frontier = self._build_annotation(stmt, following, frontier)

            elif isinstance(stmt, Conditional):
                frontier = self._build_conditional(stmt, frontier)

            elif isinstance(stmt, Loop):
                frontier = self._build_loop(stmt, previous, frontier)

            elif isinstance(stmt, Return):
                if stmt.expr is not None:
                    frontier = self._emit(frontier, AssignAction(RESULT_VAR, stmt.expr),
                                          stmt.location)
                self._add_return(frontier, stmt.location)
                frontier = []

            else:
                raise TypeError(f"unknown statement {type(stmt).__name__}")
        return frontier

    def _build_annotation(self, stmt: Annotation, following: Optional[Statement],
                          frontier: Frontier) -> Frontier:
        if stmt.kind == AnnotationKind.PRE:
            raise misplaced_annotation_error(
                "pre", "it must be the first statement of the function", stmt.location)
        if stmt.kind == AnnotationKind.POST:
            raise misplaced_annotation_error(
                "post", "it must appear at the top level of the function body", stmt.location)
        if stmt.kind == AnnotationKind.INVARIANT:
            if not isinstance(following, Loop):
                raise misplaced_annotation_error(
                    "invariant", "it must immediately precede a loop", stmt.location)
            # Becomes the loop head's predicate
            return frontier

        if self.assert_mode == "inline":
            return self._emit(frontier, Assert(stmt.predicate), stmt.location)
        node = self._cfg.add_node(
            NodeKind.BLOCK,
            predicate=stmt.predicate,
            annotation=AnnotationKind.ASSERT,
            label=f"assert: {stmt.predicate}",
            location=stmt.location,
        )
        return self._connect(frontier, node.id)

    def _build_conditional(self, stmt: Conditional, frontier: Frontier) -> Frontier:
        branch = self._cfg.add_node(NodeKind.BRANCH, label=f"if {stmt.cond}",
                                    location=stmt.location)
        self._connect(frontier, branch.id)
        exits = self._build_sequence(stmt.then_branch, [(branch.id, stmt.cond)])
        self._open_block = None
        exits += self._build_sequence(stmt.else_branch, [(branch.id, F_NOT(stmt.cond))])
        if not exits:
            return []
        join = self._cfg.add_node(NodeKind.BLOCK, location=stmt.location)
        frontier = self._connect(exits, join.id)
        self._open_block = join.id
        return frontier

    def _build_loop(self, stmt: Loop, previous: Optional[Statement],
                    frontier: Frontier) -> Frontier:
        if not (isinstance(previous, Annotation) and previous.kind == AnnotationKind.INVARIANT):
            raise missing_invariant_error(f"while {stmt.cond}", stmt.location)
        invariant = previous.predicate

        head = self._cfg.add_node(
            NodeKind.LOOPHEAD,
            predicate=invariant,
            label=f"while {stmt.cond}\ninv: {invariant}",
            location=stmt.location,
        )
        self._connect(frontier, head.id)
        body_exits = self._build_sequence(stmt.body, [(head.id, stmt.cond)])
        if body_exits:
            self._connect(body_exits, head.id, back_edge=True)
        self._open_block = None
        return [(head.id, F_NOT(stmt.cond))]


def build_cfg(func: FunctionIR, assert_mode: str = "inline") -> ControlFlowGraph:
    return CfgBuilder(assert_mode).build(func)
