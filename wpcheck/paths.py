"""Basic path extraction.

A basic path runs from one cut point (exclusive) to the next cut point
(inclusive). Every branch or loop edge crossed contributes an ``Assume`` of
its guard, in traversal order. Since every cycle of the graph passes
through a loop head, and loop heads are cut points, each path crosses a
loop body at most once and the number of paths depends only on the shape
of the code, never on how often a loop runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

from wpcheck.cfg import (
    Action, Assume, CfgEdge, CfgNode, ControlFlowGraph, GraphView, NodeKind,
    ViewEdge, ViewNode,
)
from wpcheck.ir import AnnotationKind, Expression

logger = logging.getLogger(__name__)


class PathKind(Enum):
    INITIATION = "initiation"        # reaches a loop head from outside
    PRESERVATION = "preservation"    # goes round a loop back to its head
    POSTCONDITION = "postcondition"  # ends at a return
    ASSERTION = "assertion"          # ends at an assert cut point


@dataclass(frozen=True)
class BasicPath:
    id: int
    function: str
    kind: PathKind
    nodes: Tuple[CfgNode, ...]
    edges: Tuple[CfgEdge, ...]
    actions: Tuple[Action, ...]

    @property
    def start(self) -> CfgNode:
        return self.nodes[0]

    @property
    def end(self) -> CfgNode:
        return self.nodes[-1]

    @property
    def start_predicate(self) -> Expression:
        return self.start.predicate

    @property
    def end_predicate(self) -> Expression:
        return self.end.predicate

    def describe(self) -> str:
        return f"{_cut_name(self.start)} -> {_cut_name(self.end)}"

    def view(self) -> GraphView:
        return GraphView(
            name=f"{self.function} basic path {self.id}: {self.kind.value}",
            nodes=tuple(ViewNode(n.id, n.kind.value, n.display(), n.shape)
                        for n in _unique(self.nodes)),
            edges=tuple(ViewEdge(e.source, e.target, e.label) for e in self.edges),
        )

    def __str__(self) -> str:
        body = "; ".join(str(a) for a in self.actions) or "skip"
        return f"path {self.id} [{self.kind.value}] {self.describe()}: {body}"


def _cut_name(node: CfgNode) -> str:
    if node.annotation is not None:
        return f"{node.annotation.value}@{node.id}"
    return f"{node.kind.value}@{node.id}"


def _unique(nodes: Tuple[CfgNode, ...]) -> List[CfgNode]:
    seen = set()
    out = []
    for n in nodes:
        if n.id not in seen:
            seen.add(n.id)
            out.append(n)
    return out


def _classify(nodes: List[CfgNode], edges: List[CfgEdge]) -> PathKind:
    end = nodes[-1]
    if end.kind == NodeKind.RETURN:
        return PathKind.POSTCONDITION
    if end.kind == NodeKind.LOOPHEAD:
        if edges[-1].back_edge:
            return PathKind.PRESERVATION
        return PathKind.INITIATION
    if end.annotation == AnnotationKind.ASSERT:
        return PathKind.ASSERTION
    raise ValueError(f"node {end.id} is not a path target")


def extract_basic_paths(cfg: ControlFlowGraph) -> List[BasicPath]:
    """Enumerate every basic path of ``cfg``.

    Depth-first from each cut point in node order, successors in edge
    insertion order, so the numbering is stable for a given graph.
    """
    paths: List[BasicPath] = []
    for start in cfg.cut_points():
        # (node, nodes so far, edges so far, actions so far)
        stack = [(start.id, [start], [], [])]
        while stack:
            node_id, nodes, edges, actions = stack.pop()
            pending = []
            for edge in cfg.successors(node_id):
                target = cfg.node(edge.target)
                step_actions = list(actions)
                if edge.guard is not None:
                    step_actions.append(Assume(edge.guard))
                step_nodes = nodes + [target]
                step_edges = edges + [edge]
                if target.is_cut_point:
                    paths.append(BasicPath(
                        id=len(paths),
                        function=cfg.name,
                        kind=_classify(step_nodes, step_edges),
                        nodes=tuple(step_nodes),
                        edges=tuple(step_edges),
                        actions=tuple(step_actions),
                    ))
                else:
                    step_actions.extend(target.actions)
                    pending.append((target.id, step_nodes, step_edges, step_actions))
            stack.extend(reversed(pending))

    logger.debug("Extracted %d basic paths from '%s'", len(paths), cfg.name)
    return paths
