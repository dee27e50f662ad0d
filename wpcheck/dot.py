"""Graphviz DOT export of control-flow graphs and basic paths.

For a function ``f`` the export writes:

    <root>/f/f.dot               whole-function CFG
    <root>/f/basic_path_<i>.dot  one file per basic path

The renderer works on ``GraphView`` snapshots only; it never touches the
verification core's mutable state.
"""

from __future__ import annotations

import logging
import os
from typing import List, Sequence

from wpcheck.cfg import ControlFlowGraph, GraphView
from wpcheck.paths import BasicPath

logger = logging.getLogger(__name__)


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def render_dot(view: GraphView) -> str:
    lines = [f'digraph "{_escape(view.name)}" {{']
    lines.append(f'    label="{_escape(view.name)}";')
    for node in view.nodes:
        lines.append(f'    {node.id} [label="{_escape(node.label)}", shape={node.shape}];')
    for edge in view.edges:
        if edge.label:
            lines.append(f'    {edge.source} -> {edge.target} [label="{_escape(edge.label)}"];')
        else:
            lines.append(f"    {edge.source} -> {edge.target};")
    lines.append("}")
    return "\n".join(lines) + "\n"


def export_function(cfg: ControlFlowGraph, paths: Sequence[BasicPath], root: str) -> List[str]:
    """Write the DOT files of one function; returns the paths written."""
    directory = os.path.join(root, cfg.name)
    os.makedirs(directory, exist_ok=True)

    written = []
    target = os.path.join(directory, f"{cfg.name}.dot")
    with open(target, "w") as f:
        f.write(render_dot(cfg.view()))
    written.append(target)

    for path in paths:
        target = os.path.join(directory, f"basic_path_{path.id}.dot")
        with open(target, "w") as f:
            f.write(render_dot(path.view()))
        written.append(target)

    logger.info("Wrote %d graph files to %s", len(written), directory)
    return written
