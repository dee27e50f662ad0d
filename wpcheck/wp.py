"""Weakest-precondition engine over basic paths.

Core rules (Dijkstra 1975), applied to a path's actions in reverse order,
starting from the predicate of the path's final cut point:

  wp(x := e, Q)    = Q[x/e]
  wp(assume c, Q)  = c => Q
  wp(assert c, Q)  = c /\\ Q

The verification condition of a path is ``start => wp(actions, end)``.

``old(v)`` is never touched by substitution, so it always denotes the value
v had when the function was entered. Paths leaving the function entry tie
the two together by adding ``old(v) == v`` to their antecedent; on every
other path ``old(v)`` is an unconstrained constant, related to v only by
what the starting cut point says about it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from wpcheck.cfg import Action, Assert, AssignAction, Assume, NodeKind
from wpcheck.errors import SourceLocation
from wpcheck.ir import AnnotationKind, BinaryOp, Expression, Old, Variable
from wpcheck.logic import F_AND, F_IMPLIES, collect_old_vars, substitute
from wpcheck.paths import BasicPath, PathKind

logger = logging.getLogger(__name__)


@dataclass
class VerificationCondition:
    """A verification condition to be discharged by the solver oracle.

    VC: start_predicate => wp(path, end_predicate)

    If this implication is valid (the solver says UNSAT for its negation),
    every execution of the path that starts in a state satisfying the start
    predicate ends in a state satisfying the end predicate.
    """
    function: str
    path_id: int
    kind: PathKind
    start_predicate: Expression
    obligation: Expression      # wp of the path applied to the end predicate
    end_predicate: Expression
    description: str = ""
    location: Optional[SourceLocation] = None
    # Whether the path starts at the function entry
    from_entry: bool = True

    @property
    def antecedent(self) -> Expression:
        if not self.from_entry:
            return self.start_predicate
        olds = sorted(collect_old_vars(self.start_predicate) | collect_old_vars(self.obligation))
        bindings = [BinaryOp("==", Old(v), Variable(v)) for v in olds]
        return F_AND(self.start_predicate, *bindings)

    @property
    def formula(self) -> Expression:
        return F_IMPLIES(self.antecedent, self.obligation)

    @property
    def name(self) -> str:
        return f"{self.function}#{self.path_id}"

    def __str__(self) -> str:
        return f"VC[{self.name}]: {self.antecedent} => {self.obligation}"


class WPCalculator:
    """Backward predicate transformer for primitive actions."""

    def wp(self, action: Action, post: Expression) -> Expression:
        if isinstance(action, AssignAction):
            return substitute(post, action.var, action.expr)
        if isinstance(action, Assume):
            return F_IMPLIES(action.cond, post)
        if isinstance(action, Assert):
            return F_AND(action.cond, post)
        raise TypeError(f"unknown action {type(action).__name__}")

    def wp_actions(self, actions: Sequence[Action], post: Expression) -> Expression:
        """wp of a sequence: last action first."""
        q = post
        for action in reversed(actions):
            q = self.wp(action, q)
        return q

    def verification_condition(self, path: BasicPath) -> VerificationCondition:
        obligation = self.wp_actions(path.actions, path.end_predicate)
        vc = VerificationCondition(
            function=path.function,
            path_id=path.id,
            kind=path.kind,
            start_predicate=path.start_predicate,
            obligation=obligation,
            end_predicate=path.end_predicate,
            description=path.describe(),
            location=path.end.location,
            from_entry=path.start.kind == NodeKind.ENTRY
            or path.start.annotation == AnnotationKind.PRE,
        )
        logger.debug("%s", vc)
        return vc


def generate_vcs(paths: List[BasicPath]) -> List[VerificationCondition]:
    calc = WPCalculator()
    return [calc.verification_condition(p) for p in paths]
