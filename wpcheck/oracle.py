"""Solver oracle — validity checks backed by z3.

A formula F is valid iff Not(F) is unsatisfiable:

  unsat    -> VALID
  sat      -> INVALID, with the model as a counterexample
  unknown  -> UNKNOWN (timeout, interruption, incompleteness)

Each check runs in its own ``SolverSession``: a fresh ``z3.Context`` and
solver, opened and released by a ``with`` block, so assertions of one check
can never reach another and checks may run on separate threads.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Set

import z3

from wpcheck.errors import SolverError, TranslationError
from wpcheck.ir import Expression
from wpcheck.logic import collect_free_vars, collect_old_vars
from wpcheck.translator import FormulaTranslator, old_name

logger = logging.getLogger(__name__)


class ValidityStatus(Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


@dataclass
class ValidityResult:
    status: ValidityStatus
    model: Dict[str, int] = field(default_factory=dict)
    reason: str = ""
    elapsed_ms: float = 0.0

    @property
    def is_valid(self) -> bool:
        return self.status == ValidityStatus.VALID

    @property
    def is_invalid(self) -> bool:
        return self.status == ValidityStatus.INVALID

    @property
    def is_unknown(self) -> bool:
        return self.status == ValidityStatus.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"status": self.status.value}
        if self.model:
            d["counterexample"] = dict(self.model)
        if self.reason:
            d["reason"] = self.reason
        d["elapsed_ms"] = round(self.elapsed_ms, 3)
        return d

    def __str__(self) -> str:
        if self.is_invalid:
            bindings = ", ".join(f"{k} = {v}" for k, v in sorted(self.model.items()))
            return f"invalid ({bindings})"
        if self.is_unknown:
            return f"unknown ({self.reason})"
        return "valid"


class SolverSession:
    """One isolated solver context. Use as a context manager."""

    def __init__(self, timeout_ms: int = 10000, random_seed: int = 0):
        self.timeout_ms = timeout_ms
        self.random_seed = random_seed
        self.ctx: Optional[z3.Context] = None
        self.solver: Optional[z3.Solver] = None

    def __enter__(self) -> "SolverSession":
        self.ctx = z3.Context()
        self.solver = z3.Solver(ctx=self.ctx)
        self.solver.set("timeout", self.timeout_ms)
        self.solver.set("random_seed", self.random_seed)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.solver = None
        self.ctx = None

    def interrupt(self) -> None:
        ctx = self.ctx
        if ctx is not None:
            ctx.interrupt()

    def check_validity(self, formula: Expression) -> ValidityResult:
        if self.solver is None:
            raise SolverError("Solver session used outside its with-block")
        t0 = time.perf_counter()
        try:
            term = FormulaTranslator(self.ctx).translate(formula)
        except TranslationError as e:
            return ValidityResult(ValidityStatus.UNKNOWN, reason=e.message)

        try:
            self.solver.add(z3.Not(term))
            verdict = self.solver.check()
            elapsed = (time.perf_counter() - t0) * 1000

            if verdict == z3.unsat:
                return ValidityResult(ValidityStatus.VALID, elapsed_ms=elapsed)
            if verdict == z3.sat:
                model = self._counterexample(self.solver.model(), formula)
                return ValidityResult(ValidityStatus.INVALID, model=model, elapsed_ms=elapsed)
            return ValidityResult(ValidityStatus.UNKNOWN,
                                  reason=self.solver.reason_unknown() or "unknown",
                                  elapsed_ms=elapsed)
        except z3.Z3Exception as e:
            elapsed = (time.perf_counter() - t0) * 1000
            logger.debug("Solver error: %s", e)
            return ValidityResult(ValidityStatus.UNKNOWN, reason=f"solver error: {e}",
                                  elapsed_ms=elapsed)

    def _counterexample(self, model: z3.ModelRef, formula: Expression) -> Dict[str, int]:
        """Values of every variable of the formula, completed by the model."""
        names: Set[str] = set(collect_free_vars(formula))
        names |= {old_name(v) for v in collect_old_vars(formula)}
        bindings: Dict[str, int] = {}
        for name in sorted(names):
            value = model.eval(z3.Int(name, self.ctx), model_completion=True)
            if z3.is_int_value(value):
                bindings[name] = value.as_long()
        return bindings


class SolverOracle:
    """Validity oracle. Thread-safe; every call opens its own session."""

    def __init__(self, timeout_ms: int = 10000, random_seed: int = 0):
        self.timeout_ms = timeout_ms
        self.random_seed = random_seed
        self._lock = threading.Lock()
        self._active: Set[SolverSession] = set()
        self._interrupted = False

    def session(self) -> SolverSession:
        return SolverSession(self.timeout_ms, self.random_seed)

    def check_validity(self, formula: Expression) -> ValidityResult:
        with self.session() as session:
            with self._lock:
                if self._interrupted:
                    return ValidityResult(ValidityStatus.UNKNOWN, reason="interrupted")
                self._active.add(session)
            try:
                result = session.check_validity(formula)
            finally:
                with self._lock:
                    self._active.discard(session)
        logger.debug("Checked %s in %.1f ms: %s", formula, result.elapsed_ms, result.status.value)
        return result

    def interrupt(self) -> None:
        """Abandon every in-flight check; later checks return UNKNOWN at once."""
        with self._lock:
            self._interrupted = True
            sessions = list(self._active)
        for session in sessions:
            session.interrupt()

    def reset(self) -> None:
        with self._lock:
            self._interrupted = False
