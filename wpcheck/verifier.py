"""Verification orchestrator.

Per function the pipeline is sequential:

    FunctionIR -> CFG -> basic paths -> verification conditions

and only the solver checks are handed to a bounded thread pool. Each check
owns its solver session, so checks of one function, or of different
functions, are independent of each other and of completion order.

Verdicts:
  VERIFIED      every condition is valid
  FALSIFIED     some condition has a counterexample (all of them are kept)
  INCONCLUSIVE  nothing falsified, but some condition is unknown
  ERROR         the function could not be analysed at all

A structural or unsupported-construct error stops its own function and
nothing else.

Usage:
    from wpcheck.verifier import Verifier
    report = Verifier().verify_file("examples/sum.py")
    sys.exit(report.exit_code)
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from wpcheck.cfg import CfgBuilder, ControlFlowGraph
from wpcheck.config import VerifierConfig
from wpcheck.errors import Diagnostic, FrontendError, SourceLocation, WpCheckError
from wpcheck.frontend import FunctionUnit, frontend_for
from wpcheck.frontend.python import PythonFrontend
from wpcheck.ir import FunctionIR
from wpcheck.oracle import SolverOracle, ValidityResult
from wpcheck.paths import BasicPath, extract_basic_paths
from wpcheck.wp import VerificationCondition, WPCalculator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


class Verdict(Enum):
    VERIFIED = "verified"
    FALSIFIED = "falsified"
    INCONCLUSIVE = "inconclusive"
    ERROR = "error"


@dataclass
class PathResult:
    path: BasicPath
    vc: VerificationCondition
    result: ValidityResult

    @property
    def elapsed_ms(self) -> float:
        return self.result.elapsed_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path.id,
            "kind": self.path.kind.value,
            "route": self.path.describe(),
            "vc": f"{self.vc.antecedent} => {self.vc.obligation}",
            **self.result.to_dict(),
        }


@dataclass
class FunctionResult:
    name: str
    verdict: Verdict
    paths: List[PathResult] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    location: Optional[SourceLocation] = None
    cfg: Optional[ControlFlowGraph] = None
    basic_paths: List[BasicPath] = field(default_factory=list)

    @property
    def counterexamples(self) -> List[Tuple[int, Dict[str, int]]]:
        return [(p.path.id, p.result.model) for p in self.paths if p.result.is_invalid]

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "function": self.name,
            "verdict": self.verdict.value,
            "paths": [p.to_dict() for p in self.paths],
        }
        if self.diagnostics:
            d["diagnostics"] = [diag.to_dict() for diag in self.diagnostics]
        if self.location:
            d["line"] = self.location.line
        return d


@dataclass
class VerificationReport:
    source: str
    functions: List[FunctionResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and all(f.verdict == Verdict.VERIFIED for f in self.functions)

    @property
    def exit_code(self) -> int:
        if self.cancelled:
            return EXIT_CANCELLED
        return EXIT_OK if self.ok else EXIT_FAILED

    def function(self, name: str) -> FunctionResult:
        for f in self.functions:
            if f.name == name:
                return f
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "ok": self.ok,
            "cancelled": self.cancelled,
            "functions": [f.to_dict() for f in self.functions],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def function_verdict(results: Sequence[ValidityResult]) -> Verdict:
    """Falsified beats inconclusive beats verified."""
    if any(r.is_invalid for r in results):
        return Verdict.FALSIFIED
    if any(r.is_unknown for r in results):
        return Verdict.INCONCLUSIVE
    return Verdict.VERIFIED


@dataclass
class _Plan:
    """Everything derived for one function before any solver call."""
    unit: FunctionUnit
    cfg: Optional[ControlFlowGraph] = None
    paths: List[BasicPath] = field(default_factory=list)
    vcs: List[VerificationCondition] = field(default_factory=list)
    error: Optional[WpCheckError] = None


class Verifier:
    """Runs the verification pipeline over functions, sources or files."""

    def __init__(self, config: Optional[VerifierConfig] = None,
                 oracle: Optional[SolverOracle] = None):
        self.config = config or VerifierConfig()
        self.oracle = oracle or SolverOracle(self.config.timeout_ms, self.config.random_seed)
        self._cancel = threading.Event()

    # -- entry points -----------------------------------------------------

    def verify_function(self, func: FunctionIR) -> Optional[FunctionResult]:
        """Verify one function; None if the run was cancelled first."""
        unit = FunctionUnit(name=func.name, function=func, location=func.location)
        report = self.verify_functions([unit])
        return report.functions[0] if report.functions else None

    def verify_source(self, source: str, filename: str = "<stdin>") -> VerificationReport:
        frontend = PythonFrontend(include_unannotated=self.config.include_unannotated)
        return self.verify_functions(frontend.parse_module(source, filename), source=filename)

    def verify_file(self, path: str) -> VerificationReport:
        frontend = frontend_for(path, include_unannotated=self.config.include_unannotated)
        try:
            with open(path, "r", encoding="utf-8") as f:
                source = f.read()
        except (IOError, OSError) as e:
            raise FrontendError(f"Cannot read {path}: {e}") from e
        return self.verify_functions(frontend.parse_module(source, path), source=path)

    def cancel(self) -> None:
        """Abandon the running verification; completed functions are kept."""
        logger.warning("Verification cancelled")
        self._cancel.set()
        self.oracle.interrupt()

    # -- pipeline ---------------------------------------------------------

    def plan(self, unit: FunctionUnit) -> _Plan:
        plan = _Plan(unit=unit)
        if unit.error is not None:
            plan.error = unit.error
            return plan
        try:
            plan.cfg = CfgBuilder(self.config.assert_mode).build(unit.function)
            plan.paths = extract_basic_paths(plan.cfg)
            calc = WPCalculator()
            plan.vcs = [calc.verification_condition(p) for p in plan.paths]
        except WpCheckError as e:
            logger.info("Function '%s' is not verifiable: %s", unit.name, e)
            plan.error = e
        return plan

    def verify_functions(self, units: Sequence[FunctionUnit],
                         source: str = "<stdin>") -> VerificationReport:
        self._cancel.clear()
        self.oracle.reset()

        plans = [self.plan(u) for u in units]
        jobs = [(pi, vi) for pi, plan in enumerate(plans) for vi in range(len(plan.vcs))]
        results: Dict[Tuple[int, int], ValidityResult] = {}

        cancelled = self._run_checks(plans, jobs, results)

        report = VerificationReport(source=source, cancelled=cancelled)
        for pi, plan in enumerate(plans):
            collected = [results.get((pi, vi)) for vi in range(len(plan.vcs))]
            if any(r is None for r in collected):
                continue
            report.functions.append(self._function_result(plan, collected))
        return report

    def _run_checks(self, plans: List[_Plan], jobs: List[Tuple[int, int]],
                    results: Dict[Tuple[int, int], ValidityResult]) -> bool:
        """Check every job; returns True if the run was cancelled."""
        workers = self.config.worker_count()

        def check(job):
            pi, vi = job
            result = self.oracle.check_validity(plans[pi].vcs[vi].formula)
            # A check that ends after cancellation may have been interrupted
            return result, self._cancel.is_set()

        if workers == 1:
            try:
                for job in jobs:
                    if self._cancel.is_set():
                        break
                    result, late = check(job)
                    if not late:
                        results[job] = result
            except KeyboardInterrupt:
                self.cancel()
            return self._cancel.is_set()

        executor = ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {executor.submit(check, job): job for job in jobs}
            for future in as_completed(futures):
                result, late = future.result()
                if not late:
                    results[futures[future]] = result
                if self._cancel.is_set():
                    break
        except KeyboardInterrupt:
            # Interrupt the running checks before waiting on them
            self.cancel()
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return self._cancel.is_set()

    def _function_result(self, plan: _Plan,
                         results: List[ValidityResult]) -> FunctionResult:
        unit = plan.unit
        if plan.error is not None:
            logger.info("%s: error", unit.name)
            return FunctionResult(
                name=unit.name,
                verdict=Verdict.ERROR,
                diagnostics=[plan.error.diagnostic()],
                location=unit.location,
                cfg=plan.cfg,
            )
        path_results = [PathResult(p, vc, r) for p, vc, r in zip(plan.paths, plan.vcs, results)]
        verdict = function_verdict(results)
        logger.info("%s: %s (%d paths)", unit.name, verdict.value, len(path_results))
        return FunctionResult(
            name=unit.name,
            verdict=verdict,
            paths=path_results,
            location=unit.location,
            cfg=plan.cfg,
            basic_paths=plan.paths,
        )


def verify_source(source: str, filename: str = "<stdin>",
                  config: Optional[VerifierConfig] = None) -> VerificationReport:
    """Convenience wrapper: verify every annotated function in ``source``."""
    return Verifier(config).verify_source(source, filename)
