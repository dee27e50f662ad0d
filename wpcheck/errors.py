"""Structured error objects for wpcheck.

Every failure is machine-readable. Exceptions raised by the pipeline carry a
source location and convert to a ``Diagnostic`` that the report surface can
serialise as JSON.

Scope of each error (how the orchestrator treats it):
  - StructuralError, UnsupportedConstructError: fatal to one function
  - TranslationError, SolverError: fatal to one verification condition
  - FrontendError, ConfigError: fatal to the whole run
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    STRUCTURAL_ERROR = "structural_error"
    MISSING_INVARIANT = "missing_invariant"
    MISPLACED_ANNOTATION = "misplaced_annotation"
    UNSUPPORTED_CONSTRUCT = "unsupported_construct"
    TRANSLATION_ERROR = "translation_error"
    SOLVER_ERROR = "solver_error"
    FRONTEND_ERROR = "frontend_error"
    CONFIG_ERROR = "config_error"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class SourceLocation:
    line: int
    column: int
    file: str = "<stdin>"

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


@dataclass
class Diagnostic:
    kind: ErrorKind
    message: str
    location: Optional[SourceLocation] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.location:
            d["location"] = {
                "file": self.location.file,
                "line": self.location.line,
                "column": self.location.column,
            }
        if self.details:
            d["details"] = self.details
        return d

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def __str__(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"[{self.kind.value}]{loc}: {self.message}"


class WpCheckError(Exception):
    """Base class for every error raised by the verification pipeline."""

    kind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, location: Optional[SourceLocation] = None,
                 details: Optional[dict[str, Any]] = None):
        self.message = message
        self.location = location
        self.details = details or {}
        super().__init__(self._format())

    def _format(self) -> str:
        loc = f" at {self.location}" if self.location else ""
        return f"{self.message}{loc}"

    def diagnostic(self) -> Diagnostic:
        return Diagnostic(
            kind=self.kind,
            message=self.message,
            location=self.location,
            details=dict(self.details),
        )


class StructuralError(WpCheckError):
    """Annotations are missing or sit where they cannot be interpreted."""

    kind = ErrorKind.STRUCTURAL_ERROR


class MissingInvariantError(StructuralError):
    kind = ErrorKind.MISSING_INVARIANT


class MisplacedAnnotationError(StructuralError):
    kind = ErrorKind.MISPLACED_ANNOTATION


class UnsupportedConstructError(WpCheckError):
    """The function uses a language feature outside the integer model."""

    kind = ErrorKind.UNSUPPORTED_CONSTRUCT


class TranslationError(WpCheckError):
    """An expression has no encoding in the solver's integer/boolean theory."""

    kind = ErrorKind.TRANSLATION_ERROR


class SolverError(WpCheckError):
    kind = ErrorKind.SOLVER_ERROR


class FrontendError(WpCheckError):
    kind = ErrorKind.FRONTEND_ERROR


class ConfigError(WpCheckError):
    kind = ErrorKind.CONFIG_ERROR


def missing_invariant_error(
    loop_text: str,
    location: Optional[SourceLocation] = None,
) -> MissingInvariantError:
    return MissingInvariantError(
        f"Loop '{loop_text}' is not immediately preceded by an invariant annotation",
        location=location,
        details={"loop": loop_text},
    )


def misplaced_annotation_error(
    annotation: str,
    reason: str,
    location: Optional[SourceLocation] = None,
) -> MisplacedAnnotationError:
    return MisplacedAnnotationError(
        f"Misplaced {annotation} annotation: {reason}",
        location=location,
        details={"annotation": annotation, "reason": reason},
    )


def unsupported_construct_error(
    construct: str,
    location: Optional[SourceLocation] = None,
) -> UnsupportedConstructError:
    return UnsupportedConstructError(
        f"Construct '{construct}' is not verifiable",
        location=location,
        details={"construct": construct},
    )
