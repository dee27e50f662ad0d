"""wpcheck frontend adapters.

A frontend turns concrete syntax into ``FunctionIR`` units. The verification
core never parses source text itself; any adapter implementing
``FrontendAdapter`` can feed it.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from wpcheck.errors import FrontendError, SourceLocation, WpCheckError
from wpcheck.ir import FunctionIR


@dataclass
class FunctionUnit:
    """One function found by a frontend, translated or not.

    Exactly one of ``function`` / ``error`` is set. A translation failure is
    scoped to its own function so siblings are still analysed.
    """
    name: str
    function: Optional[FunctionIR] = None
    error: Optional[WpCheckError] = None
    location: Optional[SourceLocation] = None

    @property
    def ok(self) -> bool:
        return self.function is not None


class FrontendAdapter(ABC):
    """Base class for language-specific frontends."""

    @property
    @abstractmethod
    def language_name(self) -> str:
        """Human-readable language name, e.g. 'Python'."""
        ...

    @property
    @abstractmethod
    def file_extensions(self) -> List[str]:
        ...

    @abstractmethod
    def parse_module(self, source: str, filename: str = "<stdin>") -> List[FunctionUnit]:
        """Translate every analysable function of a source unit.

        Raises ``FrontendError`` when the source unit as a whole cannot be
        read (e.g. a syntax error).
        """
        ...

    def parse_function(self, source: str, filename: str = "<stdin>") -> FunctionIR:
        """Translate a source unit holding a single function."""
        units = self.parse_module(source, filename)
        if len(units) != 1:
            raise FrontendError(
                f"Expected exactly one annotated function, found {len(units)}",
                location=SourceLocation(1, 0, filename),
            )
        unit = units[0]
        if unit.error is not None:
            raise unit.error
        return unit.function


def frontend_for(path: str, include_unannotated: bool = False) -> FrontendAdapter:
    """Pick a frontend from a file extension."""
    from wpcheck.frontend.python import PythonFrontend

    ext = os.path.splitext(path)[1].lower()
    frontend = PythonFrontend(include_unannotated=include_unannotated)
    if ext and ext not in frontend.file_extensions:
        raise FrontendError(f"No frontend for '{ext}' files", location=SourceLocation(1, 0, path))
    return frontend


__all__ = ["FunctionUnit", "FrontendAdapter", "frontend_for"]
