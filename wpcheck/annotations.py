"""Annotation markers for verified Python functions.

The markers do nothing at run time, so annotated code still executes
normally. The Python frontend recognises them syntactically:

    from wpcheck import pre, post, invariant, old

    def sum_first_n(n: int) -> int:
        pre(n >= 0)
        i = 1
        total = 0
        invariant(i <= n + 1 and total == (i - 1) * i // 2)
        while i <= n:
            total = total + i
            i = i + 1
        post(result == n * (n + 1) // 2)
        return total

``assert`` statements are the assert annotation. A marker may also take a
string, e.g. ``pre("n >= 0")``, for predicates that mention names which do
not exist at run time (such as ``result``).
"""

from __future__ import annotations

from typing import Any


MARKERS = ("pre", "post", "invariant")
OLD_MARKER = "old"


def pre(condition: Any) -> None:
    """Precondition; must be the first statement of the function."""


def post(condition: Any) -> None:
    """Postcondition; governs every return of the function."""


def invariant(condition: Any) -> None:
    """Loop invariant; must immediately precede a ``while`` loop."""


def old(value: Any) -> Any:
    """Value of a variable on entry to the function."""
    return value
