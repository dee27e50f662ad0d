"""wpcheck output formatters.

Two modes:
    text  — colored, one block per function, each path's VC and verdict,
            counterexamples for falsified paths (default)
    json  — machine-readable
"""

from __future__ import annotations

import os
import sys
from typing import List

from wpcheck.oracle import ValidityStatus
from wpcheck.verifier import FunctionResult, PathResult, Verdict, VerificationReport


# ── ANSI color helpers ───────────────────────────────────────────────────

_NO_COLOR = os.environ.get("NO_COLOR") is not None or not sys.stdout.isatty()


def _c(code: str, text: str) -> str:
    if _NO_COLOR:
        return text
    return f"\033[{code}m{text}\033[0m"


def red(t: str) -> str:
    return _c("31", t)


def yellow(t: str) -> str:
    return _c("33", t)


def green(t: str) -> str:
    return _c("32", t)


def bold(t: str) -> str:
    return _c("1", t)


def dim(t: str) -> str:
    return _c("2", t)


# ── Verdict icons ───────────────────────────────────────────────────────

ICON_ERROR = red("✖")
ICON_UNKNOWN = yellow("?")
ICON_OK = green("✔")

_VERDICT_ICONS = {
    Verdict.VERIFIED: ICON_OK,
    Verdict.FALSIFIED: ICON_ERROR,
    Verdict.INCONCLUSIVE: ICON_UNKNOWN,
    Verdict.ERROR: ICON_ERROR,
}

_STATUS_ICONS = {
    ValidityStatus.VALID: ICON_OK,
    ValidityStatus.INVALID: ICON_ERROR,
    ValidityStatus.UNKNOWN: ICON_UNKNOWN,
}


# ── Text formatter (default) ────────────────────────────────────────────

def format_text(report: VerificationReport) -> str:
    lines: List[str] = [bold(report.source)]
    if not report.functions and not report.cancelled:
        lines.append(dim("  no annotated functions found"))

    for func in report.functions:
        lines.extend(_format_function(func))

    verified = sum(1 for f in report.functions if f.verdict == Verdict.VERIFIED)
    footer = f"{verified}/{len(report.functions)} functions verified"
    if report.cancelled:
        footer += yellow(" (cancelled; unfinished functions omitted)")
    lines.append("")
    if report.ok:
        lines.append(green(footer))
    elif report.cancelled:
        lines.append(footer)
    else:
        lines.append(red(footer))
    return "\n".join(lines)


def _format_function(func: FunctionResult) -> List[str]:
    icon = _VERDICT_ICONS[func.verdict]
    lines = ["", f" {icon}  {bold(func.name)}: {func.verdict.value}"]
    for diag in func.diagnostics:
        loc = f"{diag.location.line}:{diag.location.column} " if diag.location else ""
        lines.append(f"   {ICON_ERROR}  {dim(loc)}{red(diag.message)}")
    for pr in func.paths:
        lines.extend(_format_path(pr))
    return lines


def _format_path(pr: PathResult) -> List[str]:
    status = pr.result.status
    lines = [
        f"   {_STATUS_ICONS[status]}  path {pr.path.id} "
        f"{dim('[' + pr.path.kind.value + ']')} {pr.path.describe()}: {status.value}",
        f"      {dim('vc:')} {pr.vc.antecedent} => {pr.vc.obligation}",
    ]
    if pr.result.is_invalid:
        bindings = ", ".join(f"{k} = {v}" for k, v in sorted(pr.result.model.items()))
        lines.append(f"      {red('counterexample:')} {bindings}")
    elif pr.result.is_unknown:
        lines.append(f"      {yellow('reason:')} {pr.result.reason}")
    return lines


# ── JSON formatter ──────────────────────────────────────────────────────

def format_json(report: VerificationReport) -> str:
    return report.to_json()


FORMATTERS = {
    "text": format_text,
    "json": format_json,
}


def format_report(report: VerificationReport, fmt: str = "text") -> str:
    try:
        formatter = FORMATTERS[fmt]
    except KeyError:
        raise ValueError(f"Unknown output format '{fmt}'") from None
    return formatter(report)
