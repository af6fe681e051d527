"""Report formatters: human-readable text, JSON and one-line-per-violation porcelain."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hyp.engine import AnalysisResult


@dataclass(frozen=True)
class CheckReport:
    """An analysis result plus the run facts shown in report headers."""

    result: AnalysisResult
    checkers_run: int = 0
    elapsed_ms: float = 0.0


def format_rich(report: CheckReport) -> str:
    """Format a report as human-readable text (plain text, no Rich markup).

    Example output with violations::

        Checkers: 12 active
        Files: 25 analyzed

        ✗ E1003 Direct use of unsafe code [high]
          src/ffi.rs:12:5 → Direct use of unsafe block
          hint: Avoid unsafe code in production code

        1 violation found (12 checkers, 0.8s)
    """
    result = report.result
    lines: list[str] = []

    lines.append(f"Checkers: {report.checkers_run} active")
    lines.append(f"Files: {result.files_analyzed} analyzed")
    lines.append("")

    for v in result.violations:
        lines.append(f"✗ {v.code} {v.name} [{v.severity.label}]")
        lines.append(f"  {v.file_path}:{v.line}:{v.column} → {v.message}")
        if v.suggestion:
            lines.append(f"  hint: {v.suggestion}")
        lines.append("")

    for d in result.diagnostics:
        where = d.file_path or d.checker_id or "-"
        detail = f" ({d.cause})" if d.cause else ""
        lines.append(f"! {d.level}: {where}: {d.message}{detail}")
    if result.diagnostics:
        lines.append("")

    elapsed_str = f"{report.elapsed_ms / 1000:.1f}s"
    count = len(result.violations)
    if count:
        noun = "violation" if count == 1 else "violations"
        lines.append(f"{count} {noun} found ({report.checkers_run} checkers, {elapsed_str})")
    else:
        lines.append(
            f"✓ No violations found ({report.checkers_run} checkers, {elapsed_str})"
        )

    return "\n".join(lines)


def format_json(report: CheckReport) -> str:
    """Format a report as structured JSON.

    Returns a JSON string with ``violations`` and ``diagnostics`` arrays and
    a ``summary`` object.
    """
    result = report.result
    output: dict[str, object] = {
        "violations": [v.to_dict() for v in result.violations],
        "diagnostics": [d.to_dict() for d in result.diagnostics],
        "summary": {
            "checkers_run": report.checkers_run,
            "files_analyzed": result.files_analyzed,
            "violations_count": len(result.violations),
            "diagnostics_count": len(result.diagnostics),
            "elapsed_ms": report.elapsed_ms,
        },
    }
    return json.dumps(output, indent=2)


def format_porcelain(report: CheckReport) -> str:
    """Format violations as machine-readable lines.

    Format: ``code:severity:file_path:line:column:message``.  Returns an
    empty string when there are no violations; diagnostics are not included.
    """
    lines = [
        f"{v.code}:{v.severity.label}:{v.file_path}:{v.line}:{v.column}:{v.message}"
        for v in report.result.violations
    ]
    return "\n".join(lines)
