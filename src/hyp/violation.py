"""Fact records produced by an analysis run: violations and engine diagnostics."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Severity(enum.IntEnum):
    """Severity of a checker and of the violations it reports."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class Category(enum.Enum):
    """Grouping a checker belongs to."""

    OPERATIONS = "operations"  # not safe for production or performance
    COMPLEXITY = "complexity"  # language or cognitive complexity
    COMPLIANCE = "compliance"  # project-specific requirements


class DiagnosticKind(enum.Enum):
    """What part of a run an :class:`EngineDiagnostic` describes."""

    PARSE = "parse"
    CONFIG = "config"
    CHECKER = "checker"
    UNKNOWN_CHECKER = "unknown_checker"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Violation:
    """A single detected issue in analyzed code."""

    code: str  # checker code, e.g. "E1003"
    name: str
    severity: Severity
    message: str
    file_path: str
    line: int  # 1-based
    column: int  # 1-based
    suggestion: str | None = None

    def with_suggestion(self, suggestion: str) -> Violation:
        """Return a copy of this violation carrying *suggestion*."""
        return replace(self, suggestion=suggestion)

    @property
    def sort_key(self) -> tuple[str, int, int, str]:
        return (self.file_path, self.line, self.column, self.code)

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "name": self.name,
            "severity": self.severity.label,
            "message": self.message,
            "file_path": self.file_path,
            "line": self.line,
            "column": self.column,
            "suggestion": self.suggestion,
        }


@dataclass(frozen=True)
class EngineDiagnostic:
    """Something the platform could not compute, and why.

    Distinct from a :class:`Violation`: a diagnostic describes a failure of
    the analysis itself (unparseable file, rejected config, crashing checker),
    not a defect in the analyzed code.
    """

    kind: DiagnosticKind
    message: str
    checker_id: str | None = None
    file_path: str | None = None
    cause: str | None = None
    level: str = "error"  # "error" | "warning"

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "level": self.level,
            "message": self.message,
            "checker_id": self.checker_id,
            "file_path": self.file_path,
            "cause": self.cause,
        }


def sort_violations(violations: Iterable[Violation]) -> tuple[Violation, ...]:
    """Order violations by ``(file_path, line, column, code)``.

    The sort is stable, so violations with equal keys keep the order in which
    they were collected.
    """
    return tuple(sorted(violations, key=lambda v: v.sort_key))
