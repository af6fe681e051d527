"""Analysis engine: one traversal per tree, dispatching items to interested checkers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from hyp.errors import CheckerRuntimeError, RegistrationError
from hyp.syntax import iter_items
from hyp.violation import DiagnosticKind, EngineDiagnostic, Violation, sort_violations

if TYPE_CHECKING:
    from collections.abc import Iterable

    from hyp.checker import Checker
    from hyp.syntax import ItemKind, SyntaxItem, SyntaxTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisResult:
    """Violations and diagnostics of one or more analyzed files."""

    violations: tuple[Violation, ...] = ()
    diagnostics: tuple[EngineDiagnostic, ...] = ()
    files_analyzed: int = 0

    @property
    def ok(self) -> bool:
        """True when nothing failed, regardless of violations found."""
        return not any(d.level == "error" for d in self.diagnostics)

    @classmethod
    def merge(cls, results: Iterable[AnalysisResult]) -> AnalysisResult:
        """Combine per-file results in the given order and re-sort violations.

        Callers analyzing files concurrently collect one result per file and
        merge them here, so the output does not depend on scheduling.
        """
        violations: list[Violation] = []
        diagnostics: list[EngineDiagnostic] = []
        files_analyzed = 0
        for result in results:
            violations.extend(result.violations)
            diagnostics.extend(result.diagnostics)
            files_analyzed += result.files_analyzed
        return cls(
            violations=sort_violations(violations),
            diagnostics=tuple(diagnostics),
            files_analyzed=files_analyzed,
        )


def _dispatch_table(checkers: Iterable[Checker]) -> dict[ItemKind, list[Checker]]:
    """Index enabled checkers by the item kinds they target, keeping their order."""
    table: dict[ItemKind, list[Checker]] = {}
    for checker in checkers:
        if not checker.target_items:
            msg = f"Checker {checker.code} declares no target items"
            raise RegistrationError(msg)
        if not checker.is_enabled():
            continue
        for kind in checker.target_items:
            table.setdefault(kind, []).append(checker)
    return table


def _collect(checker: Checker, item: SyntaxItem, file_path: str) -> list[Violation]:
    """Call *checker* on *item* and materialize its result.

    Raises ``TypeError`` unless the result is an iterable of violations.
    """
    found = list(checker.check_item(item, file_path))
    for entry in found:
        if not isinstance(entry, Violation):
            msg = f"check_item returned {type(entry).__name__}, expected Violation"
            raise TypeError(msg)
    return found


def _failure_diagnostic(failure: CheckerRuntimeError, line: int) -> EngineDiagnostic:
    return EngineDiagnostic(
        kind=DiagnosticKind.CHECKER,
        message=f"Checker {failure.checker_id} failed on item at line {line}",
        checker_id=failure.checker_id,
        file_path=failure.file_path,
        cause=f"{type(failure.cause).__name__}: {failure.cause}",
    )


def run_analysis(
    tree: SyntaxTree,
    file_path: str,
    checkers: Iterable[Checker],
    *,
    check_tests: bool = False,
) -> AnalysisResult:
    """Run *checkers* over every item of *tree*.

    Parameters
    ----------
    tree:
        Parsed source file.
    file_path:
        Path reported in violations and diagnostics.
    checkers:
        Active checker set, usually ``Registry.build(...).checkers``.  The
        same set may be used concurrently for different files.
    check_tests:
        When *False* (the default), items marked ``#[test]`` or
        ``#[cfg(test)]`` and their contents are skipped.

    Returns
    -------
    AnalysisResult
        Violations sorted by ``(file_path, line, column, code)``, and one
        ``CHECKER`` diagnostic per ``check_item`` call that raised or
        returned something other than violations.

    Raises
    ------
    RegistrationError
        When a checker declares no target items.
    """
    table = _dispatch_table(checkers)
    violations: list[Violation] = []
    diagnostics: list[EngineDiagnostic] = []
    items_seen = 0

    for item in iter_items(tree, include_tests=check_tests):
        items_seen += 1
        interested = table.get(item.kind)
        if not interested:
            continue

        for checker in interested:
            try:
                found = _collect(checker, item, file_path)
            except Exception as exc:  # noqa: BLE001
                failure = CheckerRuntimeError(checker.code, file_path, exc)
                logger.warning("%s (item at line %d)", failure, item.line)
                diagnostics.append(_failure_diagnostic(failure, item.line))
                continue
            violations.extend(found)

    logger.debug(
        "Analyzed %s: %d items, %d violations, %d diagnostics",
        file_path,
        items_seen,
        len(violations),
        len(diagnostics),
    )
    return AnalysisResult(
        violations=sort_violations(violations),
        diagnostics=tuple(diagnostics),
        files_analyzed=1,
    )
