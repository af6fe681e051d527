"""Tests for hyp.engine — item dispatch, fault isolation and result ordering."""

from __future__ import annotations

import logging
import textwrap
from typing import TYPE_CHECKING

import pytest

from hyp.checker import BaseChecker
from hyp.config import GlobalConfig
from hyp.engine import AnalysisResult, run_analysis
from hyp.errors import RegistrationError
from hyp.syntax import ItemKind, SyntaxTree, parse_source
from hyp.violation import DiagnosticKind, EngineDiagnostic, Severity, Violation

if TYPE_CHECKING:
    from collections.abc import Iterator

    from hyp.registry import Registry
    from hyp.syntax import SyntaxItem


def _parse(source: str) -> SyntaxTree:
    return parse_source(textwrap.dedent(source))


UNSAFE_SOURCE = """\
fn example() {
    unsafe { let _ = 1; }
    unsafe { let _ = 2; }
}
"""

MIXED_SOURCE = """\
pub struct Config {
    pub name: String,
}

fn load(a: i32, b: i32, c: i32, d: i32, e: i32, f: i32) {
    unsafe { let _ = a; }
    panic!("not yet");
}

fn tidy() {}
"""


# ---------------------------------------------------------------------------
# Core behaviour
# ---------------------------------------------------------------------------


class TestRunAnalysis:
    def test_two_unsafe_blocks(self, registry: Registry) -> None:
        checkers = registry.build().checkers
        result = run_analysis(parse_source(UNSAFE_SOURCE), "src/lib.rs", checkers)

        assert [(v.code, v.line, v.column) for v in result.violations] == [
            ("E1003", 2, 5),
            ("E1003", 3, 5),
        ]
        assert all(v.file_path == "src/lib.rs" for v in result.violations)
        assert all(v.severity is Severity.HIGH for v in result.violations)
        assert result.diagnostics == ()
        assert result.files_analyzed == 1
        assert result.ok

    def test_disabled_checker_reports_nothing(self, registry: Registry) -> None:
        config = GlobalConfig.from_mapping({"checkers": {"E1003": {"enabled": False}}})
        checkers = registry.build(config).checkers
        result = run_analysis(parse_source(UNSAFE_SOURCE), "src/lib.rs", checkers)
        assert [v for v in result.violations if v.code == "E1003"] == []

    def test_mixed_checkers_sorted(self, registry: Registry) -> None:
        checkers = registry.build().checkers
        result = run_analysis(parse_source(MIXED_SOURCE), "src/config.rs", checkers)
        assert [(v.code, v.line) for v in result.violations] == [
            ("E1802", 2),
            ("E1103", 5),
            ("E1003", 6),
            ("E1001", 7),
        ]

    def test_configured_severity_flows_into_violations(self, registry: Registry) -> None:
        config = GlobalConfig.from_mapping({"checkers": {"E1003": {"severity": "low"}}})
        checkers = registry.build(config).checkers
        result = run_analysis(parse_source(UNSAFE_SOURCE), "a.rs", checkers)
        assert {v.severity for v in result.violations} == {Severity.LOW}

    def test_private_setting_changes_outcome(self, registry: Registry) -> None:
        tree = _parse(
            """\
            fn pair(a: i32, b: i32) {}
            """
        )
        default = run_analysis(tree, "a.rs", registry.build().checkers)
        assert default.violations == ()

        config = GlobalConfig.from_mapping({"checkers": {"E1103": {"max_params": 1}}})
        strict = run_analysis(tree, "a.rs", registry.build(config).checkers)
        assert [v.code for v in strict.violations] == ["E1103"]

    def test_deterministic(self, registry: Registry) -> None:
        checkers = registry.build().checkers
        tree = parse_source(MIXED_SOURCE)
        first = run_analysis(tree, "a.rs", checkers)
        second = run_analysis(tree, "a.rs", checkers)
        assert first == second

    def test_checker_order_does_not_change_output(self, registry: Registry) -> None:
        checkers = registry.build().checkers
        tree = parse_source(MIXED_SOURCE)
        forward = run_analysis(tree, "a.rs", checkers)
        backward = run_analysis(tree, "a.rs", tuple(reversed(checkers)))
        assert forward.violations == backward.violations

    def test_no_checkers(self) -> None:
        result = run_analysis(parse_source(MIXED_SOURCE), "a.rs", ())
        assert result.violations == ()
        assert result.files_analyzed == 1


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_only_targeted_kinds_are_delivered(
        self, checker_classes: dict[str, type[BaseChecker]]
    ) -> None:
        recorder = checker_classes["E9002"]()
        tree = _parse(
            """\
            struct A;
            enum B { X }
            fn c() {}
            impl A { fn d(&self) {} }
            mod m { struct E; }
            """
        )
        run_analysis(tree, "a.rs", [recorder])
        assert recorder.seen == [  # type: ignore[attr-defined]
            ItemKind.STRUCT,
            ItemKind.ENUM,
            ItemKind.STRUCT,
        ]

    def test_disabled_checker_never_invoked(
        self, checker_classes: dict[str, type[BaseChecker]]
    ) -> None:
        recorder = checker_classes["E9002"]()
        recorder.set_config({"enabled": False})
        run_analysis(parse_source("struct A;\n"), "a.rs", [recorder])
        assert recorder.seen == []  # type: ignore[attr-defined]

    def test_empty_target_items_rejected(
        self, checker_classes: dict[str, type[BaseChecker]]
    ) -> None:
        blind = type(
            "Blind", (checker_classes["E1003"],), {"code": "E9100", "target_items": frozenset()}
        )
        with pytest.raises(RegistrationError, match="no target items"):
            run_analysis(parse_source("fn a() {}\n"), "a.rs", [blind()])

    def test_tests_skipped_by_default(self, registry: Registry) -> None:
        tree = _parse(
            """\
            fn production() {}

            #[cfg(test)]
            mod tests {
                #[test]
                fn it_panics() {
                    panic!("expected");
                }
            }
            """
        )
        checkers = registry.build().checkers
        assert run_analysis(tree, "a.rs", checkers).violations == ()

        with_tests = run_analysis(tree, "a.rs", checkers, check_tests=True)
        assert [(v.code, v.line) for v in with_tests.violations] == [("E1001", 7)]


# ---------------------------------------------------------------------------
# Fault isolation
# ---------------------------------------------------------------------------


class LazyExploding(BaseChecker):
    """Yields its violations, failing midway through on ``boom``."""

    code = "E9003"
    name = "Lazy exploding checker"
    target_items = frozenset({ItemKind.FUNCTION})

    def check_item(  # type: ignore[override]
        self, item: SyntaxItem, file_path: str
    ) -> Iterator[Violation]:
        yield self.violation(item.node, f"entered {item.name}", file_path)
        if item.name == "boom":
            msg = "generator bug"
            raise RuntimeError(msg)


class ReturnsNone(BaseChecker):
    code = "E9004"
    name = "Checker returning None"
    target_items = frozenset({ItemKind.FUNCTION})

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        return None  # type: ignore[return-value]


class ReturnsStrings(BaseChecker):
    code = "E9005"
    name = "Checker returning strings"
    target_items = frozenset({ItemKind.FUNCTION})

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        return ["not a violation"]  # type: ignore[list-item]


class TestFaultIsolation:
    SOURCE = """\
        fn before() {}
        fn boom() {
            unsafe {}
        }
        fn after() {}
        """

    def test_failing_checker_becomes_diagnostic(
        self,
        registry: Registry,
        checker_classes: dict[str, type[BaseChecker]],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        checkers = (*registry.build().checkers, checker_classes["E9001"]())
        with caplog.at_level(logging.WARNING, logger="hyp.engine"):
            result = run_analysis(_parse(self.SOURCE), "src/boom.rs", checkers)

        (diag,) = result.diagnostics
        assert diag.kind is DiagnosticKind.CHECKER
        assert diag.checker_id == "E9001"
        assert diag.file_path == "src/boom.rs"
        assert diag.cause == "RuntimeError: checker bug"
        assert "line 2" in diag.message
        assert not result.ok
        assert "E9001 failed on src/boom.rs" in caplog.text

    def test_other_checkers_and_items_unaffected(
        self, registry: Registry, checker_classes: dict[str, type[BaseChecker]]
    ) -> None:
        checkers = (*registry.build().checkers, checker_classes["E9001"]())
        result = run_analysis(_parse(self.SOURCE), "src/boom.rs", checkers)

        assert [(v.code, v.line, v.message) for v in result.violations] == [
            ("E9001", 1, "saw before"),
            ("E1003", 3, "Direct use of unsafe block"),
            ("E9001", 5, "saw after"),
        ]

    def test_generator_failing_midway_becomes_diagnostic(self, registry: Registry) -> None:
        checkers = (*registry.build().checkers, LazyExploding())
        result = run_analysis(_parse(self.SOURCE), "src/boom.rs", checkers)

        (diag,) = result.diagnostics
        assert diag.checker_id == "E9003"
        assert diag.cause == "RuntimeError: generator bug"
        # Violations yielded before the failure are dropped with the call.
        assert [(v.code, v.message) for v in result.violations] == [
            ("E9003", "entered before"),
            ("E1003", "Direct use of unsafe block"),
            ("E9003", "entered after"),
        ]

    def test_none_result_becomes_diagnostic(self, registry: Registry) -> None:
        checkers = (*registry.build().checkers, ReturnsNone())
        result = run_analysis(_parse(self.SOURCE), "src/boom.rs", checkers)

        assert [d.checker_id for d in result.diagnostics] == ["E9004"] * 3
        assert all(d.kind is DiagnosticKind.CHECKER for d in result.diagnostics)
        assert all(d.cause.startswith("TypeError:") for d in result.diagnostics)
        assert [v.code for v in result.violations] == ["E1003"]

    def test_non_violation_items_become_diagnostic(self, registry: Registry) -> None:
        checkers = (*registry.build().checkers, ReturnsStrings())
        result = run_analysis(_parse(self.SOURCE), "src/boom.rs", checkers)

        assert len(result.diagnostics) == 3
        assert result.diagnostics[0].cause == (
            "TypeError: check_item returned str, expected Violation"
        )
        assert [v.code for v in result.violations] == ["E1003"]


# ---------------------------------------------------------------------------
# AnalysisResult
# ---------------------------------------------------------------------------


def _v(file_path: str, line: int) -> Violation:
    return Violation(
        code="E1003",
        name="unsafe",
        severity=Severity.HIGH,
        message="m",
        file_path=file_path,
        line=line,
        column=1,
    )


class TestAnalysisResult:
    def test_merge(self) -> None:
        merged = AnalysisResult.merge(
            [
                AnalysisResult(violations=(_v("b.rs", 1),), files_analyzed=1),
                AnalysisResult(violations=(_v("a.rs", 4), _v("a.rs", 2)), files_analyzed=1),
            ]
        )
        assert [(v.file_path, v.line) for v in merged.violations] == [
            ("a.rs", 2),
            ("a.rs", 4),
            ("b.rs", 1),
        ]
        assert merged.files_analyzed == 2

    def test_merge_empty(self) -> None:
        assert AnalysisResult.merge([]) == AnalysisResult()

    def test_warnings_keep_result_ok(self) -> None:
        result = AnalysisResult(
            diagnostics=(
                EngineDiagnostic(
                    kind=DiagnosticKind.UNKNOWN_CHECKER, message="unknown", level="warning"
                ),
            )
        )
        assert result.ok
