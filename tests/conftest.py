"""Shared test fixtures for hyp: sample checkers and families built on the real Rust grammar."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest

from hyp.checker import BaseChecker, CheckerConfig
from hyp.registry import CheckerFamily, Registry
from hyp.syntax import ItemKind, node_text, walk
from hyp.violation import Category, Severity

if TYPE_CHECKING:
    from hyp.syntax import SyntaxItem
    from hyp.violation import Violation


# ---------------------------------------------------------------------------
# Sample checkers
# ---------------------------------------------------------------------------


class DirectPanic(BaseChecker):
    code = "E1001"
    name = "Direct panic() call"
    suggestions = "Return Result<T, E> instead of panicking"
    target_items = frozenset({ItemKind.FUNCTION})

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        found: list[Violation] = []
        for node in walk(item.node, {"macro_invocation"}):
            macro = node.child_by_field_name("macro")
            if macro is not None and node_text(macro) == "panic":
                found.append(self.violation(node, "Direct call to panic!()", file_path))
        return found


class UnsafeCode(BaseChecker):
    code = "E1003"
    name = "Direct use of unsafe code"
    suggestions = "Avoid unsafe code in production code"
    target_items = frozenset({ItemKind.FUNCTION})

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        return [
            self.violation(node, "Direct use of unsafe block", file_path)
            for node in walk(item.node, {"unsafe_block"})
        ]


@dataclass(frozen=True)
class ProhibitTransmuteConfig(CheckerConfig):
    enabled: bool = False


class ProhibitTransmute(BaseChecker):
    code = "E1017"
    name = "Prohibit transmute"
    target_items = frozenset({ItemKind.FUNCTION})
    default_categories = frozenset({Category.COMPLIANCE})
    config_class = ProhibitTransmuteConfig

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        return [
            self.violation(node, "Use of transmute", file_path)
            for node in walk(item.node, {"identifier"})
            if node_text(node) == "transmute"
        ]


@dataclass(frozen=True)
class TooManyParamsConfig(CheckerConfig):
    max_params: int = 5


class TooManyParams(BaseChecker):
    code = "E1103"
    name = "Too many parameters"
    suggestions = "Group related parameters into a struct"
    default_severity = Severity.MEDIUM
    default_categories = frozenset({Category.COMPLEXITY})
    target_items = frozenset({ItemKind.FUNCTION})
    config_class = TooManyParamsConfig

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        params = item.node.child_by_field_name("parameters")
        if params is None:
            return []
        count = sum(1 for p in params.named_children if p.type in ("parameter", "self_parameter"))
        limit = self.config.max_params  # type: ignore[attr-defined]
        if count <= limit:
            return []
        return [
            self.violation(
                item.node,
                f"Function '{item.name}' has {count} parameters (max {limit})",
                file_path,
            )
        ]


class PublicFields(BaseChecker):
    code = "E1802"
    name = "Public struct fields"
    default_severity = Severity.LOW
    default_categories = frozenset({Category.COMPLIANCE})
    target_items = frozenset({ItemKind.STRUCT})

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        found: list[Violation] = []
        for field in walk(item.node, {"field_declaration"}):
            if any(child.type == "visibility_modifier" for child in field.children):
                found.append(self.violation(field, "Public field", file_path))
        return found


class Exploding(BaseChecker):
    """Fails on functions named ``boom``, reports every other function."""

    code = "E9001"
    name = "Exploding checker"
    target_items = frozenset({ItemKind.FUNCTION})

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        if item.name == "boom":
            msg = "checker bug"
            raise RuntimeError(msg)
        return [self.violation(item.node, f"saw {item.name}", file_path)]


class Recording(BaseChecker):
    """Records the kind of every item it is handed."""

    code = "E9002"
    name = "Recording checker"
    target_items = frozenset({ItemKind.STRUCT, ItemKind.ENUM})

    def __init__(self, config: CheckerConfig | None = None) -> None:
        super().__init__(config)
        self.seen: list[ItemKind] = []

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        self.seen.append(item.kind)
        return []


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

CHECKER_CLASSES: dict[str, type[BaseChecker]] = {
    cls.code: cls
    for cls in (
        DirectPanic,
        UnsafeCode,
        ProhibitTransmute,
        TooManyParams,
        PublicFields,
        Exploding,
        Recording,
    )
}


@pytest.fixture()
def checker_classes() -> dict[str, type[BaseChecker]]:
    """Sample checker classes keyed by code."""
    return dict(CHECKER_CLASSES)


@pytest.fixture()
def families() -> list[CheckerFamily]:
    """Three sample families: e10 (panic, unsafe, transmute), e11 (params), e18 (fields)."""
    return [
        CheckerFamily.of(
            "e10", DirectPanic, UnsafeCode, ProhibitTransmute, description="Unsafe code"
        ),
        CheckerFamily.of("e11", TooManyParams, description="Code surface complexity"),
        CheckerFamily.of("e18", PublicFields, description="API design"),
    ]


@pytest.fixture()
def registry(families: list[CheckerFamily]) -> Registry:
    """A registry holding the sample families."""
    return Registry(families)
