"""Checker plugin interface: descriptor, per-checker config and the base class rules extend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, ClassVar, Protocol, Self, runtime_checkable

from hyp.config import parse_categories, parse_severity
from hyp.errors import ConfigError
from hyp.syntax import node_position
from hyp.violation import Category, Severity, Violation

if TYPE_CHECKING:
    from tree_sitter import Node as TSNode

    from hyp.syntax import ItemKind, SyntaxItem

# ---------------------------------------------------------------------------
# Descriptor and config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckerDescriptor:
    """Default metadata of a checker, known without building it."""

    code: str  # globally unique, e.g. "E1003"
    name: str
    default_severity: Severity
    default_categories: frozenset[Category]
    target_items: frozenset[ItemKind]
    suggestions: str = ""


@dataclass(frozen=True)
class CheckerConfig:
    """Settings shared by every checker.

    ``severity`` and ``categories`` left as ``None`` inherit the descriptor
    defaults.  Checkers needing private settings subclass this and add
    fields with defaults, e.g.::

        @dataclass(frozen=True)
        class TooManyParamsConfig(CheckerConfig):
            max_params: int = 5
    """

    enabled: bool = True
    severity: Severity | None = None
    categories: tuple[Category, ...] | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, object], *, checker_id: str | None = None) -> Self:
        """Build a config from a raw mapping, starting from the field defaults.

        Raises
        ------
        ConfigError
            On an unknown key, a value whose type does not match the
            field's default, or a value the config class itself rejects.
        """
        defaults = cls()
        known = {f.name for f in fields(cls)}
        values: dict[str, object] = {}

        for key, value in payload.items():
            if key not in known:
                msg = f"unknown setting '{key}', expected one of {sorted(known)}"
                raise ConfigError(msg, checker_id=checker_id)
            if key == "severity":
                values[key] = (
                    None if value is None else parse_severity(value, checker_id=checker_id)
                )
            elif key == "categories":
                values[key] = (
                    None if value is None else parse_categories(value, checker_id=checker_id)
                )
            else:
                values[key] = _coerce(key, value, getattr(defaults, key), checker_id)

        try:
            return cls(**values)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            msg = f"invalid settings: {exc}"
            raise ConfigError(msg, checker_id=checker_id) from exc


def _coerce(key: str, value: object, default: object, checker_id: str | None) -> object:
    """Check *value* against the type of the field's *default*."""
    if default is None:
        return value

    expected: str
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        expected = "a boolean"
    elif isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        expected = "an integer"
    elif isinstance(default, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        expected = "a number"
    elif isinstance(default, str):
        if isinstance(value, str):
            return value
        expected = "a string"
    elif isinstance(default, tuple):
        if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            return tuple(value)
        expected = "a list of strings"
    elif isinstance(value, type(default)):
        return value
    else:
        expected = type(default).__name__

    msg = f"setting '{key}' must be {expected}, got {value!r}"
    raise ConfigError(msg, checker_id=checker_id)


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


@runtime_checkable
class Checker(Protocol):
    """What the registry and engine require from a rule.

    ``check_item`` must be pure for a fixed config and must not touch
    anything outside the item's subtree.  Once ``set_config`` has returned,
    the instance is never mutated by analysis, so it can be shared across
    threads.
    """

    code: str
    name: str
    suggestions: str
    target_items: frozenset[ItemKind]

    @property
    def severity(self) -> Severity: ...

    @property
    def categories(self) -> tuple[Category, ...]: ...

    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]: ...

    def is_enabled(self) -> bool: ...

    def set_config(self, payload: Mapping[str, object] | CheckerConfig) -> None: ...


class BaseChecker(ABC):
    """Base class implementing :class:`Checker` from class attributes.

    Concrete checkers must:
    1. Set ``code``, ``name`` and ``target_items``
    2. Implement ``check_item()``
    3. Optionally set ``config_class`` to a :class:`CheckerConfig` subclass

    Example::

        class UnsafeCode(BaseChecker):
            code = "E1003"
            name = "Direct use of unsafe code"
            suggestions = "Avoid unsafe code in production code"
            target_items = frozenset({ItemKind.FUNCTION})

            def check_item(self, item, file_path):
                return [
                    self.violation(node, "Direct use of unsafe block", file_path)
                    for node in walk(item.node, {"unsafe_block"})
                ]
    """

    code: ClassVar[str]
    name: ClassVar[str]
    suggestions: ClassVar[str] = ""
    default_severity: ClassVar[Severity] = Severity.HIGH
    default_categories: ClassVar[frozenset[Category]] = frozenset({Category.OPERATIONS})
    target_items: ClassVar[frozenset[ItemKind]] = frozenset()
    config_class: ClassVar[type[CheckerConfig]] = CheckerConfig

    def __init__(self, config: CheckerConfig | None = None) -> None:
        self._config: CheckerConfig = config if config is not None else self.config_class()

    @classmethod
    def descriptor(cls) -> CheckerDescriptor:
        return CheckerDescriptor(
            code=cls.code,
            name=cls.name,
            default_severity=cls.default_severity,
            default_categories=frozenset(cls.default_categories),
            target_items=frozenset(cls.target_items),
            suggestions=cls.suggestions,
        )

    @property
    def config(self) -> CheckerConfig:
        return self._config

    @property
    def severity(self) -> Severity:
        if self._config.severity is not None:
            return self._config.severity
        return self.default_severity

    @property
    def categories(self) -> tuple[Category, ...]:
        if self._config.categories is not None:
            return self._config.categories
        return tuple(c for c in Category if c in self.default_categories)

    def is_enabled(self) -> bool:
        return self._config.enabled

    def set_config(self, payload: Mapping[str, object] | CheckerConfig) -> None:
        """Replace this checker's config.

        A mapping is applied on top of the ``config_class`` defaults; a
        config object must be an instance of ``config_class``.
        """
        if isinstance(payload, CheckerConfig):
            if not isinstance(payload, self.config_class):
                msg = (
                    f"expected {self.config_class.__name__}, "
                    f"got {type(payload).__name__}"
                )
                raise ConfigError(msg, checker_id=self.code)
            self._config = payload
            return
        if not isinstance(payload, Mapping):
            msg = f"settings must be a mapping, got {type(payload).__name__}"
            raise ConfigError(msg, checker_id=self.code)
        self._config = self.config_class.from_payload(payload, checker_id=self.code)

    @abstractmethod
    def check_item(self, item: SyntaxItem, file_path: str) -> list[Violation]:
        """Inspect *item* and return the violations found (possibly none)."""

    def violation(self, node: TSNode, message: str, file_path: str) -> Violation:
        """Build a violation located at *node* with this checker's metadata."""
        line, column = node_position(node)
        return Violation(
            code=self.code,
            name=self.name,
            severity=self.severity,
            message=message,
            file_path=file_path,
            line=line,
            column=column,
            suggestion=self.suggestions or None,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, enabled={self.is_enabled()})"
