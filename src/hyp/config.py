"""Layered checker configuration: the logical GlobalConfig, tier merging and file loading."""

from __future__ import annotations

import logging
import textwrap
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import yaml

from hyp.errors import ConfigError
from hyp.violation import Category, Severity

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONFIG_FILE_NAMES: tuple[str, ...] = ("hyp.yml", "hyp.yaml", "Hyp.toml", "hyp.toml")

_SEVERITY_NAMES: dict[str, Severity] = {s.label: s for s in Severity}
_CATEGORY_NAMES: dict[str, Category] = {c.value: c for c in Category}

# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------


def parse_severity(value: object, *, checker_id: str | None = None) -> Severity:
    """Parse ``"low" | "medium" | "high"`` (any case) or ``1..3`` into a Severity."""
    if isinstance(value, Severity):
        return value
    if isinstance(value, bool):
        msg = f"invalid severity {value!r}, expected one of {sorted(_SEVERITY_NAMES)} or 1-3"
        raise ConfigError(msg, checker_id=checker_id)
    if isinstance(value, int):
        try:
            return Severity(value)
        except ValueError:
            msg = f"invalid severity {value}, must be between 1 and 3"
            raise ConfigError(msg, checker_id=checker_id) from None
    if isinstance(value, str) and value.strip().lower() in _SEVERITY_NAMES:
        return _SEVERITY_NAMES[value.strip().lower()]
    msg = f"invalid severity {value!r}, expected one of {sorted(_SEVERITY_NAMES)} or 1-3"
    raise ConfigError(msg, checker_id=checker_id)


def parse_categories(value: object, *, checker_id: str | None = None) -> tuple[Category, ...]:
    """Parse a category name or a list of names into a de-duplicated tuple.

    Order of first appearance is kept.  An empty list is rejected: every
    checker belongs to at least one category.
    """
    items: list[object]
    if isinstance(value, (str, Category)):
        items = [value]
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        msg = f"categories must be a string or a list, got {type(value).__name__}"
        raise ConfigError(msg, checker_id=checker_id)

    result: list[Category] = []
    for item in items:
        if isinstance(item, Category):
            category = item
        elif isinstance(item, str) and item.strip().lower() in _CATEGORY_NAMES:
            category = _CATEGORY_NAMES[item.strip().lower()]
        else:
            msg = f"invalid category {item!r}, must be one of {sorted(_CATEGORY_NAMES)}"
            raise ConfigError(msg, checker_id=checker_id)
        if category not in result:
            result.append(category)

    if not result:
        msg = "categories must not be empty"
        raise ConfigError(msg, checker_id=checker_id)
    return tuple(result)


# ---------------------------------------------------------------------------
# GlobalConfig
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GlobalConfig:
    """Caller-supplied overrides keyed by checker code or family name.

    Keys are matched case-insensitively.  A key equal to a checker code is an
    explicit per-checker override; a key equal to a family name applies to
    every checker of that family.  Checkers without an entry run with their
    descriptor defaults.
    """

    checkers: Mapping[str, Mapping[str, object]] = field(default_factory=dict)
    plugins: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> GlobalConfig:
        """Validate the logical config shape and build a GlobalConfig.

        ``checkers`` maps keys to override mappings; ``E1003: false`` is
        shorthand for ``E1003: {enabled: false}``.  ``plugins`` lists
        ``module:attribute`` specs of checker families to load.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            msg = "configuration must be a mapping"
            raise ConfigError(msg)

        unknown = sorted(str(k) for k in data if k not in ("checkers", "plugins"))
        if unknown:
            msg = f"unknown top-level configuration keys: {', '.join(unknown)}"
            raise ConfigError(msg)

        checkers_raw = data.get("checkers") or {}
        if not isinstance(checkers_raw, Mapping):
            msg = "'checkers' must be a mapping of checker code to settings"
            raise ConfigError(msg)

        checkers: dict[str, Mapping[str, object]] = {}
        seen: set[str] = set()
        for key, value in checkers_raw.items():
            key_str = str(key)
            folded = key_str.casefold()
            if folded in seen:
                msg = f"checker '{key_str}' is configured more than once"
                raise ConfigError(msg)
            seen.add(folded)

            if isinstance(value, bool):
                checkers[key_str] = {"enabled": value}
            elif value is None:
                checkers[key_str] = {}
            elif isinstance(value, Mapping):
                checkers[key_str] = {str(k): v for k, v in value.items()}
            else:
                msg = f"settings must be a mapping or a boolean, got {type(value).__name__}"
                raise ConfigError(msg, checker_id=key_str)

        plugins_raw = data.get("plugins") or []
        if isinstance(plugins_raw, str):
            plugins_raw = [plugins_raw]
        if not isinstance(plugins_raw, list) or not all(isinstance(p, str) for p in plugins_raw):
            msg = "'plugins' must be a list of 'module:attribute' strings"
            raise ConfigError(msg)

        return cls(checkers=checkers, plugins=tuple(plugins_raw))

    def keys(self) -> tuple[str, ...]:
        return tuple(self.checkers)

    def entry(self, key: str) -> Mapping[str, object] | None:
        """Return the settings stored under *key*, ignoring case."""
        direct = self.checkers.get(key)
        if direct is not None:
            return direct
        folded = key.casefold()
        for name, settings in self.checkers.items():
            if name.casefold() == folded:
                return settings
        return None


def merge_settings(*layers: Mapping[str, object] | None) -> dict[str, object]:
    """Shallow-merge setting layers, later layers winning field by field."""
    merged: dict[str, object] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------


def _parse_toml(content: str, path: Path) -> object:
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        msg = f"{path}: TOML parse error: {exc}"
        raise ConfigError(msg) from exc


def _parse_yaml(content: str, path: Path) -> object:
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        msg = f"{path}: YAML parse error: {exc}"
        raise ConfigError(msg) from exc


def load_config(path: Path) -> GlobalConfig:
    """Read a YAML or TOML config file into a :class:`GlobalConfig`.

    A missing file yields an empty config.  The format follows the
    extension; unknown extensions are tried as TOML first, then YAML.

    Raises
    ------
    ConfigError
        When the file cannot be decoded or has the wrong shape.
    """
    if not path.is_file():
        logger.debug("No config file at %s, using defaults", path)
        return GlobalConfig()

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"{path}: cannot read config: {exc}"
        raise ConfigError(msg) from exc

    suffix = path.suffix.lower()
    data: object
    if suffix == ".toml":
        data = _parse_toml(content, path)
    elif suffix in (".yml", ".yaml"):
        data = _parse_yaml(content, path)
    else:
        try:
            data = _parse_toml(content, path)
        except ConfigError:
            data = _parse_yaml(content, path)

    if data is not None and not isinstance(data, Mapping):
        msg = f"{path}: configuration must be a mapping"
        raise ConfigError(msg)

    config = GlobalConfig.from_mapping(data)
    logger.debug("Loaded %d checker entries from %s", len(config.checkers), path)
    return config


def find_config_file(start: Path) -> Path | None:
    """Search *start* and then each parent directory for a config file.

    Within one directory the first of :data:`CONFIG_FILE_NAMES` present wins;
    the nearest directory holding any of them wins over its parents.
    """
    start = start.absolute()
    for directory in (start, *start.parents):
        for name in CONFIG_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                logger.debug("Using config file %s", candidate)
                return candidate
    return None


def dump_config(
    checkers: Mapping[str, Mapping[str, object]],
    *,
    plugins: tuple[str, ...] = (),
    comments: Mapping[str, str] | None = None,
) -> str:
    """Render checker settings as a YAML config file that :func:`load_config` reads back.

    *comments* maps a checker code to a line written above its entry.
    """
    lines = ["# hyp configuration", "# Place this in hyp.yml to customize checker behavior", ""]
    if plugins:
        lines.append(yaml.safe_dump({"plugins": list(plugins)}, sort_keys=False).rstrip())
    if not checkers:
        lines.append("checkers: {}")
        return "\n".join(lines) + "\n"

    lines.append("checkers:")
    for code, settings in checkers.items():
        comment = (comments or {}).get(code)
        if comment:
            lines.append(f"  # {comment}")
        block = yaml.safe_dump({code: dict(settings)}, sort_keys=False, default_flow_style=None)
        lines.append(textwrap.indent(block.rstrip(), "  "))
    return "\n".join(lines) + "\n"
