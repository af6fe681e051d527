"""Checker registry: families of registrations, and building active checkers from config."""

from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from typing import TYPE_CHECKING

from hyp.checker import CheckerConfig
from hyp.config import GlobalConfig, merge_settings
from hyp.errors import ConfigError, RegistrationError
from hyp.syntax import ItemKind
from hyp.violation import Category, DiagnosticKind, EngineDiagnostic, Severity

if TYPE_CHECKING:
    from collections.abc import Callable

    from hyp.checker import BaseChecker, Checker, CheckerDescriptor

    CheckerFactory = Callable[[Mapping[str, object]], Checker | None]

logger = logging.getLogger(__name__)

# Settings a family-wide layer may carry; private checker fields are per-id only.
FAMILY_SETTING_KEYS: frozenset[str] = frozenset({"enabled", "severity", "categories"})

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CheckerRegistration:
    """A checker's descriptor plus the factory that builds it from settings.

    The factory receives the merged settings for this checker and returns a
    configured checker, or ``None`` when the settings disable it.  It raises
    :class:`~hyp.errors.ConfigError` when the settings are malformed.
    """

    descriptor: CheckerDescriptor
    factory: CheckerFactory

    @property
    def code(self) -> str:
        return self.descriptor.code


@dataclass(frozen=True)
class CheckerFamily:
    """An ordered group of registrations, e.g. all E10xx checkers."""

    name: str
    registrations: tuple[CheckerRegistration, ...]
    description: str = ""
    defaults: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def of(
        cls,
        name: str,
        *checker_classes: type[BaseChecker],
        description: str = "",
        defaults: Mapping[str, object] | None = None,
    ) -> CheckerFamily:
        """Build a family from checker classes, in the order given."""
        return cls(
            name=name,
            registrations=tuple(register_checker(c) for c in checker_classes),
            description=description,
            defaults=dict(defaults or {}),
        )


@dataclass(frozen=True)
class CheckerFilter:
    """Narrows which registered checkers a build produces.

    ``families`` and the ``include``/``exclude`` code prefixes are applied
    before a checker is built (exclude wins over include, both ignore case);
    ``min_severity`` and ``categories`` are applied to the built checker's
    effective settings.
    """

    families: frozenset[str] | None = None
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    min_severity: Severity | None = None
    categories: frozenset[Category] | None = None

    def accepts_registration(self, family_name: str, registration: CheckerRegistration) -> bool:
        if self.families is not None:
            wanted = {f.casefold() for f in self.families}
            if family_name.casefold() not in wanted:
                return False
        code = registration.code.casefold()
        if self.include and not any(code.startswith(p.casefold()) for p in self.include):
            return False
        return not any(code.startswith(p.casefold()) for p in self.exclude)

    def accepts_checker(self, checker: Checker) -> bool:
        if self.min_severity is not None and checker.severity < self.min_severity:
            return False
        return not (
            self.categories is not None
            and not any(c in self.categories for c in checker.categories)
        )


@dataclass(frozen=True)
class BuildResult:
    """Checkers built for one run plus the config problems met on the way."""

    checkers: tuple[Checker, ...] = ()
    diagnostics: tuple[EngineDiagnostic, ...] = ()

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(c.code for c in self.checkers)

    @property
    def errors(self) -> tuple[EngineDiagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.level == "error")


# ---------------------------------------------------------------------------
# Registration helpers
# ---------------------------------------------------------------------------


def register_checker(checker_cls: type[BaseChecker]) -> CheckerRegistration:
    """Create the registration for a :class:`~hyp.checker.BaseChecker` subclass."""

    def factory(settings: Mapping[str, object]) -> Checker | None:
        checker = checker_cls()
        checker.set_config(settings)
        return checker if checker.is_enabled() else None

    return CheckerRegistration(descriptor=checker_cls.descriptor(), factory=factory)


def _validate_registration(family: CheckerFamily, registration: CheckerRegistration) -> None:
    descriptor = registration.descriptor
    if not descriptor.code or not descriptor.code.strip():
        msg = f"Family '{family.name}': checker with empty code"
        raise RegistrationError(msg)
    if not descriptor.target_items:
        msg = f"Family '{family.name}': checker {descriptor.code} declares no target items"
        raise RegistrationError(msg)
    bad = [t for t in descriptor.target_items if not isinstance(t, ItemKind)]
    if bad:
        msg = f"Family '{family.name}': checker {descriptor.code} has invalid target items {bad}"
        raise RegistrationError(msg)


def load_families(specs: Iterable[str]) -> list[CheckerFamily]:
    """Import checker families named by ``"package.module:attribute"`` specs.

    The attribute may be a :class:`CheckerFamily`, an iterable of families,
    or a zero-argument callable returning either.  Families are returned in
    the order of *specs*.

    Raises
    ------
    RegistrationError
        When a spec is malformed, cannot be imported, or does not yield
        checker families.
    """
    families: list[CheckerFamily] = []
    for spec in specs:
        module_name, sep, attr = spec.partition(":")
        if not sep or not module_name or not attr:
            msg = f"Invalid plugin spec '{spec}', expected 'module:attribute'"
            raise RegistrationError(msg)

        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            msg = f"Cannot import plugin module '{module_name}': {exc}"
            raise RegistrationError(msg) from exc

        try:
            obj: object = getattr(module, attr)
        except AttributeError as exc:
            msg = f"Plugin module '{module_name}' has no attribute '{attr}'"
            raise RegistrationError(msg) from exc

        if callable(obj):
            obj = obj()

        if isinstance(obj, CheckerFamily):
            families.append(obj)
        elif isinstance(obj, Iterable) and not isinstance(obj, (str, bytes)):
            loaded = list(obj)
            if not all(isinstance(f, CheckerFamily) for f in loaded):
                msg = f"Plugin '{spec}' must provide CheckerFamily objects"
                raise RegistrationError(msg)
            families.extend(loaded)
        else:
            msg = f"Plugin '{spec}' must provide CheckerFamily objects, got {type(obj).__name__}"
            raise RegistrationError(msg)

        logger.debug("Loaded plugin %s", spec)
    return families


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class Registry:
    """Catalogue of checker families.

    Families are registered at startup; the first :meth:`build` seals the
    registry, after which it is read-only and safe to share between threads.
    """

    def __init__(self, families: Iterable[CheckerFamily] = ()) -> None:
        self._families: list[CheckerFamily] = []
        self._by_code: dict[str, tuple[CheckerFamily, CheckerRegistration]] = {}
        self._sealed = False
        for family in families:
            self.register(family)

    # -- registration ------------------------------------------------------

    def register(self, family: CheckerFamily) -> None:
        """Append every registration of *family*.

        Nothing is registered if any check fails.

        Raises
        ------
        RegistrationError
            On a sealed registry, a duplicate family name, a duplicate
            checker code, an empty ``target_items`` or invalid family defaults.
        """
        if self._sealed:
            msg = f"Cannot register family '{family.name}': registry is sealed"
            raise RegistrationError(msg)
        if any(f.name.casefold() == family.name.casefold() for f in self._families):
            msg = f"Duplicate checker family '{family.name}'"
            raise RegistrationError(msg)

        extra = sorted(set(family.defaults) - FAMILY_SETTING_KEYS)
        if extra:
            msg = (
                f"Family '{family.name}': unsupported default settings {extra}, "
                f"family defaults may only set {sorted(FAMILY_SETTING_KEYS)}"
            )
            raise RegistrationError(msg)

        seen: set[str] = set()
        for registration in family.registrations:
            _validate_registration(family, registration)
            key = registration.code.casefold()
            if key in self._by_code or key in seen:
                owner = self._by_code[key][0].name if key in self._by_code else family.name
                msg = f"Duplicate checker code '{registration.code}' (already in family '{owner}')"
                raise RegistrationError(msg)
            seen.add(key)

        self._families.append(family)
        for registration in family.registrations:
            self._by_code[registration.code.casefold()] = (family, registration)
        logger.debug(
            "Registered family %s with %d checkers", family.name, len(family.registrations)
        )

    def seal(self) -> None:
        self._sealed = True

    # -- introspection -----------------------------------------------------

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def families(self) -> tuple[CheckerFamily, ...]:
        return tuple(self._families)

    @property
    def registrations(self) -> tuple[CheckerRegistration, ...]:
        return tuple(r for f in self._families for r in f.registrations)

    def descriptors(self) -> tuple[CheckerDescriptor, ...]:
        return tuple(r.descriptor for r in self.registrations)

    def get(self, code: str) -> CheckerRegistration | None:
        found = self._by_code.get(code.casefold())
        return found[1] if found is not None else None

    def family_of(self, code: str) -> CheckerFamily | None:
        found = self._by_code.get(code.casefold())
        return found[0] if found is not None else None

    def __len__(self) -> int:
        return len(self._by_code)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.casefold() in self._by_code

    # -- building ----------------------------------------------------------

    def _config_diagnostics(self, config: GlobalConfig) -> list[EngineDiagnostic]:
        family_names = {f.name.casefold() for f in self._families}
        diagnostics: list[EngineDiagnostic] = []
        for key in config.keys():
            folded = key.casefold()
            if folded in self._by_code:
                continue
            if folded in family_names:
                settings = config.entry(key) or {}
                extra = sorted(set(settings) - FAMILY_SETTING_KEYS)
                if extra:
                    logger.warning("Ignoring non-family settings %s for family %s", extra, key)
                    diagnostics.append(
                        EngineDiagnostic(
                            kind=DiagnosticKind.CONFIG,
                            message=(
                                f"Family '{key}' settings {extra} ignored, family entries "
                                f"may only set {sorted(FAMILY_SETTING_KEYS)}"
                            ),
                            checker_id=key,
                            level="warning",
                        )
                    )
                continue
            logger.warning("Configuration references unknown checker '%s'", key)
            diagnostics.append(
                EngineDiagnostic(
                    kind=DiagnosticKind.UNKNOWN_CHECKER,
                    message=f"Unknown checker '{key}' in configuration",
                    checker_id=key,
                    level="warning",
                )
            )
        return diagnostics

    def settings_for(self, code: str, config: GlobalConfig) -> dict[str, object]:
        """Merge the config tiers for checker *code*.

        Family defaults, then the config entry keyed by the family name,
        then the entry keyed by the checker code; later tiers win field by
        field and the checker's own defaults fill whatever is left.
        """
        found = self._by_code.get(code.casefold())
        if found is None:
            msg = f"Unknown checker '{code}'"
            raise KeyError(msg)
        family, registration = found
        family_entry = config.entry(family.name) or {}
        family_layer = {k: v for k, v in family_entry.items() if k in FAMILY_SETTING_KEYS}
        return merge_settings(family.defaults, family_layer, config.entry(registration.code))

    def effective_settings(self, code: str, config: GlobalConfig) -> dict[str, object]:
        """Resolve every setting of checker *code*, its own defaults included.

        Values use their config-file spelling (severity label, category
        names, lists for tuples), so the result can be written back as the
        checker's config entry.

        Raises
        ------
        KeyError
            When *code* is not registered.
        ConfigError
            When the merged settings are malformed.
        """
        registration = self.get(code)
        if registration is None:
            msg = f"Unknown checker '{code}'"
            raise KeyError(msg)
        settings = self.settings_for(code, config)
        checker = registration.factory(settings)
        enabled = checker is not None
        if checker is None:
            checker = registration.factory({**settings, "enabled": True})

        descriptor = registration.descriptor
        if checker is None:
            severity = descriptor.default_severity
            categories = tuple(c for c in Category if c in descriptor.default_categories)
        else:
            severity = checker.severity
            categories = checker.categories
        values: dict[str, object] = {
            "enabled": enabled,
            "severity": severity.label,
            "categories": [c.value for c in categories],
        }

        checker_config = getattr(checker, "config", None)
        if isinstance(checker_config, CheckerConfig):
            for f in fields(checker_config):
                if f.name in FAMILY_SETTING_KEYS:
                    continue
                value = getattr(checker_config, f.name)
                values[f.name] = list(value) if isinstance(value, tuple) else value
        return values

    def build(
        self,
        config: GlobalConfig | None = None,
        checker_filter: CheckerFilter | None = None,
        *,
        enable_all: bool = False,
    ) -> BuildResult:
        """Build the active checker set for *config*.

        Checkers come out in registration order within each family, families
        in registration order.  A checker disabled by the merged settings is
        left out silently; one whose settings are malformed, or whose factory
        fails, is left out with a ``CONFIG`` diagnostic while every other
        checker still builds.  With *enable_all* every checker is built
        regardless of its ``enabled`` setting.
        """
        config = config if config is not None else GlobalConfig()
        checker_filter = checker_filter if checker_filter is not None else CheckerFilter()
        self._sealed = True

        diagnostics = self._config_diagnostics(config)
        checkers: list[Checker] = []

        for family in self._families:
            for registration in family.registrations:
                if not checker_filter.accepts_registration(family.name, registration):
                    continue

                settings = self.settings_for(registration.code, config)
                if enable_all:
                    settings["enabled"] = True
                try:
                    checker = registration.factory(settings)
                except ConfigError as exc:
                    logger.warning("Excluding %s: %s", registration.code, exc)
                    diagnostics.append(_excluded(registration.code, str(exc)))
                    continue
                except Exception as exc:  # noqa: BLE001
                    logger.warning(
                        "Excluding %s: factory raised %s", registration.code, exc, exc_info=True
                    )
                    diagnostics.append(
                        _excluded(registration.code, f"{type(exc).__name__}: {exc}")
                    )
                    continue

                if checker is None:
                    logger.debug("Checker %s disabled by configuration", registration.code)
                    continue
                if not checker_filter.accepts_checker(checker):
                    continue
                checkers.append(checker)

        logger.debug("Built %d of %d registered checkers", len(checkers), len(self))
        return BuildResult(checkers=tuple(checkers), diagnostics=tuple(diagnostics))


def _excluded(code: str, cause: str) -> EngineDiagnostic:
    return EngineDiagnostic(
        kind=DiagnosticKind.CONFIG,
        message=f"Checker {code} excluded: invalid configuration",
        checker_id=code,
        cause=cause,
    )
