"""hyp — checker platform for Rust syntax trees: plugin interface, registry, analysis engine."""

__version__ = "0.4.0"

from hyp.checker import BaseChecker, Checker, CheckerConfig, CheckerDescriptor
from hyp.config import GlobalConfig, load_config
from hyp.engine import AnalysisResult, run_analysis
from hyp.errors import (
    CheckerRuntimeError,
    ConfigError,
    HypError,
    ParseError,
    RegistrationError,
)
from hyp.registry import (
    BuildResult,
    CheckerFamily,
    CheckerFilter,
    CheckerRegistration,
    Registry,
    load_families,
    register_checker,
)
from hyp.syntax import ItemKind, SyntaxItem, SyntaxTree, iter_items, parse_source, walk
from hyp.violation import Category, DiagnosticKind, EngineDiagnostic, Severity, Violation

__all__ = [
    "AnalysisResult",
    "BaseChecker",
    "BuildResult",
    "Category",
    "Checker",
    "CheckerConfig",
    "CheckerDescriptor",
    "CheckerFamily",
    "CheckerFilter",
    "CheckerRegistration",
    "CheckerRuntimeError",
    "ConfigError",
    "DiagnosticKind",
    "EngineDiagnostic",
    "GlobalConfig",
    "HypError",
    "ItemKind",
    "ParseError",
    "RegistrationError",
    "Registry",
    "Severity",
    "SyntaxItem",
    "SyntaxTree",
    "Violation",
    "__version__",
    "iter_items",
    "load_config",
    "load_families",
    "parse_source",
    "register_checker",
    "run_analysis",
    "walk",
]
