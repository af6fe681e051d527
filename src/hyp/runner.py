"""File runner: discover Rust sources, parse them, and analyze each with one checker set."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from hyp.engine import AnalysisResult, run_analysis
from hyp.errors import ParseError
from hyp.syntax import parse_source
from hyp.violation import DiagnosticKind, EngineDiagnostic

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from hyp.checker import Checker

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".rs"
_SKIP_DIRS: frozenset[str] = frozenset({"target"})


def discover_files(paths: Iterable[Path]) -> list[Path]:
    """Expand *paths* into the Rust source files to analyze.

    Files are taken as given when they end in ``.rs``; directories are
    searched recursively, skipping ``target/`` and hidden directories.  The
    result is de-duplicated and sorted.
    """
    found: set[Path] = set()
    for path in paths:
        if path.is_file():
            if path.suffix == SOURCE_SUFFIX:
                found.add(path)
            continue
        if not path.is_dir():
            logger.warning("Path does not exist: %s", path)
            continue
        for candidate in path.rglob(f"*{SOURCE_SUFFIX}"):
            relative = candidate.relative_to(path).parts[:-1]
            if any(part in _SKIP_DIRS or part.startswith(".") for part in relative):
                continue
            if candidate.is_file():
                found.add(candidate)
    return sorted(found)


def analyze_source(
    source: str | bytes,
    file_path: str,
    checkers: Sequence[Checker],
    *,
    check_tests: bool = False,
) -> AnalysisResult:
    """Parse *source* and run the checkers over it.

    A parse failure is returned as a single ``PARSE`` diagnostic, never
    as a violation.
    """
    try:
        tree = parse_source(source, file_path=file_path)
    except ParseError as exc:
        logger.warning("Skipping unparseable file %s", exc)
        return AnalysisResult(
            diagnostics=(
                EngineDiagnostic(
                    kind=DiagnosticKind.PARSE,
                    message="File could not be parsed",
                    file_path=file_path,
                    cause=str(exc),
                ),
            )
        )
    return run_analysis(tree, file_path, checkers, check_tests=check_tests)


def analyze_file(
    path: Path, checkers: Sequence[Checker], *, check_tests: bool = False
) -> AnalysisResult:
    """Read and analyze one file."""
    file_path = path.as_posix()
    try:
        content = path.read_bytes()
    except OSError as exc:
        logger.warning("Cannot read file: %s", path)
        return AnalysisResult(
            diagnostics=(
                EngineDiagnostic(
                    kind=DiagnosticKind.PARSE,
                    message="File could not be read",
                    file_path=file_path,
                    cause=str(exc),
                ),
            )
        )
    return analyze_source(content, file_path, checkers, check_tests=check_tests)


def analyze_paths(
    paths: Iterable[Path],
    checkers: Iterable[Checker],
    *,
    jobs: int = 1,
    check_tests: bool = False,
) -> AnalysisResult:
    """Analyze every Rust file under *paths* with one shared checker set.

    With ``jobs > 1`` files are analyzed on a thread pool.  Results are
    collected per file in discovery order and merged afterwards, so the
    output is identical for any ``jobs`` value.
    """
    start = time.monotonic()
    files = discover_files(paths)
    active = tuple(checkers)

    if jobs > 1 and len(files) > 1:
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            per_file = list(
                pool.map(lambda p: analyze_file(p, active, check_tests=check_tests), files)
            )
    else:
        per_file = [analyze_file(p, active, check_tests=check_tests) for p in files]

    result = AnalysisResult.merge(per_file)
    logger.info(
        "Analyzed %d files with %d checkers in %.1fms: %d violations",
        len(files),
        len(active),
        (time.monotonic() - start) * 1000,
        len(result.violations),
    )
    return result
