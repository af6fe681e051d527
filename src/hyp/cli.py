"""hyp CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from hyp import __version__
from hyp.errors import ConfigError, RegistrationError
from hyp.violation import Category, DiagnosticKind, Severity

if TYPE_CHECKING:
    from collections.abc import Callable

    from hyp.config import GlobalConfig
    from hyp.registry import CheckerFilter, Registry

_CATEGORY_CHOICES = [c.value for c in Category]


@click.group()
@click.version_option(version=__version__, prog_name="hyp")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """hyp - pluggable checkers for Rust source code."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _config_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--config",
        "config_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="Config file (default: nearest hyp.yml, hyp.yaml or Hyp.toml up from the cwd).",
    )(func)


def _plugin_option(func: Callable[..., Any]) -> Callable[..., Any]:
    return click.option(
        "--plugin",
        "plugins",
        multiple=True,
        help="Checker family to load, as 'package.module:attribute'. Repeatable.",
    )(func)


def _filter_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the checker selection options shared by ``check`` and ``guideline``."""
    options = [
        click.option("--family", "families", multiple=True, help="Only these families."),
        click.option("--include", multiple=True, help="Only codes starting with this."),
        click.option("--exclude", multiple=True, help="Skip codes starting with this."),
        click.option(
            "--severity",
            "min_severity",
            type=click.IntRange(1, 3),
            default=None,
            help="Minimum checker severity (1=low, 3=high).",
        ),
        click.option(
            "--category",
            "categories",
            type=click.Choice(_CATEGORY_CHOICES),
            multiple=True,
            help="Only checkers in these categories. Repeatable.",
        ),
        click.option(
            "--all",
            "enable_all",
            is_flag=True,
            default=False,
            help="Enable every registered checker, ignoring 'enabled' in the config.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _make_filter(
    families: tuple[str, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    min_severity: int | None,
    categories: tuple[str, ...],
) -> CheckerFilter:
    from hyp.registry import CheckerFilter

    return CheckerFilter(
        families=frozenset(families) if families else None,
        include=include,
        exclude=exclude,
        min_severity=Severity(min_severity) if min_severity is not None else None,
        categories=frozenset(Category(c) for c in categories) if categories else None,
    )


def _load_setup(
    config_path: Path | None, plugins: tuple[str, ...]
) -> tuple[GlobalConfig, Registry]:
    """Load the config file and register every requested checker family.

    Exits with code 2 on configuration or registration errors.
    """
    from hyp.config import GlobalConfig, find_config_file, load_config
    from hyp.registry import Registry, load_families

    try:
        if config_path is None:
            config_path = find_config_file(Path.cwd())
        config = load_config(config_path) if config_path is not None else GlobalConfig()

        specs = list(dict.fromkeys([*config.plugins, *plugins]))
        registry = Registry(load_families(specs))
    except (ConfigError, RegistrationError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if len(registry) == 0:
        click.echo(
            "Warning: no checkers registered; pass --plugin or list plugins in the config file.",
            err=True,
        )
    return config, registry


@main.command()
@click.argument(
    "paths",
    nargs=-1,
    type=click.Path(exists=True, path_type=Path),
)
@_config_option
@_plugin_option
@_filter_options
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option("--strict", is_flag=True, default=False, help="Exit 1 if violations found.")
@click.option("--check-tests", is_flag=True, default=False, help="Also analyze test code.")
@click.option(
    "--jobs", "-j", type=click.IntRange(1), default=1, help="Files analyzed in parallel."
)
def check(
    paths: tuple[Path, ...],
    *,
    config_path: Path | None,
    plugins: tuple[str, ...],
    families: tuple[str, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    min_severity: int | None,
    categories: tuple[str, ...],
    enable_all: bool,
    fmt: str | None,
    strict: bool,
    check_tests: bool,
    jobs: int,
) -> None:
    """Run the registered checkers over Rust sources.

    PATHS are files or directories (default: current directory).
    Exit codes: 0 = clean or violations without --strict,
    1 = violations with --strict, 2 = configuration error.
    """
    from hyp.reporting import CheckReport, format_json, format_porcelain, format_rich
    from hyp.runner import analyze_paths

    start = time.monotonic()
    config, registry = _load_setup(config_path, plugins)

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    checker_filter = _make_filter(families, include, exclude, min_severity, categories)
    built = registry.build(config, checker_filter, enable_all=enable_all)

    analysis = analyze_paths(
        list(paths) or [Path.cwd()], built.checkers, jobs=jobs, check_tests=check_tests
    )
    result = replace(analysis, diagnostics=built.diagnostics + analysis.diagnostics)

    report = CheckReport(
        result=result,
        checkers_run=len(built.checkers),
        elapsed_ms=(time.monotonic() - start) * 1000,
    )
    formatters = {
        "rich": format_rich,
        "json": format_json,
        "porcelain": format_porcelain,
    }
    output = formatters[fmt](report)
    if output:
        click.echo(output)

    if fmt == "porcelain":
        for d in result.diagnostics:
            where = d.file_path or d.checker_id or "-"
            click.echo(f"{d.level}: {where}: {d.message}", err=True)

    if strict and result.violations:
        sys.exit(1)


@main.command("checkers")
@_config_option
@_plugin_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def list_checkers(
    *, config_path: Path | None, plugins: tuple[str, ...], output_json: bool
) -> None:
    """List registered checkers and whether the config enables them."""
    config, registry = _load_setup(config_path, plugins)
    built = registry.build(config)
    active = {c.code: c for c in built.checkers}
    invalid = {
        d.checker_id
        for d in built.diagnostics
        if d.kind is DiagnosticKind.CONFIG and d.level == "error"
    }

    rows: list[dict[str, object]] = []
    for family in registry.families:
        for registration in family.registrations:
            descriptor = registration.descriptor
            checker = active.get(descriptor.code)
            if checker is not None:
                status = "enabled"
                severity = checker.severity
                cats = [c.value for c in checker.categories]
            else:
                status = "invalid" if descriptor.code in invalid else "disabled"
                severity = descriptor.default_severity
                cats = [c.value for c in Category if c in descriptor.default_categories]
            rows.append(
                {
                    "code": descriptor.code,
                    "name": descriptor.name,
                    "family": family.name,
                    "severity": severity.label,
                    "categories": cats,
                    "targets": sorted(k.name.lower() for k in descriptor.target_items),
                    "status": status,
                }
            )

    if output_json:
        click.echo(json.dumps({"checkers": rows}, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title=f"Checkers ({len(active)} of {len(rows)} enabled)")
    table.add_column("Code", style="bold")
    table.add_column("Name")
    table.add_column("Family")
    table.add_column("Severity")
    table.add_column("Categories")
    table.add_column("Status")
    status_styles = {"enabled": "green", "disabled": "dim", "invalid": "red"}
    for row in rows:
        status = str(row["status"])
        table.add_row(
            str(row["code"]),
            str(row["name"]),
            str(row["family"]),
            str(row["severity"]),
            ", ".join(row["categories"]),  # type: ignore[arg-type]
            f"[{status_styles[status]}]{status}[/]",
        )
    Console().print(table)


@main.command("guideline")
@_config_option
@_plugin_option
@_filter_options
def guideline(
    *,
    config_path: Path | None,
    plugins: tuple[str, ...],
    families: tuple[str, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    min_severity: int | None,
    categories: tuple[str, ...],
    enable_all: bool,
) -> None:
    """Print condensed coding guidelines from the enabled checkers.

    One line per checker, meant to be pasted into a prompt or a review note.
    """
    config, registry = _load_setup(config_path, plugins)
    checker_filter = _make_filter(families, include, exclude, min_severity, categories)
    built = registry.build(config, checker_filter, enable_all=enable_all)
    for d in built.errors:
        click.echo(f"{d.level}: {d.checker_id}: {d.message}", err=True)

    click.echo("Do not use the following patterns:\n")
    for checker in built.checkers:
        line = f"- {checker.code} - {checker.name}"
        if checker.suggestions:
            line += f" - {checker.suggestions}"
        click.echo(line)
    click.echo(f"\nTotal: {len(built.checkers)} guidelines")


@main.command("print-config")
@_config_option
@_plugin_option
@click.option("--family", "families", multiple=True, help="Only these families.")
@click.option("--include", multiple=True, help="Only codes starting with this.")
@click.option("--exclude", multiple=True, help="Skip codes starting with this.")
def print_config(
    *,
    config_path: Path | None,
    plugins: tuple[str, ...],
    families: tuple[str, ...],
    include: tuple[str, ...],
    exclude: tuple[str, ...],
) -> None:
    """Print the effective configuration of every registered checker as YAML.

    Settings the config file leaves out are filled in with the checker's
    defaults, so the output is a complete starting point for hyp.yml.
    """
    from hyp.config import dump_config

    config, registry = _load_setup(config_path, plugins)
    checker_filter = _make_filter(families, include, exclude, None, ())

    entries: dict[str, dict[str, object]] = {}
    comments: dict[str, str] = {}
    for family in registry.families:
        for registration in family.registrations:
            if not checker_filter.accepts_registration(family.name, registration):
                continue
            code = registration.code
            try:
                entries[code] = registry.effective_settings(code, config)
            except ConfigError as exc:
                click.echo(f"error: {code}: invalid configuration: {exc}", err=True)
                continue
            comments[code] = f"{code} - {registration.descriptor.name}"

    specs = tuple(dict.fromkeys([*config.plugins, *plugins]))
    click.echo(dump_config(entries, plugins=specs, comments=comments), nl=False)
