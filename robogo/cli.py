"""CLI entry point for Robogo.

Commands:
- robogo run: Execute one or more YAML test cases
- robogo analyze: Show how a test case's steps would be grouped
- robogo actions: List registered actions

Exit codes: 0 when every test case passed or was skipped, 1 when any test
case failed, 2 when a test file or config could not be loaded.
"""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from robogo import __version__
from robogo.core.actions import default_registry
from robogo.core.config import load_runner_config
from robogo.core.dependencies import (
    DependencyAnalyzer,
    build_dependency_graph,
    execution_levels,
)
from robogo.core.errors import RobogoError, format_robogo_error_detailed
from robogo.core.loader import load_test_case, load_test_cases
from robogo.core.models import StepStatus, TestResult, TestSuiteResult, format_duration
from robogo.core.runner import TestRunner

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_LOAD_ERROR = 2

_STATUS_STYLE = {
    StepStatus.PASSED: "green",
    StepStatus.FAILED: "red",
    StepStatus.SKIPPED: "yellow",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _status_text(status: StepStatus) -> str:
    style = _STATUS_STYLE.get(status, "white")
    return f"[{style}]{status.value.upper()}[/{style}]"


def _render_test_result(result: TestResult) -> None:
    table = Table(title=f"{result.name} ({format_duration(result.duration)})")
    table.add_column("Step", style="cyan")
    table.add_column("Action", style="white")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Details", style="dim")

    for step in result.step_results:
        if step.status == StepStatus.FAILED:
            details = step.error
        elif step.status == StepStatus.SKIPPED:
            details = step.skip_reason
        else:
            details = step.output
        if step.warnings:
            details = "\n".join([details, *step.warnings]) if details else "\n".join(step.warnings)
        table.add_row(
            step.name,
            step.action or "-",
            _status_text(step.status),
            format_duration(step.duration),
            details,
        )

    console.print(table)
    if result.status == StepStatus.SKIPPED:
        console.print(f"[yellow]Skipped:[/yellow] {result.skip_reason}")
    elif result.error and not result.step_results:
        console.print(f"[red]Error:[/red] {result.error}")


def _render_summary(suite: TestSuiteResult) -> None:
    style = "red" if suite.failed else "green"
    console.print(
        Panel(
            f"[{style}]{suite.passed} passed, {suite.failed} failed, {suite.skipped} skipped[/{style}]"
            f"  ({suite.total_steps} steps in {format_duration(suite.duration)})",
            title="Summary",
        )
    )


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Robogo - declarative test automation.

    Runs YAML test cases step by step, with retries, circuit breaking,
    recovery strategies and optional parallel execution.
    """
    pass


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Runner config YAML")
@click.option("--parallel/--no-parallel", default=None, help="Override parallel execution")
@click.option("--max-concurrency", type=int, help="Upper bound on concurrent work")
@click.option("--timeout", help="Overall run timeout, e.g. 30s or 2m")
@click.option("--fail-fast", is_flag=True, help="Skip remaining test cases after a failure")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging and retry output")
@click.option("--debug-vars", is_flag=True, help="Report unresolved ${variables} per step")
def run(
    files: tuple[str, ...],
    config_path: str | None,
    parallel: bool | None,
    max_concurrency: int | None,
    timeout: str | None,
    fail_fast: bool,
    verbose: bool,
    debug_vars: bool,
) -> None:
    """Run one or more test cases.

    FILES are YAML test-case files.

    Example:
        robogo run tests/login.yaml tests/orders.yaml --parallel
    """
    _configure_logging(verbose)

    try:
        config = load_runner_config(config_path)
        overrides: dict = {}
        if verbose:
            overrides["verbose"] = True
        if debug_vars:
            overrides["debug_variables"] = True
        if fail_fast:
            overrides["fail_fast"] = True
        if timeout is not None:
            overrides["timeout"] = timeout
        if parallel is not None or max_concurrency is not None:
            parallel_overrides = {}
            if parallel is not None:
                parallel_overrides["enabled"] = parallel
                parallel_overrides["steps"] = parallel
            if max_concurrency is not None:
                parallel_overrides["max_concurrency"] = max_concurrency
            overrides["parallel"] = {**config.parallel.model_dump(), **parallel_overrides}
        if overrides:
            config = type(config).model_validate({**config.model_dump(), **overrides})

        test_cases = load_test_cases(list(files))
    except RobogoError as e:
        console.print(f"[red]Error:[/red] {format_robogo_error_detailed(e)}")
        sys.exit(EXIT_LOAD_ERROR)
    except ValueError as e:
        console.print(f"[red]Invalid option:[/red] {e}")
        sys.exit(EXIT_LOAD_ERROR)

    runner = TestRunner(config)
    suite = runner.run_suite(test_cases)

    for result in suite.results:
        _render_test_result(result)
    _render_summary(suite)

    sys.exit(EXIT_FAILED if suite.failed else EXIT_OK)


@main.command()
@click.argument("file", type=click.Path(dir_okay=False))
def analyze(file: str) -> None:
    """Show parallel groups and data dependencies of a test case.

    Example:
        robogo analyze tests/login.yaml
    """
    try:
        test_case = load_test_case(file)
    except RobogoError as e:
        console.print(f"[red]Error:[/red] {format_robogo_error_detailed(e)}")
        sys.exit(EXIT_LOAD_ERROR)

    analyzer = DependencyAnalyzer(test_case.parallel)
    groups = analyzer.group_steps(test_case.steps)

    table = Table(title=f"Step groups: {test_case.name}")
    table.add_column("Group", style="cyan", justify="right")
    table.add_column("Mode", style="white")
    table.add_column("Steps", style="green")
    for i, group in enumerate(groups, 1):
        table.add_row(str(i), "parallel" if group.parallel else "sequential", ", ".join(group.names))
    console.print(table)

    graph = build_dependency_graph(test_case.steps)
    if graph.number_of_edges():
        console.print("\n[bold]Data dependencies:[/bold]")
        for producer, consumer, data in graph.edges(data=True):
            console.print(f"  {producer} -> {consumer} (${{{data['variable']}}})")
        console.print("\n[bold]Dependency levels:[/bold]")
        for depth, level in enumerate(execution_levels(graph)):
            console.print(f"  {depth}: {', '.join(level)}")


@main.command()
def actions() -> None:
    """List registered actions."""
    registry = default_registry()
    analyzer = DependencyAnalyzer()

    table = Table(title="Available Actions")
    table.add_column("Action", style="cyan")
    table.add_column("Parallel-safe", style="green")
    for name in registry.names():
        table.add_row(name, "yes" if name in analyzer.safe_actions else "no")
    console.print(table)


if __name__ == "__main__":
    main()
