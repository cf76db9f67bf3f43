"""Step dependency analysis and parallel grouping.

A step is independent when it has no control-flow block, binds no result,
expects no error, does not continue on failure, and calls an action from the
parallel-safe allow-list. Two independent steps conflict when one binds a
variable that the other references. Grouping is a greedy single pass that
keeps the original step order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import networkx as nx

from robogo.core.models import ParallelConfig, Step
from robogo.core.variables import VARIABLE_PATTERN

logger = logging.getLogger(__name__)

BASE_PARALLEL_ACTIONS = frozenset({"log", "sleep", "get_time", "get_random", "length"})
HTTP_ACTIONS = frozenset({"http"})
DATABASE_ACTIONS = frozenset({"postgres", "database"})


@dataclass
class StepGroup:
    """Consecutive steps that may run concurrently."""

    steps: list[Step] = field(default_factory=list)

    @property
    def parallel(self) -> bool:
        return len(self.steps) > 1

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.steps]

    def __len__(self) -> int:
        return len(self.steps)


def _collect_references(value: Any, out: list[str]) -> None:
    if isinstance(value, str):
        for name in VARIABLE_PATTERN.findall(value):
            if name not in out:
                out.append(name)
    elif isinstance(value, list):
        for item in value:
            _collect_references(item, out)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_references(item, out)


def get_step_dependencies(step: Step) -> list[str]:
    """Variable names referenced by a step's args and options."""
    refs: list[str] = []
    _collect_references(step.args, refs)
    _collect_references(step.options, refs)
    return refs


def _references(dependencies: Iterable[str], variable: str) -> bool:
    """True if any dependency is `variable` or a path rooted at it."""
    for dep in dependencies:
        dep = dep.strip()
        if dep == variable or dep.startswith(variable + ".") or dep.startswith(variable + "["):
            return True
    return False


class DependencyAnalyzer:
    """Classify steps and partition them into parallel groups.

    Without a ParallelConfig every allow-listed action is eligible. With one,
    HTTP steps need `http_requests` and database steps need
    `database_operations`.
    """

    def __init__(self, config: ParallelConfig | None = None) -> None:
        self.config = config

    @property
    def safe_actions(self) -> frozenset[str]:
        actions = set(BASE_PARALLEL_ACTIONS)
        if self.config is None or self.config.http_requests:
            actions |= HTTP_ACTIONS
        if self.config is None or self.config.database_operations:
            actions |= DATABASE_ACTIONS
        return frozenset(actions)

    def is_step_independent(self, step: Step) -> bool:
        if step.has_control_flow:
            return False
        if step.result:
            return False
        if step.expect_error is not None:
            return False
        if step.continue_on_failure:
            return False
        return step.action.lower() in self.safe_actions

    def can_run_in_parallel(self, a: Step, b: Step) -> bool:
        """Pairwise parallel safety; symmetric in its arguments."""
        if not self.is_step_independent(a) or not self.is_step_independent(b):
            return False
        if a.result and _references(get_step_dependencies(b), a.result):
            return False
        if b.result and _references(get_step_dependencies(a), b.result):
            return False
        return True

    def group_steps(self, steps: list[Step]) -> list[StepGroup]:
        """Greedy grouping: conservative, never maximal.

        A non-independent step always forms its own group. Nested if/for/while
        bodies are not analysed; their steps run sequentially.
        """
        groups: list[StepGroup] = []
        current: list[Step] = []

        for step in steps:
            if not self.is_step_independent(step):
                if current:
                    groups.append(StepGroup(current))
                    current = []
                groups.append(StepGroup([step]))
                continue

            if all(self.can_run_in_parallel(step, existing) for existing in current):
                current.append(step)
            else:
                groups.append(StepGroup(current))
                current = [step]

        if current:
            groups.append(StepGroup(current))

        logger.debug(
            f"Grouped {len(steps)} steps into {len(groups)} groups "
            f"({sum(1 for g in groups if g.parallel)} parallel)"
        )
        return groups


def is_step_independent(step: Step, config: ParallelConfig | None = None) -> bool:
    return DependencyAnalyzer(config).is_step_independent(step)


def can_steps_run_in_parallel(a: Step, b: Step, config: ParallelConfig | None = None) -> bool:
    return DependencyAnalyzer(config).can_run_in_parallel(a, b)


def group_independent_steps(
    steps: list[Step], config: ParallelConfig | None = None
) -> list[StepGroup]:
    return DependencyAnalyzer(config).group_steps(steps)


def build_dependency_graph(steps: list[Step]) -> nx.DiGraph:
    """Producer -> consumer graph of result bindings across top-level steps.

    Nodes are step names carrying `action` and `result` attributes. An edge
    u -> v means v references the variable bound by u (the latest binding
    before v wins).
    """
    graph = nx.DiGraph()
    producers: dict[str, str] = {}

    for step in steps:
        graph.add_node(step.name, action=step.action, result=step.result)
        deps = get_step_dependencies(step)
        for variable, producer in producers.items():
            if _references(deps, variable):
                graph.add_edge(producer, step.name, variable=variable)
        if step.result:
            producers[step.result] = step.name

    return graph


def execution_levels(graph: nx.DiGraph) -> list[list[str]]:
    """Topological generations: the data-dependency depth of each step."""
    return [sorted(level) for level in nx.topological_generations(graph)]
