# src/pipeline/dag_builder.py — v1
"""Dependency graph builder for strategy steps.

A step depends on every earlier step named by one of its upstream
reference fields. The graph is a DAG by construction (references must
point backwards); validate_steps() checks that for definitions coming
from outside, and build_execution_plan() gives the static level view.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable

from stratrun.core.models import StrategyStep

logger = logging.getLogger(__name__)

DependencyMap = dict[int, set[int]]


class DAGError(Exception):
    """Raised when a strategy definition does not form a valid step DAG."""


@dataclass
class ExecutionPlan:
    """Level view of a strategy's step graph.

    stages is a list of "levels": steps within the same level have no
    mutual dependencies. The scheduler does not execute level by level
    (a step starts as soon as its own dependencies complete); the plan is
    used for validation and display.
    """

    stages: list[list[int]] = field(default_factory=list)
    total_steps: int = 0

    @property
    def flat_order(self) -> list[int]:
        """Return a flat topological ordering (no concurrency info)."""
        return [order for stage in self.stages for order in stage]


def build_dependency_map(steps: Iterable[StrategyStep]) -> DependencyMap:
    """Map each step order to the deduplicated set of step orders it depends on."""
    deps: DependencyMap = {}
    for step in steps:
        deps[step.step_order] = set(step.upstream_references().values())
    return deps


def transitive_dependents(step_order: int, deps: DependencyMap) -> set[int]:
    """Return every step reachable by following "depends on me" edges.

    Breadth-first over the reverse edges of deps; step_order itself is
    not included.
    """
    dependents: set[int] = set()
    queue = deque([step_order])
    while queue:
        current = queue.popleft()
        for order, d in deps.items():
            if current in d and order not in dependents:
                dependents.add(order)
                queue.append(order)
    return dependents


def validate_steps(steps: list[StrategyStep]) -> DependencyMap:
    """Check that a step list forms a valid strategy graph.

    Raises:
        DAGError: On duplicate step orders, references to missing or
            non-earlier steps, or a cycle.
    """
    orders = [s.step_order for s in steps]
    duplicates = sorted({o for o in orders if orders.count(o) > 1})
    if duplicates:
        raise DAGError(f"Duplicate step orders: {duplicates}")

    deps = build_dependency_map(steps)
    for order, d in deps.items():
        for dep in sorted(d):
            if dep not in deps:
                raise DAGError(f"Step {order} depends on step {dep} which does not exist")
            if dep >= order:
                raise DAGError(f"Step {order} references step {dep}, which is not earlier")

    build_execution_plan(deps)
    return deps


def build_execution_plan(deps: DependencyMap) -> ExecutionPlan:
    """Group steps into dependency levels.

    Uses Kahn's algorithm with level detection: each level contains the
    steps whose dependencies are fully resolved by previous levels.

    Raises:
        DAGError: If a cycle is detected or a dependency is missing.
    """
    if not deps:
        return ExecutionPlan()

    for order, d in deps.items():
        for dep in d:
            if dep not in deps:
                raise DAGError(f"Step {order} depends on step {dep} which does not exist")

    in_degree: dict[int, int] = {o: len(d) for o, d in deps.items()}
    dependents: dict[int, list[int]] = {o: [] for o in deps}
    for order, d in deps.items():
        for dep in d:
            dependents[dep].append(order)

    stages: list[list[int]] = []
    queue = sorted(o for o, n in in_degree.items() if n == 0)
    processed = 0

    while queue:
        stages.append(queue)
        next_queue: list[int] = []
        for order in queue:
            processed += 1
            for dependent in dependents[order]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    next_queue.append(dependent)
        queue = sorted(next_queue)

    if processed != len(deps):
        remaining = sorted(o for o, n in in_degree.items() if n > 0)
        raise DAGError(f"Cycle detected involving steps: {remaining}")

    plan = ExecutionPlan(stages=stages, total_steps=processed)
    logger.debug("Execution plan: %d steps in %d levels %s", processed, len(stages), stages)
    return plan
