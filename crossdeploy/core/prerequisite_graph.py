"""Prerequisite DAG over the pipeline's stages.

Answers three questions for the stage machine and the graph validator:
may this stage start, which stages are blocked when this one fails, and
does every path into a stage cross a given gate.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable

from crossdeploy.models.stages import StageDefinition, StageState


class PrerequisiteNotMetError(RuntimeError):
    """Raised when a stage is started before all its prerequisites succeeded."""


class CyclicDependencyError(ValueError):
    """Raised when stage prerequisites form a cycle."""


def _walk(start: Iterable[str], edges: dict[str, list[str]], skip: str | None = None) -> list[str]:
    """Breadth-first visit order from ``start`` along ``edges``, never entering ``skip``."""
    order: list[str] = []
    seen: set[str] = set()
    queue = deque(n for n in start if n != skip)
    while queue:
        node = queue.popleft()
        if node in seen:
            continue
        seen.add(node)
        order.append(node)
        queue.extend(n for n in edges.get(node, ()) if n != skip)
    return order


class PrerequisiteGraph:
    """Stages keyed by name, with edges in both directions.

    The topological order is computed once on construction; a cycle makes
    construction fail.
    """

    def __init__(self, stage_definitions: Iterable[StageDefinition]) -> None:
        self._stages = {sd.name: sd for sd in stage_definitions}
        self._upstream: dict[str, list[str]] = {
            name: list(sd.prerequisites) for name, sd in self._stages.items()
        }
        self._downstream: dict[str, list[str]] = {name: [] for name in self._stages}
        for name, prereqs in self._upstream.items():
            for prereq in prereqs:
                if prereq in self._downstream:
                    self._downstream[prereq].append(name)
        self._order = self._topological_order()

    def _topological_order(self) -> list[str]:
        # Kahn's algorithm; ready stages are taken lowest ordinal first.
        def by_ordinal(names: Iterable[str]) -> list[str]:
            return sorted(names, key=lambda n: self._stages[n].ordinal)

        remaining = {name: len(prereqs) for name, prereqs in self._upstream.items()}
        ready = deque(by_ordinal(n for n, count in remaining.items() if count == 0))
        order: list[str] = []
        while ready:
            name = ready.popleft()
            order.append(name)
            for dependent in by_ordinal(self._downstream[name]):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.append(dependent)

        if len(order) != len(self._stages):
            stuck = sorted(set(self._stages) - set(order))
            raise CyclicDependencyError(
                f"Stage prerequisites form a cycle through: {', '.join(stuck)}"
            )
        return order

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def stage_ids(self) -> list[str]:
        """Stage names in execution order."""
        return list(self._order)

    @property
    def roots(self) -> list[str]:
        return [name for name in self._order if not self._upstream[name]]

    def get_stage_definition(self, stage_id: str) -> StageDefinition:
        return self._stages[stage_id]

    def get_prerequisites(self, stage_id: str) -> list[str]:
        return list(self._upstream.get(stage_id, ()))

    def get_dependents(self, stage_id: str) -> list[str]:
        """Every stage downstream of ``stage_id``, nearest first."""
        return _walk(self._downstream.get(stage_id, ()), self._downstream)

    def get_ancestors(self, stage_id: str) -> set[str]:
        """Every stage upstream of ``stage_id``."""
        return set(_walk(self._upstream.get(stage_id, ()), self._upstream))

    def reachable_without(self, target: str, removed: str) -> bool:
        """True if some root reaches ``target`` on a path that avoids ``removed``.

        False means ``removed`` sits on every path into ``target``.
        """
        if target == removed:
            return False
        return target in _walk(self.roots, self._downstream, skip=removed)

    # ------------------------------------------------------------------
    # Run-time checks
    # ------------------------------------------------------------------

    def are_prerequisites_met(self, stage_id: str, states: dict[str, StageState]) -> bool:
        return not self.get_blocking_reasons(stage_id, states)

    def get_blocking_reasons(self, stage_id: str, states: dict[str, StageState]) -> list[str]:
        """One ``"<stage> is <state>"`` line per prerequisite that has not succeeded."""
        return [
            f"{prereq} is {states.get(prereq, StageState.PENDING).value}"
            for prereq in self._upstream.get(stage_id, ())
            if states.get(prereq) != StageState.SUCCEEDED
        ]

    def cascade_block(self, failed_stage_id: str, states: dict[str, StageState]) -> list[str]:
        """Mark still-pending downstream stages BLOCKED in ``states``; return them."""
        blocked = [
            name
            for name in self.get_dependents(failed_stage_id)
            if states.get(name, StageState.PENDING) == StageState.PENDING
        ]
        for name in blocked:
            states[name] = StageState.BLOCKED
        return blocked
