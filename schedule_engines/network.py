"""
schedule_engines.network -- Task graph construction, validation and ordering.

Responsibility:
    Build the per-call dependency graph for a set of tasks (an id-indexed
    arena plus successor adjacency lists), validate it, and answer
    ordering and reachability queries over it: topological sort, path
    existence, "would this edge create a cycle", and one concrete
    dependency path between two tasks.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import schedule_kernel (domain values, exceptions, logging).
    Consumed by the critical-path and leveling engines and by
    schedule_services.

Invariants enforced:
    - Tasks never reference each other; edges live only in the adjacency
      dicts built for the call and discarded afterwards.
    - Self loops are rejected before any other check.
    - Determinism: insertion order is the tie-break everywhere (successor
      lists, Kahn's queue, cycle search roots).

Failure modes:
    - DuplicateTaskError when two tasks share an id.
    - SelfDependencyError, UnknownPredecessorError, CircularDependencyError
      from ``validate`` / ``topological_order``.

Usage:
    from schedule_engines.network import TaskNetwork, TaskNode
    from schedule_kernel.domain.values import Duration

    network = TaskNetwork([
        TaskNode("A", Duration.from_days(1)),
        TaskNode("B", Duration.from_days(2), predecessor_ids={"A"}),
    ])
    network.validate()
    network.topological_order()  # ("A", "B")
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from schedule_engines.tracer import traced_engine
from schedule_kernel.domain.values import Duration
from schedule_kernel.exceptions import (
    CircularDependencyError,
    DuplicateTaskError,
    SelfDependencyError,
    UnknownPredecessorError,
)
from schedule_kernel.logging_config import get_logger

logger = get_logger("engines.network")


@dataclass(frozen=True)
class TaskNode:
    """
    One task as supplied by the caller.

    Contract:
        ``predecessor_ids`` are finish-to-start dependencies by id.
        ``resource_units`` maps resource_id to the units the task holds
        while it runs; leveling uses it to attribute allocation.

    Guarantees:
        - Immutable; ``predecessor_ids`` is normalised to a frozenset and
          ``resource_units`` to a read-only mapping.
    """

    task_id: str
    duration: Duration
    predecessor_ids: frozenset[str] = frozenset()
    name: str = ""
    resource_units: Mapping[str, float] = field(
        default_factory=dict, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "predecessor_ids", frozenset(self.predecessor_ids))
        object.__setattr__(
            self, "resource_units", MappingProxyType(dict(self.resource_units))
        )

    @property
    def display_name(self) -> str:
        return self.name or self.task_id


class TaskNetwork:
    """
    Dependency graph over one immutable snapshot of tasks.

    Contract:
        Built once per call.  Construction only rejects duplicate ids;
        callers run ``validate()`` before relying on ordering queries.

    Guarantees:
        - ``successors(id)`` lists follow task insertion order.
        - ``predecessors(id)`` lists follow task insertion order and only
          contain ids present in the network.
        - Queries never mutate the graph.

    Non-goals:
        - Does not model lags or start-to-start / finish-to-finish links.
    """

    def __init__(self, tasks: Iterable[TaskNode]):
        self._tasks: dict[str, TaskNode] = {}
        for task in tasks:
            if task.task_id in self._tasks:
                raise DuplicateTaskError(task.task_id)
            self._tasks[task.task_id] = task

        self._position = {task_id: i for i, task_id in enumerate(self._tasks)}
        self._successors: dict[str, list[str]] = {task_id: [] for task_id in self._tasks}
        self._predecessors: dict[str, list[str]] = {task_id: [] for task_id in self._tasks}

        for task_id, task in self._tasks.items():
            known = sorted(
                (p for p in task.predecessor_ids if p in self._tasks),
                key=self._position.__getitem__,
            )
            self._predecessors[task_id] = known
            for pred_id in known:
                self._successors[pred_id].append(task_id)

    # ------------------------------------------------------------------
    # Arena access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(self._tasks)

    @property
    def tasks(self) -> tuple[TaskNode, ...]:
        return tuple(self._tasks.values())

    def task(self, task_id: str) -> TaskNode:
        return self._tasks[task_id]

    def position(self, task_id: str) -> int:
        """Insertion index of a task, used as the deterministic tie-break."""
        return self._position[task_id]

    def predecessors(self, task_id: str) -> tuple[str, ...]:
        return tuple(self._predecessors[task_id])

    def successors(self, task_id: str) -> tuple[str, ...]:
        return tuple(self._successors[task_id])

    def sources(self) -> tuple[str, ...]:
        """Tasks with no predecessors, in insertion order."""
        return tuple(t for t in self._tasks if not self._predecessors[t])

    def sinks(self) -> tuple[str, ...]:
        """Tasks with no successors, in insertion order."""
        return tuple(t for t in self._tasks if not self._successors[t])

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Check that the network is a well-formed DAG.

        Raises:
            SelfDependencyError: a task lists itself as predecessor.
            UnknownPredecessorError: a predecessor id is not in the network.
            CircularDependencyError: the graph has a cycle.
        """
        for task in self._tasks.values():
            if task.task_id in task.predecessor_ids:
                raise SelfDependencyError(task.task_id)

        for task in self._tasks.values():
            for pred_id in sorted(task.predecessor_ids):
                if pred_id not in self._tasks:
                    raise UnknownPredecessorError(task.task_id, pred_id)

        cycle = self.find_cycle()
        if cycle:
            raise CircularDependencyError(cycle[0], cycle)

    def find_cycle(self) -> tuple[str, ...] | None:
        """
        Return one cycle as a closed id path (first id repeated last).

        Iterative depth-first search with an explicit stack and an
        on-stack set; roots are tried in insertion order.
        """
        visited: set[str] = set()
        on_stack: set[str] = set()

        for root in self._tasks:
            if root in visited:
                continue
            path = [root]
            stack = [iter(self._successors[root])]
            visited.add(root)
            on_stack.add(root)

            while stack:
                advanced = False
                for child in stack[-1]:
                    if child in on_stack:
                        start = path.index(child)
                        return tuple(path[start:]) + (child,)
                    if child not in visited:
                        visited.add(child)
                        on_stack.add(child)
                        path.append(child)
                        stack.append(iter(self._successors[child]))
                        advanced = True
                        break
                if not advanced:
                    stack.pop()
                    on_stack.discard(path.pop())
        return None

    # ------------------------------------------------------------------
    # Ordering and reachability
    # ------------------------------------------------------------------

    def topological_order(self) -> tuple[str, ...]:
        """
        Kahn's algorithm with a FIFO queue seeded in insertion order.

        Raises:
            CircularDependencyError: fewer tasks emitted than exist.
        """
        in_degree = {t: len(self._predecessors[t]) for t in self._tasks}
        queue = deque(t for t in self._tasks if in_degree[t] == 0)
        order: list[str] = []

        while queue:
            current = queue.popleft()
            order.append(current)
            for succ in self._successors[current]:
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    queue.append(succ)

        if len(order) < len(self._tasks):
            cycle = self.find_cycle() or ()
            stuck = cycle[0] if cycle else next(t for t in self._tasks if in_degree[t] > 0)
            raise CircularDependencyError(stuck, cycle)
        return tuple(order)

    def has_path(self, from_id: str, to_id: str) -> bool:
        """Breadth-first reachability over successor edges."""
        if from_id not in self._tasks or to_id not in self._tasks:
            return False
        if from_id == to_id:
            return True
        seen = {from_id}
        queue = deque([from_id])
        while queue:
            current = queue.popleft()
            for succ in self._successors[current]:
                if succ == to_id:
                    return True
                if succ not in seen:
                    seen.add(succ)
                    queue.append(succ)
        return False

    def would_create_cycle(self, predecessor_id: str, successor_id: str) -> bool:
        """True when adding predecessor -> successor would close a cycle."""
        if predecessor_id == successor_id:
            return True
        return self.has_path(successor_id, predecessor_id)

    def dependency_path(self, from_id: str, to_id: str) -> tuple[tuple[str, str], ...]:
        """
        Edges of one shortest path from ``from_id`` to ``to_id``.

        Returns an empty tuple when no path exists or both ids are equal.
        """
        if from_id not in self._tasks or to_id not in self._tasks or from_id == to_id:
            return ()
        parent: dict[str, str] = {}
        queue = deque([from_id])
        seen = {from_id}
        while queue:
            current = queue.popleft()
            for succ in self._successors[current]:
                if succ in seen:
                    continue
                seen.add(succ)
                parent[succ] = current
                if succ == to_id:
                    edges: list[tuple[str, str]] = []
                    node = to_id
                    while node != from_id:
                        edges.append((parent[node], node))
                        node = parent[node]
                    return tuple(reversed(edges))
                queue.append(succ)
        return ()


# ---------------------------------------------------------------------------
# Traced entry points
# ---------------------------------------------------------------------------


@traced_engine("network_validation", "1.0", fingerprint_fields=("tasks",))
def validate_network(*, tasks: Sequence[TaskNode]) -> TaskNetwork:
    """
    Build and validate the network for ``tasks``.

    Returns:
        The validated TaskNetwork, ready for ordering queries.

    Raises:
        DuplicateTaskError, SelfDependencyError, UnknownPredecessorError,
        CircularDependencyError.
    """
    t0 = time.monotonic()
    logger.info("network_validation_started", extra={"task_count": len(tasks)})

    network = TaskNetwork(tasks)
    network.validate()

    logger.info("network_validation_completed", extra={
        "task_count": len(network),
        "source_count": len(network.sources()),
        "sink_count": len(network.sinks()),
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return network


@traced_engine("topological_sort", "1.0", fingerprint_fields=("tasks",))
def topological_sort(*, tasks: Sequence[TaskNode]) -> tuple[str, ...]:
    """
    Task ids in dependency order (every predecessor before its successors).

    Raises:
        Same as ``validate_network``.
    """
    network = TaskNetwork(tasks)
    network.validate()
    order = network.topological_order()
    logger.debug("topological_sort_completed", extra={"task_count": len(order)})
    return order
