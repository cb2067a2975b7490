from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

from ._errors import CyclicDependencyError


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from ._registration import Registration

N = TypeVar("N")


class _Mark(Enum):
    IN_PROGRESS = "in_progress"
    DONE = "done"


class Graph(Generic[N]):
    """Directed graph whose edges point from a node to its dependencies.

    Nodes and edges keep insertion order, which makes `order()` deterministic:
    independent nodes come out in the order they were added.
    """

    def __init__(self) -> None:
        self._nodes: dict[N, None] = {}
        self._edges: dict[N, list[N]] = {}

    @property
    def nodes(self) -> tuple[N, ...]:
        return tuple(self._nodes)

    def add_node(self, node: N) -> None:
        self._nodes.setdefault(node, None)

    def add_edge(self, source: N, destination: N) -> None:
        edges = self._edges.setdefault(source, [])
        if destination not in edges:
            edges.append(destination)

    def dependencies_of(self, node: N) -> tuple[N, ...]:
        return tuple(self._edges.get(node, ()))

    def order(self, label: Callable[[N], str] = str) -> list[N]:
        """Return the nodes with every dependency placed before its dependents.

        Uses an explicit work stack instead of recursion so deep graphs do not
        hit the interpreter recursion limit. `label` maps nodes to the values
        reported in `CyclicDependencyError.cycle`.

        Raise CyclicDependencyError on the first back edge found.
        """
        marks: dict[N, _Mark] = {}
        ordered: list[N] = []

        for root in self._nodes:
            if root in marks:
                continue

            marks[root] = _Mark.IN_PROGRESS
            stack: list[tuple[N, Iterator[N]]] = [(root, iter(self.dependencies_of(root)))]

            while stack:
                node, pending = stack[-1]
                for dependency in pending:
                    mark = marks.get(dependency)
                    if mark is _Mark.IN_PROGRESS:
                        path = [entry for entry, _ in stack]
                        cycle = [*path[path.index(dependency) :], dependency]
                        raise CyclicDependencyError(label(entry) for entry in cycle)
                    if mark is None:
                        marks[dependency] = _Mark.IN_PROGRESS
                        stack.append((dependency, iter(self.dependencies_of(dependency))))
                        break
                else:
                    stack.pop()
                    marks[node] = _Mark.DONE
                    ordered.append(node)

        return ordered


def sort_topologically(registrations: Sequence[Registration]) -> list[Registration]:
    """Order registrations so that each one follows everything it depends on.

    Dependency names with no matching registration are treated as leaves;
    checking that they exist is the resolver's job.
    """
    graph: Graph[int] = Graph()
    index_by_name: dict[str, int] = {}

    for index, registration in enumerate(registrations):
        graph.add_node(index)
        index_by_name.setdefault(registration.name, index)

    for index, registration in enumerate(registrations):
        for dependency in registration.dependencies:
            target = index_by_name.get(dependency)
            if target is not None:
                graph.add_edge(index, target)

    ordered = [registrations[index] for index in graph.order(label=lambda index: registrations[index].name)]
    logger.debug("Sorted registrations: %s", [registration.name for registration in ordered])
    return ordered
