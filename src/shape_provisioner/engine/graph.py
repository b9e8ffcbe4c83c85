"""Dependency graph utilities."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from shape_provisioner.engine.errors import CycleDetectedError, UnknownDependencyError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    An edge ``a -> b`` (``b`` lists ``a`` as a dependency) means ``a`` must be
    ready before ``b`` is created, and removed after ``b`` is deleted.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._nodes = set(nodes)
        self._priorities = priorities or {}
        self._deps: dict[str, set[str]] = {}
        for node in sorted(self._nodes):
            deps = set(dependencies.get(node, []))
            for dep in sorted(deps):
                if dep not in self._nodes:
                    raise UnknownDependencyError(node, dep)
            self._deps[node] = deps

    @staticmethod
    def _reach(edges: Mapping[str, set[str]], node: str) -> set[str]:
        seen: set[str] = set()
        stack = [node]
        while stack:
            for nxt in edges[stack.pop()]:
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        return seen

    def dependencies(self, node: str) -> set[str]:
        """Return every node *node* transitively depends on."""
        return self._reach(self._deps, node)

    def dependents(self, node: str) -> set[str]:
        """Return every node that transitively depends on *node*."""
        direct: dict[str, set[str]] = {n: set() for n in self._nodes}
        for child, deps in self._deps.items():
            for dep in deps:
                direct[dep].add(child)
        return self._reach(direct, node)

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (priority, then lexicographic tie-break)."""
        indegree: dict[str, int] = dict.fromkeys(self._nodes, 0)
        dependents: dict[str, set[str]] = {n: set() for n in self._nodes}

        for node, deps in self._deps.items():
            indegree[node] = len(deps)
            for dep in deps:
                dependents[dep].add(node)

        ready: list[tuple[int, str]] = [
            (self._priorities.get(n, 0), n) for n, deg in indegree.items() if deg == 0
        ]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for child in sorted(dependents[node]):
                indegree[child] -= 1
                if indegree[child] == 0:
                    heapq.heappush(ready, (self._priorities.get(child, 0), child))

        if len(order) != len(self._nodes):
            remaining = sorted(self._nodes - set(order))
            raise CycleDetectedError(remaining)

        return order
