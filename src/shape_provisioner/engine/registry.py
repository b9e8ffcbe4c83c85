"""Descriptor and handler registries."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from shape_provisioner.engine.errors import (
    DuplicateNameError,
    RegistryFrozenError,
    UnknownDependencyError,
    UnknownResourceKindError,
    UnknownTargetError,
)
from shape_provisioner.engine.graph import DependencyGraph

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from shape_provisioner.engine.handlers import ResourceHandler
    from shape_provisioner.resources.base import ResourceDescriptor

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Registry mapping resource kind -> handler."""

    def __init__(self) -> None:
        self._handlers: dict[str, ResourceHandler[Any]] = {}

    def register(self, kind: str, handler: ResourceHandler[Any]) -> None:
        if not kind:
            raise ValueError("Resource kind must be a non-empty string")
        if kind in self._handlers:
            raise ValueError(f"Resource kind already registered: {kind}")
        self._handlers[kind] = handler

    def get(self, kind: str) -> ResourceHandler[Any]:
        try:
            return self._handlers[kind]
        except KeyError as e:
            raise UnknownResourceKindError(kind) from e

    def __contains__(self, kind: object) -> bool:
        return kind in self._handlers


class ResourceRegistry:
    """The desired resources of one deployment, keyed by name.

    ``register`` rejects duplicate names. ``finalize`` checks that every
    dependency resolves and that the graph is acyclic, then freezes the
    registry and returns the creation order.
    """

    def __init__(self, descriptors: Iterable[ResourceDescriptor] = ()) -> None:
        self._descriptors: dict[str, ResourceDescriptor] = {}
        self._graph: DependencyGraph | None = None
        self._order: list[str] | None = None
        for d in descriptors:
            self.register(d)

    def register(self, descriptor: ResourceDescriptor) -> None:
        if self._order is not None:
            raise RegistryFrozenError(
                f"Cannot register '{descriptor.name}': registry is already finalized"
            )
        if descriptor.name in self._descriptors:
            raise DuplicateNameError(descriptor.name)
        self._descriptors[descriptor.name] = descriptor
        logger.debug("Registered %s '%s'", descriptor.kind, descriptor.name)

    def finalize(self) -> list[str]:
        """Validate the graph and return names in creation order.

        Idempotent: later calls return the same order.

        Raises:
            UnknownDependencyError: A dependency names an unregistered resource.
            CycleDetectedError: The dependencies form a cycle.
        """
        if self._order is not None:
            return list(self._order)

        for name in sorted(self._descriptors):
            for dep in self._descriptors[name].depends_on:
                if dep not in self._descriptors:
                    raise UnknownDependencyError(name, dep)

        graph = DependencyGraph(
            self._descriptors,
            {n: d.depends_on for n, d in self._descriptors.items()},
            priorities={n: d.plan_priority for n, d in self._descriptors.items()},
        )
        order = graph.topological_order()
        self._graph = graph
        self._order = order
        logger.debug("Finalized %d resources: %s", len(order), ", ".join(order))
        return list(order)

    def teardown_order(self) -> list[str]:
        order = self.finalize()
        order.reverse()
        return order

    def subset(self, targets: Iterable[str], *, dependents: bool = False) -> ResourceRegistry:
        """Return a new registry narrowed to *targets*.

        By default the targets come with everything they depend on, which is
        what a partial apply must reconcile. With ``dependents=True`` they
        come with everything that depends on them, which is what a partial
        teardown must delete first; dependencies outside that set are dropped
        from ``depends_on``.

        Raises:
            UnknownTargetError: A target names an undeclared resource.
        """
        graph = self.graph
        keep: set[str] = set()
        for name in targets:
            if name not in self._descriptors:
                raise UnknownTargetError(name)
            keep.add(name)
            keep |= graph.dependents(name) if dependents else graph.dependencies(name)

        narrowed = []
        for name, d in self._descriptors.items():
            if name not in keep:
                continue
            deps = [dep for dep in d.depends_on if dep in keep]
            if deps != d.depends_on:
                d = d.model_copy(update={"depends_on": deps})
            narrowed.append(d)
        logger.debug("Narrowed to %d of %d resources", len(narrowed), len(self._descriptors))
        return ResourceRegistry(narrowed)

    @property
    def graph(self) -> DependencyGraph:
        self.finalize()
        assert self._graph is not None
        return self._graph

    @property
    def finalized(self) -> bool:
        return self._order is not None

    def get(self, name: str) -> ResourceDescriptor:
        return self._descriptors[name]

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __iter__(self) -> Iterator[ResourceDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)
