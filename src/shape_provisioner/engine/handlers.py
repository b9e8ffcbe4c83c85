"""Engine-facing handler interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from shape_provisioner.resources.base import ResourceDescriptor

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from shape_provisioner.core.provider import CommandProvider
    from shape_provisioner.engine.types import ProbeResult, ResourceState

R = TypeVar("R", bound=ResourceDescriptor)


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers.

    ``outputs`` is the run's view of published values: the loaded config
    record plus everything produced by resources reconciled so far.
    """

    provider: CommandProvider | None = None
    outputs: Mapping[str, str] = field(default_factory=dict)

    def require_provider(self) -> CommandProvider:
        if self.provider is None:
            raise RuntimeError("This handler needs a CommandProvider; none was configured")
        return self.provider


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    A handler binds one resource kind to an external system through the
    ``probe``/``create``/``delete`` triple. ``probe`` must distinguish a
    resource that does not exist (``absent``) from a system that could not
    be asked (raise ``ProbeUnavailableError``).
    """

    def validate(self, desired: R) -> list[str]:
        """Single-resource validation. Return list of error messages (empty = valid)."""
        _ = desired
        return []

    def probe(self, ctx: EngineContext, desired: R) -> ProbeResult | ResourceState:
        """Observe the resource's current state."""
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> None:
        """Start creating the resource. The engine then probes until ready."""
        raise NotImplementedError

    def delete(self, ctx: EngineContext, desired: R) -> None:
        """Start deleting the resource. The engine then probes until absent."""
        raise NotImplementedError


class CallableHandler(ResourceHandler[ResourceDescriptor]):
    """Handler assembled from plain ``fn(descriptor)`` callables.

    Example:
        handler = CallableHandler(
            probe=lambda d: ResourceState.READY if exists(d.name) else ResourceState.ABSENT,
            create=lambda d: make(d.name),
            delete=lambda d: remove(d.name),
        )
    """

    def __init__(
        self,
        *,
        probe: Callable[[ResourceDescriptor], ProbeResult | ResourceState],
        create: Callable[[ResourceDescriptor], Any],
        delete: Callable[[ResourceDescriptor], Any] | None = None,
    ) -> None:
        self._probe = probe
        self._create = create
        self._delete = delete

    def probe(
        self, ctx: EngineContext, desired: ResourceDescriptor
    ) -> ProbeResult | ResourceState:
        _ = ctx
        return self._probe(desired)

    def create(self, ctx: EngineContext, desired: ResourceDescriptor) -> None:
        _ = ctx
        self._create(desired)

    def delete(self, ctx: EngineContext, desired: ResourceDescriptor) -> None:
        _ = ctx
        if self._delete is None:
            raise NotImplementedError(f"No delete callable bound for '{desired.kind}'")
        self._delete(desired)
