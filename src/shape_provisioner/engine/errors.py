"""Engine error types."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shape_provisioner.engine.types import RunReport, TeardownReport


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceKindError(EngineError):
    """Raised when a resource kind has no registered handler."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown resource kind: {kind}")
        self.kind = kind


class DuplicateNameError(EngineError):
    """Raised when two descriptors are registered under the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Duplicate resource name: {name}")
        self.name = name


class UnknownDependencyError(EngineError):
    """Raised when a descriptor depends on a name that was never registered."""

    def __init__(self, name: str, dependency: str) -> None:
        super().__init__(f"Resource '{name}' depends on unknown resource '{dependency}'")
        self.name = name
        self.dependency = dependency


class CycleDetectedError(EngineError):
    """Raised when dependencies contain a cycle."""

    def __init__(self, names: list[str]) -> None:
        msg = "Dependency cycle detected"
        if names:
            msg += f": {', '.join(names)}"
        super().__init__(msg)
        self.names = names


class UnknownTargetError(EngineError):
    """Raised when a run is narrowed to a resource that was never declared."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown target resource: {name}")
        self.name = name


class RegistryFrozenError(EngineError):
    """Raised when registering into a registry that was already finalized."""


class ProbeUnavailableError(EngineError):
    """The external system could not be reached.

    Distinct from an ``absent`` probe result: a resource is only considered
    absent when the system answered and said so.
    """


class ResourceTimeoutError(EngineError, TimeoutError):
    """A resource did not reach the expected state before its deadline."""

    def __init__(self, name: str, expected: str, timeout: float) -> None:
        super().__init__(f"Resource '{name}' did not become {expected} within {timeout:g}s")
        self.name = name
        self.expected = expected
        self.timeout = timeout


class CreateFailedError(EngineError):
    """The external creation call returned an error."""


class DeleteFailedError(EngineError):
    """The external deletion call returned an error."""


class UnresolvedInputError(EngineError):
    """An input references an output that no earlier resource produced."""

    def __init__(self, name: str, keys: list[str]) -> None:
        super().__init__(f"Resource '{name}' references unknown outputs: {', '.join(keys)}")
        self.name = name
        self.keys = keys


class StateLockError(EngineError):
    """Raised when the record lock cannot be acquired or released."""


class ConfigRecordError(EngineError):
    """Raised when a config record cannot be written or parsed."""


class RunCanceled(EngineError):
    """Raised when a run is canceled (e.g., Ctrl-C).

    Carries the partial report so callers can inspect progress.
    """

    def __init__(self, report: RunReport | TeardownReport) -> None:
        super().__init__("Run canceled")
        self.report = report
