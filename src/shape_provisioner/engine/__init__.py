"""Reconciliation engine for declared infrastructure resources."""

from shape_provisioner.engine.engine import ReconciliationEngine, RetryPolicy
from shape_provisioner.engine.errors import (
    CreateFailedError,
    CycleDetectedError,
    DeleteFailedError,
    DuplicateNameError,
    EngineError,
    ProbeUnavailableError,
    RegistryFrozenError,
    ResourceTimeoutError,
    RunCanceled,
    StateLockError,
    UnknownDependencyError,
    UnknownResourceKindError,
    UnknownTargetError,
    UnresolvedInputError,
)
from shape_provisioner.engine.handlers import CallableHandler, EngineContext, ResourceHandler
from shape_provisioner.engine.registry import HandlerRegistry, ResourceRegistry
from shape_provisioner.engine.types import (
    Action,
    ExitCode,
    Outcome,
    PlanEntry,
    ProbeResult,
    ResourceResult,
    ResourceState,
    RunReport,
    TeardownOutcome,
    TeardownReport,
    TeardownResult,
)

__all__ = [
    "Action",
    "CallableHandler",
    "CreateFailedError",
    "CycleDetectedError",
    "DeleteFailedError",
    "DuplicateNameError",
    "EngineContext",
    "EngineError",
    "ExitCode",
    "HandlerRegistry",
    "Outcome",
    "PlanEntry",
    "ProbeResult",
    "ProbeUnavailableError",
    "ReconciliationEngine",
    "RegistryFrozenError",
    "ResourceHandler",
    "ResourceRegistry",
    "ResourceResult",
    "ResourceState",
    "ResourceTimeoutError",
    "RetryPolicy",
    "RunCanceled",
    "RunReport",
    "StateLockError",
    "TeardownOutcome",
    "TeardownReport",
    "TeardownResult",
    "UnknownDependencyError",
    "UnknownResourceKindError",
    "UnknownTargetError",
    "UnresolvedInputError",
]
