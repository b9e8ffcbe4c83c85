"""YAML configuration loading and convenience plan/apply/teardown API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shape_provisioner.config.loader import ConfigError, load_config
from shape_provisioner.config.registry import default_handlers
from shape_provisioner.config.schema import Config, Settings
from shape_provisioner.core.provider import CommandProvider
from shape_provisioner.core.state import ConfigRecord, ConfigStore
from shape_provisioner.engine.engine import ProgressCallback, ReconciliationEngine, RetryPolicy
from shape_provisioner.engine.lock import RecordLock
from shape_provisioner.engine.registry import ResourceRegistry

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from shape_provisioner.engine.types import PlanEntry, RunReport, TeardownReport

__all__ = [
    "Config",
    "ConfigError",
    "Settings",
    "apply",
    "build_graph",
    "engine_from_config",
    "load",
    "load_config",
    "plan",
    "read_record",
    "set_values",
    "teardown",
    "teardown_order",
    "validate",
]


def load(path: Path | str) -> Config:
    """Load a YAML deployment file."""
    return load_config(path)


def build_graph(
    config: Config, targets: Sequence[str] | None = None, *, dependents: bool = False
) -> ResourceRegistry:
    """Register the declared resources and finalize the dependency graph.

    With *targets*, the graph is narrowed to them plus their dependencies
    (or, with ``dependents=True``, plus their dependents).

    Raises:
        DuplicateNameError, UnknownDependencyError, CycleDetectedError,
        UnknownTargetError
    """
    registry = ResourceRegistry(config.resources)
    registry.finalize()
    if targets:
        registry = registry.subset(targets, dependents=dependents)
        registry.finalize()
    return registry


def engine_from_config(config: Config) -> ReconciliationEngine:
    """Build a ``ReconciliationEngine`` from a ``Config`` instance."""
    settings = config.settings
    provider = CommandProvider(
        az_bin=settings.az,
        kubectl_bin=settings.kubectl,
        helm_bin=settings.helm,
        subscription=settings.subscription,
        kube_context=settings.kube_context,
        timeout=settings.command_timeout,
    )
    return ReconciliationEngine(
        handlers=default_handlers(),
        provider=provider,
        store=ConfigStore(config.record_path),
        seed=config.record,
        policy=RetryPolicy(
            attempts=settings.confirm_attempts,
            interval=settings.poll_interval,
            max_backoff=settings.max_backoff,
        ),
    )


def validate(config: Config) -> list[str]:
    """Check the graph and every resource; returns error messages (empty = valid)."""
    return engine_from_config(config).validate(build_graph(config))


def plan(config: Config, targets: Sequence[str] | None = None) -> list[PlanEntry]:
    """Probe every resource and predict what ``apply`` would do."""
    return engine_from_config(config).plan(build_graph(config, targets))


def apply(
    config: Config,
    targets: Sequence[str] | None = None,
    *,
    progress: ProgressCallback | None = None,
) -> RunReport:
    """Reconcile the deployment while holding the record lock.

    *targets* limits the run to those resources and their dependencies.
    """
    resources = build_graph(config, targets)
    engine = engine_from_config(config)
    with RecordLock(config.record_path, wait=config.settings.lock_wait):
        return engine.apply(resources, progress=progress)


def teardown(
    config: Config,
    targets: Sequence[str] | None = None,
    *,
    progress: ProgressCallback | None = None,
) -> TeardownReport:
    """Delete the deployment in reverse order while holding the record lock.

    *targets* limits the run to those resources and their dependents.
    """
    resources = build_graph(config, targets, dependents=True)
    engine = engine_from_config(config)
    with RecordLock(config.record_path, wait=config.settings.lock_wait):
        return engine.teardown(resources, progress=progress)


def teardown_order(config: Config, targets: Sequence[str] | None = None) -> list[str]:
    """Deletion order: dependents before their dependencies."""
    return build_graph(config, targets, dependents=True).teardown_order()


def read_record(config: Config) -> ConfigRecord:
    """Return the current config record (empty when no run has saved one)."""
    return ConfigStore(config.record_path).load()


def set_values(config: Config, values: Mapping[str, str]) -> ConfigRecord:
    """Merge user-supplied *values* into the config record under the record lock.

    Raises:
        ConfigRecordError: A key is not a valid shell variable name, or a
            value cannot be written safely.
    """
    with RecordLock(config.record_path, wait=config.settings.lock_wait):
        return ConfigStore(config.record_path).update(values)
