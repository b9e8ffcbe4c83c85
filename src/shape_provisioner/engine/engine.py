"""Reconciliation engine: apply and teardown over a resource registry."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from shape_provisioner.core.state import merge
from shape_provisioner.engine.errors import (
    CreateFailedError,
    DeleteFailedError,
    EngineError,
    ProbeUnavailableError,
    ResourceTimeoutError,
    RunCanceled,
    UnresolvedInputError,
)
from shape_provisioner.engine.handlers import EngineContext
from shape_provisioner.engine.types import (
    Action,
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
from shape_provisioner.engine.variables import resolve_descriptor
from shape_provisioner.resources.base import Criticality

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Literal["start", "done"]], None]

if TYPE_CHECKING:
    from collections.abc import Mapping

    from shape_provisioner.core.provider import CommandProvider
    from shape_provisioner.core.state import ConfigStore
    from shape_provisioner.engine.handlers import ResourceHandler
    from shape_provisioner.engine.registry import HandlerRegistry, ResourceRegistry
    from shape_provisioner.resources.base import ResourceDescriptor


@dataclass(frozen=True)
class RetryPolicy:
    """Bounds for re-probing.

    ``attempts`` probes are made to confirm readiness of resources without a
    ``ready_timeout`` and to ride out ``ProbeUnavailableError``. The wait
    between attempts doubles from ``interval`` up to ``max_backoff``.
    Deadline-based waits poll every ``interval`` seconds.
    """

    attempts: int = 3
    interval: float = 5.0
    max_backoff: float = 30.0

    def backoff(self, attempt: int) -> float:
        return min(self.interval * (2 ** (attempt - 1)), self.max_backoff)


class ReconciliationEngine:
    """Walks a resource registry in dependency order.

    For each resource: probe; ``ready`` is a no-op, ``absent`` is created and
    re-probed until ready. A failed critical resource halts the run; a failed
    advisory resource is a warning. Nothing is rolled back.
    """

    def __init__(
        self,
        *,
        handlers: HandlerRegistry,
        provider: CommandProvider | None = None,
        store: ConfigStore | None = None,
        seed: Mapping[str, str] | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._handlers = handlers
        self._provider = provider
        self._store = store
        self._seed = dict(seed or {})
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    @property
    def store(self) -> ConfigStore | None:
        return self._store

    def _ctx(self, outputs: Mapping[str, str]) -> EngineContext:
        return EngineContext(provider=self._provider, outputs=dict(outputs))

    def _load_record(self) -> dict[str, str]:
        """The stored record with the declared seed values laid over it."""
        stored = self._store.load() if self._store is not None else {}
        return merge(stored, self._seed)

    def validate(self, resources: ResourceRegistry) -> list[str]:
        """Finalize the graph and collect per-resource validation errors.

        Registration-time errors (unknown dependency, cycle) raise.
        """
        resources.finalize()
        errors: list[str] = []
        for desired in resources:
            handler = self._handlers.get(desired.kind)
            errors.extend(f"{desired.name}: {e}" for e in handler.validate(desired))
        return errors

    # ------------------------------------------------------------------
    # Probing and waiting
    # ------------------------------------------------------------------

    @staticmethod
    def _call_probe(
        handler: ResourceHandler[Any], ctx: EngineContext, desired: ResourceDescriptor
    ) -> ProbeResult | ResourceState:
        """A probe that errors without an answer about the resource is unavailable."""
        try:
            return handler.probe(ctx, desired)
        except EngineError:
            raise
        except Exception as exc:
            raise ProbeUnavailableError(f"Probe of '{desired.name}' failed: {exc}") from exc

    def _probe(
        self, handler: ResourceHandler[Any], ctx: EngineContext, desired: ResourceDescriptor
    ) -> ProbeResult:
        """Probe with retries for an unreachable backend."""
        attempts = max(self._policy.attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                observed = self._call_probe(handler, ctx, desired)
            except ProbeUnavailableError as exc:
                if attempt == attempts:
                    raise
                wait = self._policy.backoff(attempt)
                logger.warning(
                    "Probe of %s unavailable (attempt %d/%d), retrying in %gs: %s",
                    desired.name,
                    attempt,
                    attempts,
                    wait,
                    exc,
                )
                self._sleep(wait)
                continue
            if isinstance(observed, ResourceState):
                observed = ProbeResult(state=observed)
            logger.debug("Probed %s: %s", desired.name, observed.state.value)
            return observed
        raise AssertionError("unreachable")  # pragma: no cover

    def _wait_for(
        self,
        handler: ResourceHandler[Any],
        ctx: EngineContext,
        desired: ResourceDescriptor,
        target: ResourceState,
        timeout: float | None,
    ) -> ProbeResult:
        """Re-probe until *target* is observed.

        With a *timeout*, poll at the policy interval until the deadline;
        without one, make ``attempts`` probes with capped backoff.
        """
        if timeout is None:
            attempts = max(self._policy.attempts, 1)
            waited = 0.0
            for attempt in range(1, attempts + 1):
                result = self._probe(handler, ctx, desired)
                if result.state == target:
                    return result
                self._check_not_failed(desired, result, target)
                if attempt < attempts:
                    wait = self._policy.backoff(attempt)
                    waited += wait
                    self._sleep(wait)
            raise ResourceTimeoutError(desired.name, target.value, waited)

        deadline = self._clock() + timeout
        while True:
            result = self._probe(handler, ctx, desired)
            if result.state == target:
                return result
            self._check_not_failed(desired, result, target)
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ResourceTimeoutError(desired.name, target.value, timeout)
            logger.debug(
                "Waiting for %s to become %s (%gs left)", desired.name, target.value, remaining
            )
            self._sleep(min(self._policy.interval, remaining))

    @staticmethod
    def _check_not_failed(
        desired: ResourceDescriptor, result: ProbeResult, target: ResourceState
    ) -> None:
        if target == ResourceState.READY and result.state == ResourceState.FAILED:
            raise CreateFailedError(f"Resource '{desired.name}' reported a failed state")

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def plan(self, resources: ResourceRegistry) -> list[PlanEntry]:
        """Probe every resource (without changing anything) and predict actions.

        Dependents of a resource that will be created are predicted as
        ``create`` without probing, since their inputs do not exist yet.
        """
        order = resources.finalize()
        outputs = self._load_record()
        entries: list[PlanEntry] = []
        pending: set[str] = set()

        for name in order:
            desired = resources.get(name)
            handler = self._handlers.get(desired.kind)
            base = {"name": name, "kind": desired.kind, "criticality": desired.criticality}

            blocked = sorted(set(desired.depends_on) & pending)
            if blocked:
                pending.add(name)
                entries.append(
                    PlanEntry(
                        **base,
                        action=Action.CREATE,
                        detail=f"after {', '.join(blocked)}",
                    )
                )
                continue

            try:
                resolved = resolve_descriptor(desired, outputs)
                result = self._probe(handler, self._ctx(outputs), resolved)
            except EngineError as exc:
                entries.append(PlanEntry(**base, action=Action.UNKNOWN, detail=str(exc)))
                continue

            match result.state:
                case ResourceState.READY:
                    action = Action.NOOP
                    outputs.update(result.outputs)
                case ResourceState.CREATING:
                    action = Action.WAIT
                case ResourceState.ABSENT:
                    action = Action.CREATE
                    pending.add(name)
                case _:
                    action = Action.UNKNOWN
            entries.append(PlanEntry(**base, action=action, state=result.state))

        return entries

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def _reconcile(
        self, desired: ResourceDescriptor, outputs: Mapping[str, str]
    ) -> tuple[Outcome, ProbeResult]:
        handler = self._handlers.get(desired.kind)
        resolved = resolve_descriptor(desired, outputs)
        ctx = self._ctx(outputs)

        observed = self._probe(handler, ctx, resolved)
        match observed.state:
            case ResourceState.READY:
                return Outcome.NOOP, observed
            case ResourceState.FAILED:
                raise CreateFailedError(
                    f"Resource '{desired.name}' exists in a failed state; fix or delete it first"
                )
            case ResourceState.CREATING:
                logger.info("%s is already being created, waiting", desired.name)
                ready = self._wait_for(
                    handler, ctx, resolved, ResourceState.READY, desired.ready_timeout
                )
                return Outcome.NOOP, ready

        logger.info("Creating %s %s", desired.kind, desired.name)
        try:
            handler.create(ctx, resolved)
        except EngineError:
            raise
        except Exception as exc:
            raise CreateFailedError(f"Failed to create '{desired.name}': {exc}") from exc

        ready = self._wait_for(handler, ctx, resolved, ResourceState.READY, desired.ready_timeout)
        return Outcome.CREATED, ready

    def apply(
        self, resources: ResourceRegistry, *, progress: ProgressCallback | None = None
    ) -> RunReport:
        """Reconcile every resource; returns a report, never raises for resource failures.

        Raises:
            DuplicateNameError, UnknownDependencyError, CycleDetectedError:
                before any external call is made.
            RunCanceled: on Ctrl-C, carrying the partial report.
        """
        order = resources.finalize()
        for name in order:
            self._handlers.get(resources.get(name).kind)  # fail early if unknown

        stored = self._store.load() if self._store is not None else {}
        outputs = merge(stored, self._seed)
        report = RunReport()
        logger.info("Reconciling %d resources", len(order))

        try:
            for name in order:
                desired = resources.get(name)
                if report.halted_on is not None:
                    report.results.append(
                        ResourceResult(
                            name=name,
                            kind=desired.kind,
                            criticality=desired.criticality,
                            outcome=Outcome.SKIPPED,
                            skipped_because=report.halted_on,
                        )
                    )
                    continue

                if progress:
                    progress(name, "start")
                result = self._apply_one(desired, outputs)
                report.results.append(result)
                if progress:
                    progress(name, "done")

                if result.outcome != Outcome.FAILED:
                    outputs.update(result.outputs)
                    report.outputs.update(result.outputs)
                elif desired.criticality == Criticality.CRITICAL:
                    report.halted_on = name
                    report.dependents_of_halt = sorted(resources.graph.dependents(name))
                    logger.error("Critical resource %s failed, halting: %s", name, result.error)
                else:
                    logger.warning(
                        "Advisory resource %s failed, continuing: %s", name, result.error
                    )
        except KeyboardInterrupt as e:  # pragma: no cover
            raise RunCanceled(report) from e

        if self._store is not None and report.halted_on is None:
            merged = merge(merge(stored, self._seed), report.outputs)
            if merged != stored or not self._store.exists():
                self._store.save(merged)

        summary = report.summary()
        logger.info(
            "Run finished: %d created, %d no-op, %d failed, %d skipped",
            summary["created"],
            summary["no-op"],
            summary["failed"],
            summary["skipped"],
        )
        return report

    def _apply_one(self, desired: ResourceDescriptor, outputs: Mapping[str, str]) -> ResourceResult:
        base = {"name": desired.name, "kind": desired.kind, "criticality": desired.criticality}
        try:
            outcome, observed = self._reconcile(desired, outputs)
        except EngineError as exc:
            return ResourceResult(
                **base,
                outcome=Outcome.FAILED,
                state=ResourceState.FAILED,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        logger.info("%s: %s", desired.name, outcome.value)
        return ResourceResult(
            **base, outcome=outcome, state=observed.state, outputs=dict(observed.outputs)
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def plan_teardown(self, resources: ResourceRegistry) -> list[str]:
        """Deletion order: dependents before their dependencies."""
        return resources.teardown_order()

    def teardown(
        self, resources: ResourceRegistry, *, progress: ProgressCallback | None = None
    ) -> TeardownReport:
        """Delete every resource in reverse dependency order.

        Absent resources count as success. A failure or timeout marks that
        resource failed and teardown moves on to the next one.
        """
        order = self.plan_teardown(resources)
        for name in order:
            self._handlers.get(resources.get(name).kind)

        outputs = self._load_record()
        report = TeardownReport()
        released: set[str] = set()
        logger.info("Tearing down %d resources", len(order))

        try:
            for name in order:
                desired = resources.get(name)
                if progress:
                    progress(name, "start")
                result = self._teardown_one(desired, outputs)
                report.results.append(result)
                if progress:
                    progress(name, "done")
                if result.outcome != TeardownOutcome.FAILED:
                    released.update(desired.output_keys)
        except KeyboardInterrupt as e:  # pragma: no cover
            raise RunCanceled(report) from e

        if self._store is not None and released:
            report.removed_keys = self._store.remove(released)

        summary = report.summary()
        logger.info(
            "Teardown finished: %d deleted, %d already absent, %d failed",
            summary["deleted"],
            summary["already-absent"],
            summary["failed"],
        )
        return report

    def _teardown_one(
        self, desired: ResourceDescriptor, outputs: Mapping[str, str]
    ) -> TeardownResult:
        base = {"name": desired.name, "kind": desired.kind, "criticality": desired.criticality}
        handler = self._handlers.get(desired.kind)
        try:
            resolved = resolve_descriptor(desired, outputs)
        except UnresolvedInputError as exc:
            # Keys leave the record only once their producer is gone, and a
            # resource lives inside the producer it references.
            logger.info(
                "%s: already absent (unpublished outputs: %s)", desired.name, ", ".join(exc.keys)
            )
            return TeardownResult(**base, outcome=TeardownOutcome.ALREADY_ABSENT)

        ctx = self._ctx(outputs)
        try:
            observed = self._probe(handler, ctx, resolved)
            if observed.state == ResourceState.ABSENT:
                logger.info("%s: already absent", desired.name)
                return TeardownResult(**base, outcome=TeardownOutcome.ALREADY_ABSENT)

            logger.info("Deleting %s %s", desired.kind, desired.name)
            try:
                handler.delete(ctx, resolved)
            except EngineError:
                raise
            except Exception as exc:
                raise DeleteFailedError(f"Failed to delete '{desired.name}': {exc}") from exc

            self._wait_for(handler, ctx, resolved, ResourceState.ABSENT, desired.delete_timeout)
        except EngineError as exc:
            logger.warning("Teardown of %s failed, continuing: %s", desired.name, exc)
            return TeardownResult(
                **base,
                outcome=TeardownOutcome.FAILED,
                error=str(exc),
                error_type=type(exc).__name__,
            )

        logger.info("%s: deleted", desired.name)
        return TeardownResult(**base, outcome=TeardownOutcome.DELETED)
