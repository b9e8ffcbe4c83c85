"""Engine types (probe results, plan entries, run and teardown reports)."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, Field

from shape_provisioner.resources.base import Criticality


class ResourceState(str, Enum):
    ABSENT = "absent"
    CREATING = "creating"
    READY = "ready"
    FAILED = "failed"


class Action(str, Enum):
    CREATE = "create"
    WAIT = "wait"
    NOOP = "no-op"
    UNKNOWN = "unknown"


class Outcome(str, Enum):
    NOOP = "no-op"
    CREATED = "created"
    FAILED = "failed"
    SKIPPED = "skipped"


class TeardownOutcome(str, Enum):
    ALREADY_ABSENT = "already-absent"
    DELETED = "deleted"
    FAILED = "failed"


class ExitCode(IntEnum):
    SUCCESS = 0
    CRITICAL_FAILURE = 1
    ADVISORY_WARNINGS = 2


class ProbeResult(BaseModel):
    """What a probe observed: a state plus any values the resource exposes."""

    state: ResourceState
    outputs: dict[str, str] = Field(default_factory=dict)


class PlanEntry(BaseModel):
    name: str
    kind: str
    criticality: Criticality
    action: Action
    state: ResourceState | None = None
    detail: str | None = None


class ResourceResult(BaseModel):
    name: str
    kind: str
    criticality: Criticality
    outcome: Outcome
    state: ResourceState | None = None
    outputs: dict[str, str] = Field(default_factory=dict)
    error: str | None = None
    error_type: str | None = None
    skipped_because: str | None = None


def _exit_code(failed_criticalities: list[Criticality]) -> ExitCode:
    if Criticality.CRITICAL in failed_criticalities:
        return ExitCode.CRITICAL_FAILURE
    if failed_criticalities:
        return ExitCode.ADVISORY_WARNINGS
    return ExitCode.SUCCESS


class RunReport(BaseModel):
    """Per-resource outcome of one reconciliation run."""

    results: list[ResourceResult] = Field(default_factory=list)
    outputs: dict[str, str] = Field(default_factory=dict)
    halted_on: str | None = None
    dependents_of_halt: list[str] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        counts = {o.value: 0 for o in Outcome}
        for r in self.results:
            counts[r.outcome.value] += 1
        return counts

    def result(self, name: str) -> ResourceResult:
        for r in self.results:
            if r.name == name:
                return r
        raise KeyError(name)

    @property
    def failed(self) -> list[ResourceResult]:
        return [r for r in self.results if r.outcome == Outcome.FAILED]

    @property
    def warnings(self) -> list[ResourceResult]:
        """Failed advisory resources; the run carried on past them."""
        return [r for r in self.failed if r.criticality == Criticality.ADVISORY]

    @property
    def skipped(self) -> list[ResourceResult]:
        return [r for r in self.results if r.outcome == Outcome.SKIPPED]

    @property
    def exit_code(self) -> ExitCode:
        return _exit_code([r.criticality for r in self.failed])


class TeardownResult(BaseModel):
    name: str
    kind: str
    criticality: Criticality
    outcome: TeardownOutcome
    error: str | None = None
    error_type: str | None = None


class TeardownReport(BaseModel):
    """Per-resource outcome of a teardown; failures are aggregated, never fatal."""

    results: list[TeardownResult] = Field(default_factory=list)
    removed_keys: list[str] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        counts = {o.value: 0 for o in TeardownOutcome}
        for r in self.results:
            counts[r.outcome.value] += 1
        return counts

    def result(self, name: str) -> TeardownResult:
        for r in self.results:
            if r.name == name:
                return r
        raise KeyError(name)

    @property
    def failed(self) -> list[TeardownResult]:
        return [r for r in self.results if r.outcome == TeardownOutcome.FAILED]

    @property
    def exit_code(self) -> ExitCode:
        return _exit_code([r.criticality for r in self.failed])
