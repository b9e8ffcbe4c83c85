"""Shared fixtures for unit tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Literal

import pytest

from shape_provisioner.config import load
from shape_provisioner.engine.errors import ProbeUnavailableError
from shape_provisioner.engine.handlers import EngineContext, ResourceHandler
from shape_provisioner.engine.types import ProbeResult, ResourceState
from shape_provisioner.resources.base import ResourceDescriptor

if TYPE_CHECKING:
    from pathlib import Path

    from shape_provisioner.config.schema import Config

_SHAPE_ENV_VARS = (
    "SHAPE_LOG",
    "SHAPE_RECORD_PATH",
    "SHAPE_COMMAND_TIMEOUT",
    "SHAPE_POLL_INTERVAL",
    "SHAPE_CONFIRM_ATTEMPTS",
    "SHAPE_SUBSCRIPTION",
    "SHAPE_KUBE_CONTEXT",
    "SHAPE_AZ",
    "SHAPE_KUBECTL",
    "SHAPE_HELM",
    "SHAPE_MAX_BACKOFF",
    "SHAPE_LOCK_WAIT",
    "NO_COLOR",
)


@pytest.fixture(autouse=True)
def _clean_shape_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove SHAPE_* env vars so unit tests don't leak host config."""
    for var in _SHAPE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


class DummyResource(ResourceDescriptor):
    kind: Literal["Dummy"] = "Dummy"
    value: str = ""


class InMemoryHandler(ResourceHandler[DummyResource]):
    """Handler backed by a dict of name -> state.

    ``create_states`` scripts what successive probes report after a create
    (default: ready at once). ``fail_create`` and ``unavailable`` inject
    failures for named resources.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.states: dict[str, ResourceState] = {}
        self.outputs: dict[str, dict[str, str]] = {}
        self.create_states: dict[str, list[ResourceState]] = {}
        self.delete_states: dict[str, list[ResourceState]] = {}
        self.fail_create: set[str] = set()
        self.fail_delete: set[str] = set()
        self.unavailable: dict[str, int] = {}
        self.seen_values: dict[str, str] = {}
        self.scripted: dict[str, list[ResourceState]] = {}

    def probe(self, ctx: EngineContext, desired: DummyResource) -> ProbeResult:
        _ = ctx
        self.calls.append(("probe", desired.name))
        self.seen_values[desired.name] = desired.value
        if self.unavailable.get(desired.name, 0) > 0:
            self.unavailable[desired.name] -= 1
            raise ProbeUnavailableError(f"{desired.name}: backend down")

        script = self.scripted.get(desired.name)
        if script:
            self.states[desired.name] = script.pop(0)
        state = self.states.get(desired.name, ResourceState.ABSENT)
        outputs = self.outputs.get(desired.name, {}) if state == ResourceState.READY else {}
        return ProbeResult(state=state, outputs=outputs)

    def create(self, ctx: EngineContext, desired: DummyResource) -> None:
        _ = ctx
        self.calls.append(("create", desired.name))
        if desired.name in self.fail_create:
            raise RuntimeError("quota exceeded")
        if desired.name in self.create_states:
            self.scripted[desired.name] = list(self.create_states[desired.name])
        else:
            self.states[desired.name] = ResourceState.READY

    def delete(self, ctx: EngineContext, desired: DummyResource) -> None:
        _ = ctx
        self.calls.append(("delete", desired.name))
        if desired.name in self.fail_delete:
            raise RuntimeError("locked by policy")
        if desired.name in self.delete_states:
            self.scripted[desired.name] = list(self.delete_states[desired.name])
        else:
            self.states.pop(desired.name, None)

    def created(self) -> list[str]:
        return [name for op, name in self.calls if op == "create"]

    def deleted(self) -> list[str]:
        return [name for op, name in self.calls if op == "delete"]


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def handler() -> InMemoryHandler:
    return InMemoryHandler()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def dummy(name: str, *deps: str, **kwargs: object) -> DummyResource:
    return DummyResource(name=name, depends_on=list(deps), **kwargs)

