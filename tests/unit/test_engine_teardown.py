from __future__ import annotations

from pathlib import Path
from typing import ClassVar

from conftest import DummyResource, FakeClock, InMemoryHandler, dummy

from shape_provisioner.core.state import ConfigStore
from shape_provisioner.engine import ReconciliationEngine, RetryPolicy
from shape_provisioner.engine.registry import HandlerRegistry, ResourceRegistry
from shape_provisioner.engine.types import ExitCode, ResourceState, TeardownOutcome
from shape_provisioner.resources.base import Criticality


class Publisher(DummyResource):
    output_keys: ClassVar[tuple[str, ...]] = ("DNS_FQDN", "STATIC_IP")


def _engine(
    handler: InMemoryHandler, clock: FakeClock, *, store: ConfigStore | None = None
) -> ReconciliationEngine:
    handlers = HandlerRegistry()
    handlers.register("Dummy", handler)
    return ReconciliationEngine(
        handlers=handlers,
        store=store,
        policy=RetryPolicy(attempts=3, interval=5.0),
        sleep=clock.sleep,
        clock=clock,
    )


def _ready(handler: InMemoryHandler, *names: str) -> None:
    for name in names:
        handler.states[name] = ResourceState.READY


def _chain() -> ResourceRegistry:
    return ResourceRegistry([dummy("a"), dummy("b", "a"), dummy("c", "b")])


def test_deletes_in_reverse_dependency_order(handler: InMemoryHandler, clock: FakeClock) -> None:
    _ready(handler, "a", "b", "c")
    engine = _engine(handler, clock)

    assert engine.plan_teardown(_chain()) == ["c", "b", "a"]
    report = engine.teardown(_chain())

    assert handler.deleted() == ["c", "b", "a"]
    assert all(r.outcome == TeardownOutcome.DELETED for r in report.results)
    assert report.exit_code == ExitCode.SUCCESS


def test_teardown_is_idempotent(handler: InMemoryHandler, clock: FakeClock) -> None:
    _ready(handler, "a", "b", "c")
    engine = _engine(handler, clock)
    engine.teardown(_chain())
    handler.calls.clear()

    report = engine.teardown(_chain())

    assert handler.deleted() == []
    assert report.summary()["already-absent"] == 3
    assert report.exit_code == ExitCode.SUCCESS


def test_timeout_marks_failed_and_continues(handler: InMemoryHandler, clock: FakeClock) -> None:
    _ready(handler, "a", "b", "c")
    handler.delete_states["b"] = [ResourceState.READY]
    registry = ResourceRegistry([dummy("a"), dummy("b", "a", delete_timeout=20), dummy("c", "b")])

    report = _engine(handler, clock).teardown(registry)

    failed = report.result("b")
    assert failed.outcome == TeardownOutcome.FAILED
    assert failed.error_type == "ResourceTimeoutError"
    assert report.result("a").outcome == TeardownOutcome.DELETED
    assert clock.now == 20.0
    assert report.exit_code == ExitCode.CRITICAL_FAILURE


def test_waits_for_asynchronous_delete(handler: InMemoryHandler, clock: FakeClock) -> None:
    _ready(handler, "a")
    handler.delete_states["a"] = [ResourceState.FAILED, ResourceState.ABSENT]

    report = _engine(handler, clock).teardown(ResourceRegistry([dummy("a", delete_timeout=60)]))

    assert report.result("a").outcome == TeardownOutcome.DELETED
    assert clock.sleeps == [5.0]


def test_delete_error_is_wrapped_and_teardown_continues(
    handler: InMemoryHandler, clock: FakeClock
) -> None:
    _ready(handler, "a", "b", "c")
    handler.fail_delete.add("c")

    report = _engine(handler, clock).teardown(_chain())

    result = report.result("c")
    assert result.outcome == TeardownOutcome.FAILED
    assert result.error_type == "DeleteFailedError"
    assert "locked by policy" in (result.error or "")
    assert handler.deleted() == ["c", "b", "a"]


def test_advisory_failure_exit_code(handler: InMemoryHandler, clock: FakeClock) -> None:
    _ready(handler, "a", "cert")
    handler.fail_delete.add("cert")
    registry = ResourceRegistry(
        [dummy("a"), dummy("cert", "a", criticality=Criticality.ADVISORY)]
    )

    report = _engine(handler, clock).teardown(registry)

    assert report.exit_code == ExitCode.ADVISORY_WARNINGS


def test_unresolvable_reference_counts_as_absent(
    handler: InMemoryHandler, clock: FakeClock
) -> None:
    registry = ResourceRegistry([dummy("rule", value="${NODE_RESOURCE_GROUP}")])

    report = _engine(handler, clock).teardown(registry)

    assert report.result("rule").outcome == TeardownOutcome.ALREADY_ABSENT
    assert handler.calls == []


def test_removes_published_keys_from_record(
    handler: InMemoryHandler, clock: FakeClock, tmp_path: Path
) -> None:
    store = ConfigStore(tmp_path / ".shape-config")
    store.save({"DNS_FQDN": "node.example", "STATIC_IP": "20.1.2.3", "USER_EMAIL": "a@b.c"})
    _ready(handler, "ip")
    registry = ResourceRegistry([Publisher(name="ip")])

    report = _engine(handler, clock, store=store).teardown(registry)

    assert report.removed_keys == ["DNS_FQDN", "STATIC_IP"]
    assert store.load() == {"USER_EMAIL": "a@b.c"}


def test_failed_delete_keeps_keys(
    handler: InMemoryHandler, clock: FakeClock, tmp_path: Path
) -> None:
    store = ConfigStore(tmp_path / ".shape-config")
    store.save({"DNS_FQDN": "node.example"})
    _ready(handler, "ip")
    handler.fail_delete.add("ip")

    report = _engine(handler, clock, store=store).teardown(ResourceRegistry([Publisher(name="ip")]))

    assert report.removed_keys == []
    assert store.load() == {"DNS_FQDN": "node.example"}
