"""Tests for the config convenience API and engine wiring."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from shape_provisioner.config import (
    apply,
    build_graph,
    engine_from_config,
    read_record,
    set_values,
    teardown,
    teardown_order,
    validate,
)
from shape_provisioner.core.state import ConfigStore
from shape_provisioner.engine.errors import (
    ConfigRecordError,
    CycleDetectedError,
    DuplicateNameError,
    StateLockError,
    UnknownDependencyError,
    UnknownTargetError,
)
from shape_provisioner.engine.lock import RecordLock
from shape_provisioner.engine.types import RunReport, TeardownReport

if TYPE_CHECKING:
    from collections.abc import Callable

    from shape_provisioner.config.schema import Config

_YAML = """\
settings:
  subscription: sub-123
  kube_context: aks
  poll_interval: 2
  confirm_attempts: 4
resources:
  - kind: ResourceGroup
    name: rg
  - kind: Namespace
    name: shape-network
    depends_on: [rg]
  - kind: FirewallRule
    name: ssh
    port: 22
    priority: 100
"""


class TestEngineFromConfig:
    def test_provider_from_settings(self, make_config: Callable[..., Config]) -> None:
        engine = engine_from_config(make_config(_YAML))
        provider = engine._provider
        assert provider is not None
        assert provider.subscription == "sub-123"
        assert provider.kube_context == "aks"

    def test_policy_from_settings(self, make_config: Callable[..., Config]) -> None:
        engine = engine_from_config(make_config(_YAML))
        assert engine._policy.interval == 2.0
        assert engine._policy.attempts == 4

    def test_store_at_record_path(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_YAML)
        engine = engine_from_config(cfg)
        assert engine.store is not None
        assert engine.store.path == cfg.config_dir / ".shape-config"


class TestBuildGraph:
    def test_order(self, make_config: Callable[..., Config]) -> None:
        assert build_graph(make_config(_YAML)).finalize() == ["rg", "ssh", "shape-network"]

    def test_teardown_order_reversed(self, make_config: Callable[..., Config]) -> None:
        assert teardown_order(make_config(_YAML)) == ["shape-network", "ssh", "rg"]

    def test_unknown_dependency(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config("resources:\n  - kind: Namespace\n    name: ns\n    depends_on: [nope]\n")
        with pytest.raises(UnknownDependencyError):
            build_graph(cfg)

    def test_duplicate_name(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(
            "resources:\n  - kind: Namespace\n    name: ns\n  - kind: ResourceGroup\n    name: ns\n"
        )
        with pytest.raises(DuplicateNameError):
            build_graph(cfg)

    def test_cycle(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(
            "resources:\n"
            "  - kind: Namespace\n    name: a\n    depends_on: [b]\n"
            "  - kind: Namespace\n    name: b\n    depends_on: [a]\n"
        )
        with pytest.raises(CycleDetectedError):
            build_graph(cfg)


def test_validate_reports_handler_errors(make_config: Callable[..., Config]) -> None:
    errors = validate(make_config(_YAML))
    assert any("port 22" in e for e in errors)


def test_read_record(make_config: Callable[..., Config]) -> None:
    cfg = make_config(_YAML)
    assert read_record(cfg) == {}
    ConfigStore(cfg.record_path).save({"RESOURCE_GROUP": "rg"})
    assert read_record(cfg) == {"RESOURCE_GROUP": "rg"}


class TestLocking:
    @patch("shape_provisioner.config.engine_from_config")
    def test_apply_holds_lock(
        self, mock_engine: MagicMock, make_config: Callable[..., Config]
    ) -> None:
        cfg = make_config(_YAML)

        def _apply(*_args: object, **_kwargs: object) -> RunReport:
            with pytest.raises(StateLockError), RecordLock(cfg.record_path):
                pass
            return RunReport()

        mock_engine.return_value.apply.side_effect = _apply
        assert apply(cfg) == RunReport()
        mock_engine.return_value.apply.assert_called_once()

    @patch("shape_provisioner.config.engine_from_config")
    def test_teardown_rejected_while_locked(
        self, mock_engine: MagicMock, make_config: Callable[..., Config]
    ) -> None:
        cfg = make_config(_YAML)
        mock_engine.return_value.teardown.return_value = TeardownReport()

        with RecordLock(cfg.record_path), pytest.raises(StateLockError):
            teardown(cfg)
        mock_engine.return_value.teardown.assert_not_called()

    @patch("shape_provisioner.config.engine_from_config")
    def test_invalid_graph_never_takes_lock(
        self, mock_engine: MagicMock, make_config: Callable[..., Config]
    ) -> None:
        cfg = make_config("resources:\n  - kind: Namespace\n    name: ns\n    depends_on: [nope]\n")
        with pytest.raises(UnknownDependencyError):
            apply(cfg)
        assert not (cfg.config_dir / ".shape-config.lock").exists()
        mock_engine.assert_not_called()


class TestTargets:
    def test_apply_targets_bring_dependencies(self, make_config: Callable[..., Config]) -> None:
        graph = build_graph(make_config(_YAML), ["shape-network"])
        assert graph.finalize() == ["rg", "shape-network"]

    def test_teardown_targets_bring_dependents(self, make_config: Callable[..., Config]) -> None:
        assert teardown_order(make_config(_YAML), ["rg"]) == ["shape-network", "rg"]
        assert teardown_order(make_config(_YAML), ["ssh"]) == ["ssh"]

    def test_unknown_target(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(UnknownTargetError, match="nope"):
            build_graph(make_config(_YAML), ["nope"])

    @patch("shape_provisioner.config.engine_from_config")
    def test_apply_runs_the_narrowed_graph(
        self, mock_engine: MagicMock, make_config: Callable[..., Config]
    ) -> None:
        mock_engine.return_value.apply.return_value = RunReport()
        apply(make_config(_YAML), ["ssh"])
        (registry,) = mock_engine.return_value.apply.call_args.args
        assert [d.name for d in registry] == ["ssh"]

    @patch("shape_provisioner.config.engine_from_config")
    def test_teardown_runs_the_narrowed_graph(
        self, mock_engine: MagicMock, make_config: Callable[..., Config]
    ) -> None:
        mock_engine.return_value.teardown.return_value = TeardownReport()
        teardown(make_config(_YAML), ["rg"])
        (registry,) = mock_engine.return_value.teardown.call_args.args
        assert sorted(d.name for d in registry) == ["rg", "shape-network"]


_SEEDED_YAML = """\
record:
  USER_EMAIL: ops@shape.network
  ACME_STAGING: false
resources:
  - kind: ResourceGroup
    name: rg
"""


class TestRecordValues:
    def test_seed_reaches_engine(self, make_config: Callable[..., Config]) -> None:
        engine = engine_from_config(make_config(_SEEDED_YAML))
        assert engine._seed == {"USER_EMAIL": "ops@shape.network", "ACME_STAGING": "false"}

    def test_set_values_merges_into_record(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_YAML)
        ConfigStore(cfg.record_path).save({"RESOURCE_GROUP": "rg"})

        record = set_values(cfg, {"USER_EMAIL": "ops@shape.network"})

        assert record == {"RESOURCE_GROUP": "rg", "USER_EMAIL": "ops@shape.network"}
        assert read_record(cfg) == record

    def test_set_values_rejected_while_locked(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_YAML)
        with RecordLock(cfg.record_path), pytest.raises(StateLockError):
            set_values(cfg, {"USER_EMAIL": "ops@shape.network"})
        assert read_record(cfg) == {}

    def test_set_values_rejects_bad_key(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigRecordError, match="user-email"):
            set_values(make_config(_YAML), {"user-email": "ops@shape.network"})
