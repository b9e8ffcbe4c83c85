"""Tests for the YAML deployment loader and settings resolution."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from shape_provisioner.config import build_graph, load
from shape_provisioner.config.loader import ConfigError, load_config
from shape_provisioner.resources import (
    CertificateResource,
    ClusterResource,
    FirewallRuleResource,
    ReleasedChartResource,
    ResourceGroupResource,
)
from shape_provisioner.resources.base import Criticality

if TYPE_CHECKING:
    from collections.abc import Callable

    from shape_provisioner.config.schema import Config

_EXAMPLE = Path(__file__).parents[2] / "examples" / "shape-network.yaml"

_YAML = """\
resources:
  - kind: ResourceGroup
    name: rg
  - kind: Cluster
    name: aks
    resource_group: rg
    depends_on: [rg]
  - kind: FirewallRule
    name: Allow-HTTPS
    port: 443
    priority: 1110
    depends_on: [aks]
"""


class TestLoadConfig:
    def test_kinds_are_discriminated(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_YAML)
        assert [type(r) for r in cfg.resources] == [
            ResourceGroupResource,
            ClusterResource,
            FirewallRuleResource,
        ]
        assert cfg.resources[1].depends_on == ["rg"]

    def test_defaults(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_YAML)
        assert cfg.settings.poll_interval == 5.0
        assert cfg.settings.confirm_attempts == 3
        rule = cfg.resources[2]
        assert rule.resource_group == "${NODE_RESOURCE_GROUP}"
        assert rule.criticality == Criticality.ADVISORY

    def test_empty_file(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config("")
        assert cfg.resources == []

    def test_null_resources(self, make_config: Callable[..., Config]) -> None:
        assert make_config("resources:\n").resources == []

    def test_config_dir_set_to_parent(self, tmp_path: Path) -> None:
        f = tmp_path / "sub" / "deploy.yaml"
        f.parent.mkdir()
        f.write_text(_YAML)
        cfg = load_config(f)
        assert cfg.config_dir == f.parent
        assert cfg.record_path == f.parent / ".shape-config"

    def test_absolute_record_path(self, make_config: Callable[..., Config], tmp_path: Path) -> None:
        target = tmp_path / "elsewhere" / "record"
        cfg = make_config(f"settings:\n  record_path: {target}\n")
        assert cfg.record_path == target


class TestLoadConfigErrors:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Failed to read"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="Failed to read"):
            make_config("resources: [unclosed\n")

    def test_top_level_list(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="expected a mapping"):
            make_config("- kind: ResourceGroup\n  name: rg\n")

    def test_unknown_kind(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="Bogus"):
            make_config("resources:\n  - kind: Bogus\n    name: x\n")

    def test_missing_kind(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError):
            make_config("resources:\n  - name: x\n")

    def test_unknown_field(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="colour"):
            make_config("resources:\n  - kind: ResourceGroup\n    name: rg\n    colour: red\n")

    def test_invalid_name(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError):
            make_config("resources:\n  - kind: Namespace\n    name: '-bad name'\n")

    def test_invalid_dns_label(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError):
            make_config("resources:\n  - kind: StaticIP\n    name: ip\n    dns_label: Bad_Label\n")

    def test_port_out_of_range(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError):
            make_config(
                "resources:\n  - kind: FirewallRule\n    name: r\n    port: 70000\n"
                "    priority: 1000\n"
            )

    def test_unknown_setting(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="Unknown settings: bogus"):
            make_config("settings:\n  bogus: 1\n")

    def test_invalid_setting_value(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError):
            make_config("settings:\n  confirm_attempts: 0\n")


class TestSettingsResolution:
    def test_env_var(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SHAPE_POLL_INTERVAL", "2")
        assert make_config(_YAML).settings.poll_interval == 2.0

    def test_yaml_wins_over_env(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SHAPE_POLL_INTERVAL", "2")
        cfg = make_config("settings:\n  poll_interval: 1\n")
        assert cfg.settings.poll_interval == 1.0

    def test_dotenv(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config(_YAML, dotenv="SHAPE_SUBSCRIPTION=sub-123\n")
        assert cfg.settings.subscription == "sub-123"

    def test_env_wins_over_dotenv(
        self, make_config: Callable[..., Config], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SHAPE_KUBE_CONTEXT", "from-env")
        cfg = make_config(_YAML, dotenv="SHAPE_KUBE_CONTEXT=from-dotenv\n")
        assert cfg.settings.kube_context == "from-env"

    def test_dotenv_with_bom(self, make_config: Callable[..., Config], tmp_path: Path) -> None:
        (tmp_path / ".env").write_bytes(b"\xef\xbb\xbfSHAPE_AZ=/opt/az\n")
        assert make_config(_YAML).settings.az == "/opt/az"


class TestExampleDeployment:
    def test_loads_and_orders(self) -> None:
        cfg = load(_EXAMPLE)
        order = build_graph(cfg).finalize()

        assert len(order) == 13
        assert order[0] == "rg-shape-network"
        assert order[-1] == "shape-node-tls"
        assert order.index("shape-snow-mainnet-static-ip") < order.index("ingress-nginx")
        assert order.index("cert-manager") < order.index("shape-network-node")

    def test_chart_values_reference_outputs(self) -> None:
        cfg = load(_EXAMPLE)
        node = next(r for r in cfg.resources if r.name == "shape-network-node")
        assert isinstance(node, ReleasedChartResource)
        assert node.values["ingress.hostname"] == "${DNS_FQDN}"
        cert = cfg.resources[-1]
        assert isinstance(cert, CertificateResource)
        assert cert.criticality == Criticality.ADVISORY
        assert node.values["ssl.email"] == "${USER_EMAIL}"


class TestRecordSection:
    def test_values_are_strings(self, make_config: Callable[..., Config]) -> None:
        cfg = make_config("record:\n  USER_EMAIL: ops@shape.network\n  REPLICAS: 2\n  TLS: true\n")
        assert cfg.record == {"USER_EMAIL": "ops@shape.network", "REPLICAS": "2", "TLS": "true"}

    def test_defaults_to_empty(self, make_config: Callable[..., Config]) -> None:
        assert make_config("record:\n").record == {}
        assert make_config("resources: []\n").record == {}

    def test_invalid_key(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError, match="user-email"):
            make_config("record:\n  user-email: ops@shape.network\n")

    def test_not_a_mapping(self, make_config: Callable[..., Config]) -> None:
        with pytest.raises(ConfigError):
            make_config("record:\n  - USER_EMAIL\n")
