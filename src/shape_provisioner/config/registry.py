"""Default handler registry factory."""

from __future__ import annotations

from shape_provisioner.engine.chart_handler import ReleasedChartHandler
from shape_provisioner.engine.cluster_handler import ClusterHandler, KubeCredentialsHandler
from shape_provisioner.engine.kubernetes_handler import CertificateHandler, NamespaceHandler
from shape_provisioner.engine.network_handler import FirewallRuleHandler, StaticIPHandler
from shape_provisioner.engine.registry import HandlerRegistry
from shape_provisioner.engine.resource_group_handler import ResourceGroupHandler


def default_handlers() -> HandlerRegistry:
    """Create a fresh registry with a handler for every built-in resource kind."""
    registry = HandlerRegistry()
    registry.register("ResourceGroup", ResourceGroupHandler())
    registry.register("Cluster", ClusterHandler())
    registry.register("KubeCredentials", KubeCredentialsHandler())
    registry.register("StaticIP", StaticIPHandler())
    registry.register("FirewallRule", FirewallRuleHandler())
    registry.register("Namespace", NamespaceHandler())
    registry.register("ReleasedChart", ReleasedChartHandler())
    registry.register("Certificate", CertificateHandler())
    return registry
