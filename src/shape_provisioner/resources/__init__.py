"""Managed resource descriptors."""

from shape_provisioner.resources.base import Criticality, ResourceDescriptor
from shape_provisioner.resources.chart import ReleasedChartResource
from shape_provisioner.resources.cluster import ClusterResource, KubeCredentialsResource
from shape_provisioner.resources.kubernetes import CertificateResource, NamespaceResource
from shape_provisioner.resources.network import FirewallRuleResource, StaticIPResource
from shape_provisioner.resources.resource_group import ResourceGroupResource

__all__ = [
    "CertificateResource",
    "ClusterResource",
    "Criticality",
    "FirewallRuleResource",
    "KubeCredentialsResource",
    "NamespaceResource",
    "ReleasedChartResource",
    "ResourceDescriptor",
    "ResourceGroupResource",
    "StaticIPResource",
]
