"""AKS cluster and kubectl credential descriptors."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from shape_provisioner.resources.base import ResourceDescriptor


class ClusterResource(ResourceDescriptor):
    """A managed AKS cluster.

    Cluster creation is asynchronous on the Azure side, so the engine polls
    until ``provisioningState`` settles, up to ``ready_timeout``.
    """

    plan_priority: ClassVar[int] = 10
    output_keys: ClassVar[tuple[str, ...]] = ("AKS_CLUSTER", "NODE_RESOURCE_GROUP")

    kind: Literal["Cluster"] = "Cluster"
    resource_group: str
    location: str = "eastus2"
    node_count: int = Field(default=1, ge=1)
    node_size: str = "Standard_D2s_v3"
    kubernetes_version: str | None = None
    ready_timeout: float | None = Field(default=1800.0, gt=0)
    delete_timeout: float = 1800.0


class KubeCredentialsResource(ResourceDescriptor):
    """kubectl credentials for an AKS cluster, merged into the local kubeconfig."""

    plan_priority: ClassVar[int] = 20
    output_keys: ClassVar[tuple[str, ...]] = ("KUBE_CONTEXT",)

    kind: Literal["KubeCredentials"] = "KubeCredentials"
    cluster: str
    resource_group: str
    delete_timeout: float = 60.0
