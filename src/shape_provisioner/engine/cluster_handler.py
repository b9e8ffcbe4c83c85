"""AKS cluster and kubeconfig credential handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shape_provisioner.core.provider import CommandError, ResourceNotFoundError
from shape_provisioner.engine.errors import ProbeUnavailableError
from shape_provisioner.engine.handlers import ResourceHandler
from shape_provisioner.engine.resource_group_handler import provisioning_state
from shape_provisioner.engine.types import ProbeResult, ResourceState

if TYPE_CHECKING:
    from shape_provisioner.engine.handlers import EngineContext
    from shape_provisioner.resources.cluster import ClusterResource, KubeCredentialsResource

logger = logging.getLogger(__name__)


class ClusterHandler(ResourceHandler["ClusterResource"]):
    """Handler for AKS clusters.

    Creation and deletion are issued with ``--no-wait``; the engine polls
    ``provisioningState`` until the cluster settles.
    """

    def _show(self, ctx: EngineContext, desired: ClusterResource) -> dict | None:
        return ctx.require_provider().az_show(
            "aks",
            "show",
            "--resource-group",
            desired.resource_group,
            "--name",
            desired.name,
        )

    def probe(self, ctx: EngineContext, desired: ClusterResource) -> ProbeResult:
        data = self._show(ctx, desired)
        if data is None:
            return ProbeResult(state=ResourceState.ABSENT)
        state = provisioning_state(data)
        outputs = {"AKS_CLUSTER": desired.name}
        node_rg = data.get("nodeResourceGroup")
        if node_rg:
            outputs["NODE_RESOURCE_GROUP"] = node_rg
        return ProbeResult(state=state, outputs=outputs)

    def create(self, ctx: EngineContext, desired: ClusterResource) -> None:
        args = [
            "aks",
            "create",
            "--resource-group",
            desired.resource_group,
            "--name",
            desired.name,
            "--location",
            desired.location,
            "--node-count",
            str(desired.node_count),
            "--node-vm-size",
            desired.node_size,
            "--enable-managed-identity",
            "--generate-ssh-keys",
            "--no-wait",
        ]
        if desired.kubernetes_version:
            args.extend(["--kubernetes-version", desired.kubernetes_version])
        ctx.require_provider().az(*args)

    def delete(self, ctx: EngineContext, desired: ClusterResource) -> None:
        ctx.require_provider().az(
            "aks",
            "delete",
            "--resource-group",
            desired.resource_group,
            "--name",
            desired.name,
            "--yes",
            "--no-wait",
        )


class KubeCredentialsHandler(ResourceHandler["KubeCredentialsResource"]):
    """Handler for the kubeconfig context of an AKS cluster."""

    def probe(self, ctx: EngineContext, desired: KubeCredentialsResource) -> ProbeResult:
        provider = ctx.require_provider()
        try:
            result = provider.kubectl("config", "get-contexts", "-o", "name")
        except CommandError as exc:
            raise ProbeUnavailableError(f"Cannot read kubeconfig: {exc}") from exc
        contexts = {line.strip() for line in result.stdout.splitlines() if line.strip()}
        if desired.cluster not in contexts:
            return ProbeResult(state=ResourceState.ABSENT)

        try:
            provider.run(
                [provider.kubectl_bin, "--context", desired.cluster, "cluster-info"], timeout=60
            )
        except CommandError as exc:
            logger.debug("Context %s present but cluster not answering: %s", desired.cluster, exc)
            return ProbeResult(state=ResourceState.CREATING)
        return ProbeResult(state=ResourceState.READY, outputs={"KUBE_CONTEXT": desired.cluster})

    def create(self, ctx: EngineContext, desired: KubeCredentialsResource) -> None:
        ctx.require_provider().az(
            "aks",
            "get-credentials",
            "--resource-group",
            desired.resource_group,
            "--name",
            desired.cluster,
            "--overwrite-existing",
        )

    def delete(self, ctx: EngineContext, desired: KubeCredentialsResource) -> None:
        try:
            ctx.require_provider().kubectl("config", "delete-context", desired.cluster)
        except ResourceNotFoundError:
            logger.debug("Context %s already removed", desired.cluster)
