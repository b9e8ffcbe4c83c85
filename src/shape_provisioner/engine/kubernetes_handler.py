"""Namespace and cert-manager certificate handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from shape_provisioner.core.provider import ResourceNotFoundError
from shape_provisioner.engine.handlers import ResourceHandler
from shape_provisioner.engine.types import ProbeResult, ResourceState

if TYPE_CHECKING:
    from shape_provisioner.engine.handlers import EngineContext
    from shape_provisioner.resources.kubernetes import CertificateResource, NamespaceResource

logger = logging.getLogger(__name__)


class NamespaceHandler(ResourceHandler["NamespaceResource"]):
    """Handler for Kubernetes namespaces."""

    def probe(self, ctx: EngineContext, desired: NamespaceResource) -> ProbeResult:
        data = ctx.require_provider().kubectl_get("namespace", desired.name)
        if data is None:
            return ProbeResult(state=ResourceState.ABSENT)
        phase = (data.get("status") or {}).get("phase", "Active")
        if phase == "Active":
            return ProbeResult(state=ResourceState.READY)
        # Terminating: still present, will go away on its own.
        return ProbeResult(state=ResourceState.CREATING)

    def create(self, ctx: EngineContext, desired: NamespaceResource) -> None:
        ctx.require_provider().kubectl("create", "namespace", desired.name)

    def delete(self, ctx: EngineContext, desired: NamespaceResource) -> None:
        try:
            ctx.require_provider().kubectl("delete", "namespace", desired.name, "--wait=false")
        except ResourceNotFoundError:
            logger.debug("Namespace %s already deleted", desired.name)


def certificate_ready(data: dict) -> bool:
    """True when the cert-manager ``Ready`` condition is ``True``."""
    conditions = (data.get("status") or {}).get("conditions") or []
    return any(c.get("type") == "Ready" and c.get("status") == "True" for c in conditions)


class CertificateHandler(ResourceHandler["CertificateResource"]):
    """Handler for cert-manager certificates.

    cert-manager creates the ``Certificate`` from the ingress annotations, so
    ``create`` does nothing and the engine simply waits for issuance.
    """

    def probe(self, ctx: EngineContext, desired: CertificateResource) -> ProbeResult:
        data = ctx.require_provider().kubectl_get(
            "certificate", desired.certificate_name, "--namespace", desired.namespace
        )
        if data is None:
            return ProbeResult(state=ResourceState.ABSENT)
        if certificate_ready(data):
            return ProbeResult(state=ResourceState.READY)
        return ProbeResult(state=ResourceState.CREATING)

    def create(self, ctx: EngineContext, desired: CertificateResource) -> None:
        logger.info(
            "Waiting for cert-manager to issue %s/%s",
            desired.namespace,
            desired.certificate_name,
        )

    def delete(self, ctx: EngineContext, desired: CertificateResource) -> None:
        ctx.require_provider().kubectl(
            "delete",
            "certificate",
            desired.certificate_name,
            "--namespace",
            desired.namespace,
            "--ignore-not-found",
        )
