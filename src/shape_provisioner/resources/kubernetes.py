"""In-cluster Kubernetes object descriptors."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from shape_provisioner.resources.base import Criticality, ResourceDescriptor


class NamespaceResource(ResourceDescriptor):
    """A Kubernetes namespace. The descriptor name is the namespace name."""

    plan_priority: ClassVar[int] = 45

    kind: Literal["Namespace"] = "Namespace"
    delete_timeout: float = 300.0


class CertificateResource(ResourceDescriptor):
    """A cert-manager ``Certificate`` issued from a chart's ingress.

    Nothing is created directly: the engine waits for cert-manager to report
    the certificate ready. Advisory by default because issuance can lag
    behind DNS propagation.
    """

    plan_priority: ClassVar[int] = 60

    kind: Literal["Certificate"] = "Certificate"
    certificate: str | None = None
    namespace: str = "default"
    criticality: Criticality = Criticality.ADVISORY
    ready_timeout: float | None = Field(default=600.0, gt=0)
    delete_timeout: float = 120.0

    @property
    def certificate_name(self) -> str:
        return self.certificate or self.name
