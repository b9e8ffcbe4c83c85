"""Static public IP and network security group rule descriptors."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from shape_provisioner.resources.base import Criticality, ResourceDescriptor


class StaticIPResource(ResourceDescriptor):
    """A static public IP with an Azure DNS label.

    Lives in the cluster's node resource group so the ingress load balancer
    can claim it.
    """

    plan_priority: ClassVar[int] = 30
    output_keys: ClassVar[tuple[str, ...]] = ("STATIC_IP_NAME", "STATIC_IP", "DNS_FQDN")

    kind: Literal["StaticIP"] = "StaticIP"
    resource_group: str = "${NODE_RESOURCE_GROUP}"
    location: str = "eastus2"
    dns_label: str | None = Field(
        default=None,
        min_length=3,
        max_length=63,
        pattern=r"^(\$\{[A-Za-z_][A-Za-z0-9_]*\}|[a-z0-9]([a-z0-9-]*[a-z0-9])?)$",
    )
    sku: Literal["Basic", "Standard"] = "Standard"
    ready_timeout: float | None = Field(default=300.0, gt=0)


class FirewallRuleResource(ResourceDescriptor):
    """An inbound NSG rule opening one port.

    When ``nsg_name`` is omitted, the first NSG found in ``resource_group`` is
    used. Rules are advisory unless declared otherwise.
    """

    plan_priority: ClassVar[int] = 40

    kind: Literal["FirewallRule"] = "FirewallRule"
    resource_group: str = "${NODE_RESOURCE_GROUP}"
    nsg_name: str | None = None
    port: int = Field(ge=1, le=65535)
    priority: int = Field(ge=100, le=4096)
    protocol: Literal["Tcp", "Udp", "*"] = "Tcp"
    source_address_prefix: str = "*"
    criticality: Criticality = Criticality.ADVISORY
