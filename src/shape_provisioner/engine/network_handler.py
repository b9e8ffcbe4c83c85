"""Static public IP and NSG rule handlers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from shape_provisioner.core.provider import ResourceNotFoundError
from shape_provisioner.engine.handlers import ResourceHandler
from shape_provisioner.engine.resource_group_handler import provisioning_state
from shape_provisioner.engine.types import ProbeResult, ResourceState

if TYPE_CHECKING:
    from shape_provisioner.engine.handlers import EngineContext
    from shape_provisioner.resources.network import FirewallRuleResource, StaticIPResource

logger = logging.getLogger(__name__)


class StaticIPHandler(ResourceHandler["StaticIPResource"]):
    """Handler for static public IPs.

    Ready only once Azure has allocated an address; publishes ``STATIC_IP``
    and ``DNS_FQDN`` for the ingress chart and the health check.
    """

    def probe(self, ctx: EngineContext, desired: StaticIPResource) -> ProbeResult:
        data = ctx.require_provider().az_show(
            "network",
            "public-ip",
            "show",
            "--resource-group",
            desired.resource_group,
            "--name",
            desired.name,
        )
        if data is None:
            return ProbeResult(state=ResourceState.ABSENT)

        state = provisioning_state(data)
        address = data.get("ipAddress")
        if state == ResourceState.READY and not address:
            state = ResourceState.CREATING

        outputs = {"STATIC_IP_NAME": desired.name}
        if address:
            outputs["STATIC_IP"] = address
        fqdn = (data.get("dnsSettings") or {}).get("fqdn")
        if fqdn:
            outputs["DNS_FQDN"] = fqdn
        return ProbeResult(state=state, outputs=outputs)

    def create(self, ctx: EngineContext, desired: StaticIPResource) -> None:
        args = [
            "network",
            "public-ip",
            "create",
            "--resource-group",
            desired.resource_group,
            "--name",
            desired.name,
            "--location",
            desired.location,
            "--allocation-method",
            "Static",
            "--sku",
            desired.sku,
        ]
        if desired.dns_label:
            args.extend(["--dns-name", desired.dns_label])
        ctx.require_provider().az(*args)

    def delete(self, ctx: EngineContext, desired: StaticIPResource) -> None:
        ctx.require_provider().az(
            "network",
            "public-ip",
            "delete",
            "--resource-group",
            desired.resource_group,
            "--name",
            desired.name,
        )


class FirewallRuleHandler(ResourceHandler["FirewallRuleResource"]):
    """Handler for inbound NSG rules.

    The descriptor name is the rule name. Without an explicit ``nsg_name`` the
    first NSG in the resource group is used, which is how AKS lays out its
    node resource group.
    """

    def validate(self, desired: FirewallRuleResource) -> list[str]:
        if desired.port in (22, 3389) and desired.source_address_prefix == "*":
            return [f"port {desired.port} must not be opened to every source address"]
        return []

    def _nsg_name(self, ctx: EngineContext, desired: FirewallRuleResource) -> str | None:
        if desired.nsg_name:
            return desired.nsg_name
        try:
            groups: Any = ctx.require_provider().az(
                "network", "nsg", "list", "--resource-group", desired.resource_group
            )
        except ResourceNotFoundError:
            return None
        if not groups:
            return None
        return groups[0].get("name")

    def probe(self, ctx: EngineContext, desired: FirewallRuleResource) -> ProbeResult:
        nsg = self._nsg_name(ctx, desired)
        if nsg is None:
            logger.debug("No NSG found in %s", desired.resource_group)
            return ProbeResult(state=ResourceState.ABSENT)

        data = ctx.require_provider().az_show(
            "network",
            "nsg",
            "rule",
            "show",
            "--resource-group",
            desired.resource_group,
            "--nsg-name",
            nsg,
            "--name",
            desired.name,
        )
        if data is None:
            return ProbeResult(state=ResourceState.ABSENT)
        return ProbeResult(state=provisioning_state(data))

    def create(self, ctx: EngineContext, desired: FirewallRuleResource) -> None:
        nsg = self._nsg_name(ctx, desired)
        if nsg is None:
            raise RuntimeError(f"No network security group found in {desired.resource_group}")
        ctx.require_provider().az(
            "network",
            "nsg",
            "rule",
            "create",
            "--resource-group",
            desired.resource_group,
            "--nsg-name",
            nsg,
            "--name",
            desired.name,
            "--protocol",
            desired.protocol,
            "--direction",
            "Inbound",
            "--priority",
            str(desired.priority),
            "--source-address-prefixes",
            desired.source_address_prefix,
            "--source-port-ranges",
            "*",
            "--destination-address-prefixes",
            "*",
            "--destination-port-ranges",
            str(desired.port),
            "--access",
            "Allow",
            "--description",
            desired.description or f"Allow port {desired.port}",
        )

    def delete(self, ctx: EngineContext, desired: FirewallRuleResource) -> None:
        nsg = self._nsg_name(ctx, desired)
        if nsg is None:
            return
        ctx.require_provider().az(
            "network",
            "nsg",
            "rule",
            "delete",
            "--resource-group",
            desired.resource_group,
            "--nsg-name",
            nsg,
            "--name",
            desired.name,
        )
