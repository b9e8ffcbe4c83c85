"""Resource group handler implementing probe/create/delete via ``az group``."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from shape_provisioner.engine.handlers import ResourceHandler
from shape_provisioner.engine.types import ProbeResult, ResourceState

if TYPE_CHECKING:
    from shape_provisioner.engine.handlers import EngineContext
    from shape_provisioner.resources.resource_group import ResourceGroupResource

logger = logging.getLogger(__name__)

# provisioningState -> engine state
_PROVISIONING_STATES: dict[str, ResourceState] = {
    "Succeeded": ResourceState.READY,
    "Creating": ResourceState.CREATING,
    "Updating": ResourceState.CREATING,
    # Being deleted: unusable, and never becomes ready again.
    "Deleting": ResourceState.FAILED,
    "Failed": ResourceState.FAILED,
}


def provisioning_state(data: dict[str, Any]) -> ResourceState:
    """Map an ARM ``provisioningState`` (top-level or under ``properties``)."""
    raw = data.get("provisioningState") or (data.get("properties") or {}).get(
        "provisioningState", "Succeeded"
    )
    return _PROVISIONING_STATES.get(raw, ResourceState.CREATING)


class ResourceGroupHandler(ResourceHandler["ResourceGroupResource"]):
    """Handler for Azure resource groups."""

    def probe(self, ctx: EngineContext, desired: ResourceGroupResource) -> ProbeResult:
        data = ctx.require_provider().az_show("group", "show", "--name", desired.name)
        if data is None:
            return ProbeResult(state=ResourceState.ABSENT)
        return ProbeResult(
            state=provisioning_state(data),
            outputs={
                "RESOURCE_GROUP": desired.name,
                "LOCATION": data.get("location", desired.location),
            },
        )

    def create(self, ctx: EngineContext, desired: ResourceGroupResource) -> None:
        ctx.require_provider().az(
            "group", "create", "--name", desired.name, "--location", desired.location
        )

    def delete(self, ctx: EngineContext, desired: ResourceGroupResource) -> None:
        ctx.require_provider().az("group", "delete", "--name", desired.name, "--yes", "--no-wait")
