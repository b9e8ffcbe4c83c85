"""Azure resource group descriptor."""

from __future__ import annotations

from typing import ClassVar, Literal

from shape_provisioner.resources.base import ResourceDescriptor


class ResourceGroupResource(ResourceDescriptor):
    """An Azure resource group. The descriptor name is the group name."""

    plan_priority: ClassVar[int] = 0
    output_keys: ClassVar[tuple[str, ...]] = ("RESOURCE_GROUP", "LOCATION")

    kind: Literal["ResourceGroup"] = "ResourceGroup"
    location: str = "eastus2"
    delete_timeout: float = 1800.0
