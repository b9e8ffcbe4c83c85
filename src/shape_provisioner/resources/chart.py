"""Helm release descriptor."""

from __future__ import annotations

from typing import ClassVar, Literal

from pydantic import Field

from shape_provisioner.resources.base import ResourceDescriptor


class ReleasedChartResource(ResourceDescriptor):
    """A Helm chart installed as a named release.

    ``values`` are passed as ``--set key=value`` pairs and may reference
    earlier outputs (e.g. ``ingress.hostname: ${DNS_FQDN}``).
    """

    plan_priority: ClassVar[int] = 50

    kind: Literal["ReleasedChart"] = "ReleasedChart"
    chart: str
    release: str | None = None
    namespace: str = "default"
    repo_name: str | None = None
    repo_url: str | None = None
    version: str | None = None
    values: dict[str, str] = Field(default_factory=dict)
    ready_timeout: float | None = Field(default=900.0, gt=0)

    @property
    def release_name(self) -> str:
        return self.release or self.name
