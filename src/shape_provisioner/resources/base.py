"""Base descriptor class for managed resources."""

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

class Criticality(str, Enum):
    """Whether a failed resource halts the run (critical) or only warns (advisory)."""

    CRITICAL = "critical"
    ADVISORY = "advisory"


class ResourceDescriptor(BaseModel):
    """Desired state of one managed resource.

    Descriptors are pure data: handlers know how to probe, create and delete
    them. Instances are frozen so a run always sees the registered values.

    String fields (and ``inputs`` values) may reference outputs of earlier
    resources with ``${KEY}``; they are resolved just before the resource is
    probed.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    plan_priority: ClassVar[int] = 100
    # ConfigRecord keys a ready resource of this kind publishes.
    output_keys: ClassVar[tuple[str, ...]] = ()

    kind: str
    name: str = Field(pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
    description: str = ""
    inputs: dict[str, str] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)
    criticality: Criticality = Criticality.CRITICAL

    # Lifecycle timeouts (seconds). ``None`` means a bounded number of
    # confirmation probes instead of polling against a deadline.
    ready_timeout: float | None = Field(default=None, gt=0)
    delete_timeout: float = Field(default=600.0, gt=0)
