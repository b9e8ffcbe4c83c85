"""Configuration models for the deployment file."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Discriminator, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shape_provisioner.core.state import is_record_key
from shape_provisioner.resources.chart import ReleasedChartResource
from shape_provisioner.resources.cluster import ClusterResource, KubeCredentialsResource
from shape_provisioner.resources.kubernetes import CertificateResource, NamespaceResource
from shape_provisioner.resources.network import FirewallRuleResource, StaticIPResource
from shape_provisioner.resources.resource_group import ResourceGroupResource


class Settings(BaseSettings):
    """Run settings.

    Fields can be set under ``settings:`` in YAML or through environment
    variables with the ``SHAPE_`` prefix. YAML values take precedence.
    """

    model_config = SettingsConfigDict(env_prefix="SHAPE_")

    record_path: Path = Path(".shape-config")
    command_timeout: float = Field(default=600.0, gt=0)
    poll_interval: float = Field(default=5.0, gt=0)
    max_backoff: float = Field(default=30.0, gt=0)
    confirm_attempts: int = Field(default=3, ge=1)
    lock_wait: float = Field(default=0.0, ge=0)
    az: str = "az"
    kubectl: str = "kubectl"
    helm: str = "helm"
    subscription: str | None = None
    kube_context: str | None = None


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


def _record_values(v: Any) -> Any:
    """YAML scalars become record strings; booleans as ``true``/``false``."""
    if v is None:
        return {}
    if not isinstance(v, dict):
        return v
    return {
        k: (str(val).lower() if isinstance(val, bool) else str(val)) for k, val in v.items()
    }


_ResourceEntry = Annotated[
    ResourceGroupResource
    | ClusterResource
    | KubeCredentialsResource
    | StaticIPResource
    | FirewallRuleResource
    | NamespaceResource
    | ReleasedChartResource
    | CertificateResource,
    Discriminator("kind"),
]


class Config(BaseModel):
    """A deployment: run settings, declared resources and seed record values.

    ``record`` holds values no resource produces (an operator e-mail, say).
    They are laid over the stored config record before every run so
    descriptors can reference them as ``${KEY}``.
    """

    settings: Settings = Field(default_factory=Settings)
    resources: Annotated[list[_ResourceEntry], BeforeValidator(_none_to_list)] = []
    record: Annotated[dict[str, str], BeforeValidator(_record_values)] = {}
    config_dir: Path = Path()

    @field_validator("record")
    @classmethod
    def _check_record_keys(cls, v: dict[str, str]) -> dict[str, str]:
        bad = sorted(k for k in v if not is_record_key(k))
        if bad:
            raise ValueError(f"invalid record keys: {', '.join(bad)}")
        return v

    @property
    def record_path(self) -> Path:
        """The config record location, relative paths taken from the config dir."""
        path = self.settings.record_path
        return path if path.is_absolute() else self.config_dir / path
