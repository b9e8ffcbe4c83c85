"""Core infrastructure components for shape-provisioner."""

from shape_provisioner.core.provider import CommandError, CommandProvider, ResourceNotFoundError
from shape_provisioner.core.state import ConfigRecord, ConfigStore

__all__ = [
    "CommandError",
    "CommandProvider",
    "ConfigRecord",
    "ConfigStore",
    "ResourceNotFoundError",
]
