"""Idempotent, dependency-ordered provisioning for Shape Network deployments."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("shape-provisioner")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
