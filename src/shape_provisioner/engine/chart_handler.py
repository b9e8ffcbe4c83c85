"""Helm release handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from shape_provisioner.core.provider import ResourceNotFoundError
from shape_provisioner.engine.handlers import ResourceHandler
from shape_provisioner.engine.types import ProbeResult, ResourceState

if TYPE_CHECKING:
    from shape_provisioner.engine.handlers import EngineContext
    from shape_provisioner.resources.chart import ReleasedChartResource

logger = logging.getLogger(__name__)


def release_state(status: str | None) -> ResourceState:
    """Map a Helm release status to an engine state."""
    if status == "deployed":
        return ResourceState.READY
    if status in ("failed", "superseded"):
        return ResourceState.FAILED
    if status == "uninstalled":
        return ResourceState.ABSENT
    # pending-install, pending-upgrade, pending-rollback, uninstalling
    return ResourceState.CREATING


class ReleasedChartHandler(ResourceHandler["ReleasedChartResource"]):
    """Handler for Helm releases.

    ``create`` runs ``helm upgrade --install --wait``, so a successful create
    usually leaves the release already ``deployed``.
    """

    def validate(self, desired: ReleasedChartResource) -> list[str]:
        errors: list[str] = []
        if bool(desired.repo_name) != bool(desired.repo_url):
            errors.append("repo_name and repo_url must be set together")
        return errors

    def probe(self, ctx: EngineContext, desired: ReleasedChartResource) -> ProbeResult:
        try:
            data: Any = ctx.require_provider().helm_json(
                "status", desired.release_name, "--namespace", desired.namespace
            )
        except ResourceNotFoundError:
            return ProbeResult(state=ResourceState.ABSENT)
        status = ((data or {}).get("info") or {}).get("status")
        return ProbeResult(state=release_state(status))

    def _chart_ref(self, desired: ReleasedChartResource) -> str:
        if desired.repo_name and "/" not in desired.chart:
            return f"{desired.repo_name}/{desired.chart}"
        return desired.chart

    def create(self, ctx: EngineContext, desired: ReleasedChartResource) -> None:
        provider = ctx.require_provider()
        if desired.repo_name and desired.repo_url:
            provider.helm("repo", "add", desired.repo_name, desired.repo_url, "--force-update")
            provider.helm("repo", "update", desired.repo_name)

        args = [
            "upgrade",
            "--install",
            desired.release_name,
            self._chart_ref(desired),
            "--namespace",
            desired.namespace,
            "--create-namespace",
        ]
        if desired.version:
            args.extend(["--version", desired.version])
        for key, value in sorted(desired.values.items()):
            args.extend(["--set", f"{key}={value}"])
        if desired.ready_timeout is not None:
            args.extend(["--wait", "--timeout", f"{int(desired.ready_timeout)}s"])

        logger.info("Installing release %s from %s", desired.release_name, args[3])
        # helm --wait blocks for up to ready_timeout; give the process headroom.
        timeout = (desired.ready_timeout or provider.timeout) + 60
        provider.helm(*args, timeout=timeout)

    def delete(self, ctx: EngineContext, desired: ReleasedChartResource) -> None:
        try:
            ctx.require_provider().helm(
                "uninstall", desired.release_name, "--namespace", desired.namespace
            )
        except ResourceNotFoundError:
            logger.debug("Release %s already uninstalled", desired.release_name)
