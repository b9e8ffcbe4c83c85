"""Command provider - runs the ``az``, ``kubectl`` and ``helm`` CLIs."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from shape_provisioner.engine.errors import ProbeUnavailableError

logger = logging.getLogger(__name__)

# stderr fragments meaning "the system answered: no such object".
_NOT_FOUND_MARKERS = (
    "ResourceNotFound",
    "ResourceGroupNotFound",
    "NotFound",
    "could not be found",
    "was not found",
    "not found",
)

# stderr fragments meaning "could not talk to the system, or was not allowed to".
_UNAVAILABLE_MARKERS = (
    "az login",
    "AADSTS",
    "Unable to connect",
    "connection refused",
    "Connection refused",
    "no such host",
    "i/o timeout",
    "Kubernetes cluster unreachable",
    "The connection to the server",
    "Max retries exceeded",
    "ExpiredAuthenticationToken",
    "InvalidAuthenticationToken",
    "AuthorizationFailed",
    "AuthenticationFailed",
    "Forbidden",
    "Unauthorized",
)


class CommandError(Exception):
    """A CLI command exited non-zero."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str) -> None:
        msg = f"Command failed ({returncode}): {' '.join(cmd)}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr


class ResourceNotFoundError(CommandError):
    """The command reported that the requested object does not exist."""


@dataclass(frozen=True)
class CommandResult:
    cmd: list[str]
    stdout: str
    stderr: str


def _classify(cmd: list[str], returncode: int, stderr: str) -> Exception:
    if any(m in stderr for m in _UNAVAILABLE_MARKERS):
        return ProbeUnavailableError(f"{cmd[0]} could not reach its backend: {stderr}")
    if any(m in stderr for m in _NOT_FOUND_MARKERS):
        return ResourceNotFoundError(cmd, returncode, stderr)
    return CommandError(cmd, returncode, stderr)


class CommandProvider(BaseModel):
    """How to reach Azure and the cluster.

    Failures are classified from the command's stderr: unreachable backends
    raise ``ProbeUnavailableError``, missing objects ``ResourceNotFoundError``,
    anything else ``CommandError``.
    """

    az_bin: str = "az"
    kubectl_bin: str = "kubectl"
    helm_bin: str = "helm"
    subscription: str | None = None
    kube_context: str | None = None
    timeout: float = Field(default=600.0, gt=0)

    def run(self, cmd: list[str], *, timeout: float | None = None) -> CommandResult:
        """Run *cmd* and return its output, raising on any failure."""
        limit = timeout or self.timeout
        logger.debug("Running: %s", " ".join(cmd))
        try:
            completed = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=limit,
            )
        except FileNotFoundError as exc:
            raise ProbeUnavailableError(f"Command not found: {cmd[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise ProbeUnavailableError(
                f"Command timed out after {limit:g}s: {' '.join(cmd)}"
            ) from exc

        stderr = (completed.stderr or "").strip()
        if completed.returncode != 0:
            raise _classify(cmd, completed.returncode, stderr)
        return CommandResult(cmd=cmd, stdout=completed.stdout or "", stderr=stderr)

    @staticmethod
    def _parse_json(result: CommandResult) -> Any:
        text = result.stdout.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise CommandError(result.cmd, 0, f"invalid JSON output: {exc}") from exc

    def az(self, *args: str, timeout: float | None = None) -> Any:
        """Run ``az <args> -o json`` and return the decoded output."""
        cmd = [self.az_bin, *args, "--only-show-errors", "-o", "json"]
        if self.subscription:
            cmd.extend(["--subscription", self.subscription])
        return self._parse_json(self.run(cmd, timeout=timeout))

    def az_show(self, *args: str, timeout: float | None = None) -> dict[str, Any] | None:
        """Run an ``az ... show`` command; ``None`` when the object does not exist."""
        try:
            data = self.az(*args, timeout=timeout)
        except ResourceNotFoundError:
            return None
        return data if isinstance(data, dict) else None

    def kubectl(self, *args: str, timeout: float | None = None) -> CommandResult:
        cmd = [self.kubectl_bin, *args]
        if self.kube_context:
            cmd.extend(["--context", self.kube_context])
        return self.run(cmd, timeout=timeout)

    def kubectl_get(self, *args: str, timeout: float | None = None) -> dict[str, Any] | None:
        """Run ``kubectl get <args> -o json``; ``None`` when the object does not exist."""
        try:
            result = self.kubectl("get", *args, "-o", "json", timeout=timeout)
        except ResourceNotFoundError:
            return None
        data = self._parse_json(result)
        return data if isinstance(data, dict) else None

    def helm(self, *args: str, timeout: float | None = None) -> CommandResult:
        cmd = [self.helm_bin, *args]
        if self.kube_context:
            cmd.extend(["--kube-context", self.kube_context])
        return self.run(cmd, timeout=timeout)

    def helm_json(self, *args: str, timeout: float | None = None) -> Any:
        return self._parse_json(self.helm(*args, "-o", "json", timeout=timeout))
