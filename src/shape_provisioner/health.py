"""Post-deploy health checks against the published endpoints.

Targets come from the config record (``DNS_FQDN`` and ``STATIC_IP``) unless
overridden. Every check runs independently; one failing never stops the
others.
"""

from __future__ import annotations

import logging
import socket
import ssl
import time
from typing import TYPE_CHECKING, Any

import requests
from pydantic import BaseModel, Field

from shape_provisioner.config.loader import ConfigError
from shape_provisioner.engine.types import ExitCode

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

RPC_PORT = 8545
WS_PORT = 8546
DEFAULT_TIMEOUT = 30.0
# Fewer days than this left on the certificate means renewal is not happening.
CERT_MIN_DAYS = 14

_WS_UPGRADE_HEADERS = {
    "Connection": "Upgrade",
    "Upgrade": "websocket",
    "Sec-WebSocket-Key": "dGhlIHNhbXBsZSBub25jZQ==",
    "Sec-WebSocket-Version": "13",
}


class CheckResult(BaseModel):
    name: str
    ok: bool
    detail: str = ""


class HealthReport(BaseModel):
    domain: str | None = None
    ip: str | None = None
    checks: list[CheckResult] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.checks)

    @property
    def failed(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.ok]

    @property
    def exit_code(self) -> ExitCode:
        return ExitCode.SUCCESS if self.ok else ExitCode.CRITICAL_FAILURE


class RPCError(Exception):
    """A JSON-RPC call returned an error or a malformed response."""


def resolve_targets(
    record: Mapping[str, str], *, domain: str | None = None, ip: str | None = None
) -> tuple[str | None, str | None]:
    """Pick the domain and IP to check; explicit values win over the record.

    Raises:
        ConfigError: Neither a domain nor an IP is known.
    """
    domain = domain or record.get("DNS_FQDN") or None
    ip = ip or record.get("STATIC_IP") or None
    if domain is None and ip is None:
        raise ConfigError(
            "No health check target: pass --domain/--ip or run apply to publish DNS_FQDN"
        )
    return domain, ip


def check_http(session: requests.Session, name: str, url: str, *, timeout: float) -> CheckResult:
    """GET *url*; passes on HTTP 200."""
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as exc:
        return CheckResult(name=name, ok=False, detail=str(exc))
    if response.status_code != 200:
        return CheckResult(name=name, ok=False, detail=f"HTTP {response.status_code}")
    return CheckResult(name=name, ok=True, detail="HTTP 200")


def rpc_call(session: requests.Session, url: str, method: str, *, timeout: float) -> Any:
    """POST a JSON-RPC 2.0 request and return its ``result``."""
    payload = {"jsonrpc": "2.0", "method": method, "params": [], "id": 1}
    response = session.post(url, json=payload, timeout=timeout)
    response.raise_for_status()
    try:
        body = response.json()
    except ValueError as exc:
        raise RPCError(f"{method}: response is not JSON") from exc
    if not isinstance(body, dict) or "jsonrpc" not in body:
        raise RPCError(f"{method}: not a JSON-RPC response")
    if body.get("error"):
        raise RPCError(f"{method}: {body['error']}")
    if "result" not in body:
        raise RPCError(f"{method}: response has no result")
    return body["result"]


def _hex(value: Any) -> int:
    if not isinstance(value, str) or not value.startswith("0x"):
        raise RPCError(f"expected a hex quantity, got {value!r}")
    return int(value, 16)


def check_chain_id(
    session: requests.Session,
    name: str,
    url: str,
    *,
    expected: int | None,
    timeout: float,
) -> CheckResult:
    try:
        chain_id = _hex(rpc_call(session, url, "eth_chainId", timeout=timeout))
    except (requests.RequestException, RPCError) as exc:
        return CheckResult(name=name, ok=False, detail=str(exc))
    if expected is not None and chain_id != expected:
        return CheckResult(name=name, ok=False, detail=f"chain id {chain_id}, expected {expected}")
    return CheckResult(name=name, ok=True, detail=f"chain id {chain_id}")


def check_block_number(
    session: requests.Session, name: str, url: str, *, timeout: float
) -> CheckResult:
    try:
        block = _hex(rpc_call(session, url, "eth_blockNumber", timeout=timeout))
    except (requests.RequestException, RPCError) as exc:
        return CheckResult(name=name, ok=False, detail=str(exc))
    if block == 0:
        return CheckResult(name=name, ok=False, detail="no blocks imported yet")
    return CheckResult(name=name, ok=True, detail=f"block {block}")


def check_syncing(session: requests.Session, name: str, url: str, *, timeout: float) -> CheckResult:
    """Passes once ``eth_syncing`` reports ``false``."""
    try:
        status = rpc_call(session, url, "eth_syncing", timeout=timeout)
    except (requests.RequestException, RPCError) as exc:
        return CheckResult(name=name, ok=False, detail=str(exc))
    if status is False:
        return CheckResult(name=name, ok=True, detail="in sync")
    if isinstance(status, dict):
        try:
            current = _hex(status.get("currentBlock"))
            highest = _hex(status.get("highestBlock"))
        except RPCError:
            return CheckResult(name=name, ok=False, detail="syncing")
        return CheckResult(name=name, ok=False, detail=f"syncing {current}/{highest}")
    return CheckResult(name=name, ok=False, detail=f"unexpected eth_syncing result {status!r}")


def check_websocket(
    session: requests.Session, name: str, url: str, *, timeout: float
) -> CheckResult:
    """Send a WebSocket upgrade request to *url*.

    HTTP 101 means the upgrade was accepted. HTTP 400 still shows a WebSocket
    server listening: it rejects a handshake it cannot complete over a plain
    HTTP client.
    """
    try:
        response = session.get(url, headers=_WS_UPGRADE_HEADERS, timeout=timeout, stream=True)
    except requests.RequestException as exc:
        return CheckResult(name=name, ok=False, detail=str(exc))
    with response:
        status = response.status_code
    if status == 101:
        return CheckResult(name=name, ok=True, detail="upgrade accepted")
    if status == 400:
        return CheckResult(name=name, ok=True, detail="listening (HTTP 400)")
    return CheckResult(name=name, ok=False, detail=f"HTTP {status}")


def _peer_certificate(host: str, port: int, *, timeout: float) -> dict[str, Any]:
    context = ssl.create_default_context()
    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as tls:
            return tls.getpeercert() or {}


def check_certificate(
    host: str,
    *,
    port: int = 443,
    timeout: float,
    min_days: int = CERT_MIN_DAYS,
    now: float | None = None,
) -> CheckResult:
    """Verify the certificate *host* serves and how long it stays valid.

    The certificate is always verified, even when the HTTPS checks run
    without verification. Fails when fewer than *min_days* days remain.
    """
    name = "certificate"
    try:
        cert = _peer_certificate(host, port, timeout=timeout)
    except ssl.SSLCertVerificationError as exc:
        detail = getattr(exc, "verify_message", None) or str(exc)
        return CheckResult(name=name, ok=False, detail=detail)
    except OSError as exc:
        return CheckResult(name=name, ok=False, detail=str(exc))

    not_after = cert.get("notAfter")
    if not not_after:
        return CheckResult(name=name, ok=False, detail="certificate has no expiry date")
    remaining = ssl.cert_time_to_seconds(not_after) - (time.time() if now is None else now)
    days = int(remaining // 86400)
    if days < 0:
        return CheckResult(name=name, ok=False, detail=f"expired {not_after}")
    if days < min_days:
        return CheckResult(name=name, ok=False, detail=f"expires in {days} days ({not_after})")
    return CheckResult(name=name, ok=True, detail=f"valid for {days} more days")


def _run_all(
    session: requests.Session,
    domain: str | None,
    ip: str | None,
    *,
    expected_chain_id: int | None,
    timeout: float,
) -> HealthReport:
    report = HealthReport(domain=domain, ip=ip)

    endpoints: list[tuple[str, str, str]] = []
    if domain:
        report.checks.append(check_http(session, "homepage", f"http://{domain}/", timeout=timeout))
        report.checks.append(check_http(session, "https", f"https://{domain}/", timeout=timeout))
        report.checks.append(check_certificate(domain, timeout=timeout))
        endpoints.append(("domain", f"https://{domain}/rpc", f"https://{domain}/ws"))
    if ip:
        endpoints.append(("ip", f"http://{ip}:{RPC_PORT}", f"http://{ip}:{WS_PORT}"))

    for label, rpc_url, ws_url in endpoints:
        report.checks.append(
            check_chain_id(
                session, f"{label} chain id", rpc_url, expected=expected_chain_id, timeout=timeout
            )
        )
        report.checks.append(
            check_block_number(session, f"{label} block", rpc_url, timeout=timeout)
        )
        report.checks.append(check_syncing(session, f"{label} sync", rpc_url, timeout=timeout))
        report.checks.append(
            check_websocket(session, f"{label} websocket", ws_url, timeout=timeout)
        )
    return report


def run_checks(
    domain: str | None,
    ip: str | None,
    *,
    expected_chain_id: int | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    verify: bool = True,
    session: requests.Session | None = None,
) -> HealthReport:
    """Run every applicable check for *domain* and *ip*.

    The domain serves the homepage over HTTP and HTTPS and proxies JSON-RPC
    at ``/rpc`` and WebSocket at ``/ws``; the IP exposes JSON-RPC directly on
    port 8545 and WebSocket on 8546. A session created here is closed before
    returning; a caller's *session* is left open.
    """
    if domain is None and ip is None:
        raise ConfigError("No health check target given")

    if session is None:
        with requests.Session() as owned:
            owned.verify = verify
            report = _run_all(
                owned, domain, ip, expected_chain_id=expected_chain_id, timeout=timeout
            )
    else:
        session.verify = verify
        report = _run_all(
            session, domain, ip, expected_chain_id=expected_chain_id, timeout=timeout
        )

    for check in report.checks:
        if check.ok:
            logger.info("%s: ok (%s)", check.name, check.detail)
        else:
            logger.warning("%s: failed (%s)", check.name, check.detail)
    return report
