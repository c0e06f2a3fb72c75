from __future__ import annotations

import socket
from typing import TYPE_CHECKING, Any, Callable

import httpx

from .ports import DEFAULT_PORT
from .token import CancelToken

if TYPE_CHECKING:
    from .container import Container


class NotReadyError(Exception):
    """Raised by the built-in health checks while the service is not reachable yet."""


def validate_health_path(path: str) -> None:
    # Keep it a path (not a full URL) so the check always targets the container.
    if not path.startswith("/"):
        raise ValueError("health path must start with '/'.")
    if "://" in path or ".." in path:
        raise ValueError("health path must be a simple absolute path (no scheme, no '..').")


def _probe_timeout(token: CancelToken, ceiling: float) -> float:
    remaining = token.remaining()
    if remaining is None:
        return ceiling
    return max(0.01, min(ceiling, remaining))


def tcp_check(token: CancelToken, container: Container) -> None:
    """Default readiness test: every published tcp port accepts a connection."""
    for binding in container.ports:
        if binding.protocol != "tcp":
            continue
        timeout = _probe_timeout(token, 1.0)
        try:
            with socket.create_connection((binding.host, binding.host_port), timeout=timeout):
                pass
        except OSError as e:
            raise NotReadyError(f"{binding.name} ({binding.address}) is not reachable: {e}") from e


def http_check(
    port_name: str = DEFAULT_PORT,
    path: str = "/",
    expected_status: int = 200,
    timeout_s: float = 2.0,
) -> Callable[[CancelToken, Any], None]:
    """Build a health check that GETs ``path`` on the named port.

    The check passes once the response status equals ``expected_status``.
    """
    validate_health_path(path)

    def check(token: CancelToken, container: Container) -> None:
        url = f"http://{container.address(port_name)}{path}"
        try:
            with httpx.Client(timeout=_probe_timeout(token, timeout_s), follow_redirects=False) as client:
                resp = client.get(url)
        except httpx.HTTPError as e:
            raise NotReadyError(f"{url}: {type(e).__name__}: {e}") from e
        if resp.status_code != expected_status:
            raise NotReadyError(f"{url}: HTTP {resp.status_code}")

    return check


class HealthCheckCoordinator:
    """Polls a readiness predicate until it passes or the token fires."""

    def wait_until_ready(
        self,
        container: Container,
        check: Callable[[CancelToken, Any], Any],
        interval_s: float,
        token: CancelToken,
    ) -> int:
        """Block until ``check`` passes and return the number of attempts.

        Raises the token's error (``CancellationError`` or
        ``HealthCheckTimeoutError``) once the token fires, chained to the last
        check failure. The check's own errors are never raised directly.
        """
        attempts = 0
        last_err: BaseException | None = None
        while True:
            fired = token.error()
            if fired is not None:
                raise type(fired)(
                    f"{fired}: container {container.id[:12]} not ready after {attempts} health checks"
                ) from last_err

            attempts += 1
            try:
                result = check(token, container)
            except Exception as e:
                last_err = e
            else:
                if result is not False:
                    if token.fired:
                        continue
                    return attempts
                last_err = NotReadyError("health check returned False")

            token.sleep(interval_s)
